import re
from tempfile import NamedTemporaryFile

import pandas as pd
from sqlalchemy.ext.asyncio import AsyncSession

from event_bot.services.events import get_event
from event_bot.services.registrations import list_event_registrants
from event_bot.utils.transport import transport_label

_SHEET_FORBIDDEN = re.compile(r"[\[\]:*?/\\]")


async def export_event_participants(session: AsyncSession, event_id: int, file_path: str) -> str:
    """Экспортирует список участников мероприятия (с номерами) в Excel."""
    event = await get_event(session, event_id)
    registrants = await list_event_registrants(session, event_id)

    rows = []
    for r in registrants:
        rows.append(
            {
                "Номер": r.participant_number,
                "ФИО": r.full_name,
                "Telegram": f"@{r.telegram_nickname}" if r.telegram_nickname else "-",
                "Телефон": r.phone,
                "Транспорт": transport_label(r.transport_type, r.transport_model),
                "Статус": "активен" if r.is_active else "отменил участие",
            }
        )

    if not rows:
        rows.append({"Номер": None, "ФИО": "-", "Telegram": "-", "Телефон": "-", "Транспорт": "-", "Статус": "нет данных"})

    df = pd.DataFrame(rows)
    df.to_excel(file_path, index=False, sheet_name=_SHEET_FORBIDDEN.sub(" ", event.name)[:31].strip() or "Участники")
    return file_path


async def make_event_report(session: AsyncSession, event_id: int) -> str:
    """Export into a temporary .xlsx file and return its path; the caller removes it."""
    tmp = NamedTemporaryFile(delete=False, suffix=".xlsx")
    tmp.close()
    return await export_event_participants(session, event_id, tmp.name)
