from datetime import datetime

from sqlmodel import select

from event_bot.models import Registrant
from event_bot.services.events import create_event
from event_bot.services.registrations import register_participant


async def make_event(session, name: str = "Ночная покатушка", **kwargs):
    kwargs.setdefault("location", "Парк Горького")
    kwargs.setdefault("starts_at", datetime(2026, 11, 1, 19, 0))
    return await create_event(session, name=name, **kwargs)


async def register(session, event_id: int, telegram_id, nickname=None, transport_type: str = "spectator", **kwargs):
    return await register_participant(
        session,
        event_id=event_id,
        telegram_id=str(telegram_id),
        full_name=kwargs.pop("full_name", f"Участник {telegram_id}"),
        phone=kwargs.pop("phone", "+79991234567"),
        transport_type=transport_type,
        telegram_nickname=nickname,
        **kwargs,
    )


async def active_numbers(session, event_id: int) -> list[int]:
    result = await session.execute(
        select(Registrant.participant_number)
        .where(Registrant.event_id == event_id)
        .where(Registrant.is_active == True)  # noqa: E712
    )
    return sorted(result.scalars().all())


async def numbers_by_nickname(session, event_id: int) -> dict:
    result = await session.execute(
        select(Registrant.telegram_nickname, Registrant.participant_number)
        .where(Registrant.event_id == event_id)
        .where(Registrant.is_active == True)  # noqa: E712
    )
    return dict(result.all())
