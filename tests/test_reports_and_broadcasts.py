from unittest.mock import AsyncMock

import pandas as pd
import pytest
from aiogram.exceptions import TelegramBadRequest

from event_bot.errors import NotFound
from event_bot.services.broadcasts import event_summary_text, notify_reassignments, send_event_summary
from event_bot.services.chats import create_chat
from event_bot.services.conflicts import Reassignment
from event_bot.services.events import event_stats
from event_bot.services.registrations import deactivate_registrant
from event_bot.services.reports import export_event_participants

from helpers import make_event, register


async def test_export_lists_participants_with_numbers(session, tmp_path):
    event = await make_event(session, name="Покатушка: финал")
    await register(session, event.id, 1, "alice", full_name="Алиса", transport_type="monowheel", transport_model="Begode")
    gone = (await register(session, event.id, 2, full_name="Борис")).registrant
    await deactivate_registrant(session, gone.id)

    path = await export_event_participants(session, event.id, str(tmp_path / "out.xlsx"))
    df = pd.read_excel(path)

    assert list(df["Номер"]) == [1, 2]
    assert list(df["Telegram"]) == ["@alice", "-"]
    assert list(df["Транспорт"]) == ["Моноколесо (Begode)", "Зритель"]
    assert list(df["Статус"]) == ["активен", "отменил участие"]


async def test_summary_is_sent_to_every_linked_chat(session):
    first = await create_chat(session, -100500, "Первый")
    second = await create_chat(session, -100600, "Второй")
    await create_chat(session, -100700, "Не привязан")
    event = await make_event(session, disable_link_previews=True, chat_ids=[first.id, second.id])
    await register(session, event.id, 1, transport_type="scooter", transport_model="Kugoo")
    bot = AsyncMock()

    sent, failed = await send_event_summary(bot, session, event.id)

    assert (sent, failed) == (2, 0)
    assert [c.args[0] for c in bot.send_message.await_args_list] == [-100500, -100600]
    args, kwargs = bot.send_message.await_args
    assert "Самокат: 1 чел." in args[1]
    assert kwargs["disable_web_page_preview"] is True
    assert args[1] == event_summary_text(event, await event_stats(session, event.id))


async def test_summary_failure_in_one_chat_does_not_stop_others(session):
    first = await create_chat(session, -100500)
    second = await create_chat(session, -100600)
    event = await make_event(session, chat_ids=[first.id, second.id])
    bot = AsyncMock()
    bot.send_message.side_effect = [TelegramBadRequest(method=AsyncMock(), message="chat not found"), None]

    assert await send_event_summary(bot, session, event.id) == (1, 1)


async def test_summary_needs_a_linked_chat(session):
    event = await make_event(session)

    with pytest.raises(NotFound):
        await send_event_summary(AsyncMock(), session, event.id)


async def test_reassignment_notices_count_failures(session):
    event = await make_event(session)
    ok = (await register(session, event.id, 111)).registrant
    broken = (await register(session, event.id, "not-a-chat")).registrant
    bot = AsyncMock()
    moves = [
        Reassignment(event.id, ok.id, ok.full_name, None, 1, 3),
        Reassignment(event.id, broken.id, broken.full_name, None, 2, 4),
        Reassignment(event.id, 999, "Удалён", None, 5, 6),
    ]

    sent, failed = await notify_reassignments(bot, session, moves)

    assert (sent, failed) == (1, 1)
    assert bot.send_message.await_args.args[0] == 111
    assert "1 → 3" in bot.send_message.await_args.args[1]
