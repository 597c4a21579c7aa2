import logging
from typing import Iterable

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from event_bot.errors import NotFound
from event_bot.models import Registrant
from event_bot.services.chats import list_event_chats
from event_bot.services.conflicts import Reassignment
from event_bot.services.events import event_stats, get_event
from event_bot.utils.time import format_datetime

logger = logging.getLogger(__name__)


def event_summary_text(event, stats) -> str:
    return (
        "🏁 УВЕДОМЛЕНИЕ О МЕРОПРИЯТИИ 🏁\n\n"
        f"📅 {event.name}\n"
        f"📍 {event.location}\n"
        f"🕐 {format_datetime(event.starts_at)}\n\n"
        "📊 ТЕКУЩАЯ СТАТИСТИКА УЧАСТНИКОВ:\n"
        f"🛞 Моноколесо: {stats.monowheel} чел.\n"
        f"🛴 Самокат: {stats.scooter} чел.\n"
        f"🛹 Электро-борд: {stats.eboard} чел.\n"
        f"👀 Зрители: {stats.spectator} чел.\n"
        f"📋 Всего зарегистрировано: {stats.participants} чел.\n\n"
        "🤖 Для регистрации напишите мне в личные сообщения и отправьте команду /start"
    )


async def send_event_summary(bot: Bot, session: AsyncSession, event_id: int) -> tuple[int, int]:
    """Post the current participant statistics to every active chat linked to the event.

    Returns (sent, failed); a chat that rejects the message does not stop the others.
    """
    event = await get_event(session, event_id)
    chats = await list_event_chats(session, event_id, active_only=True)
    if not chats:
        raise NotFound("chat", event_id, f"К мероприятию {event_id} не привязан ни один активный чат.")
    stats = await event_stats(session, event_id)
    text = event_summary_text(event, stats)

    success_count = 0
    fail_count = 0
    for chat in chats:
        try:
            await bot.send_message(
                int(chat.chat_id),
                text,
                disable_web_page_preview=event.disable_link_previews,
            )
            success_count += 1
        except TelegramAPIError:
            logger.warning("event_summary_failed event_id=%s chat_id=%s", event_id, chat.chat_id, exc_info=True)
            fail_count += 1
    logger.info("event_summary_sent event_id=%s sent=%d failed=%d", event_id, success_count, fail_count)
    return success_count, fail_count


async def notify_reassignments(bot: Bot, session: AsyncSession, moves: Iterable[Reassignment]) -> tuple[int, int]:
    """Tell participants that their number changed.  Returns (sent, failed)."""
    success_count = 0
    fail_count = 0
    for move in moves:
        registrant = await session.get(Registrant, move.registrant_id)
        if not registrant:
            continue
        event = await get_event(session, move.event_id)
        try:
            await bot.send_message(
                int(registrant.telegram_id),
                f"ℹ️ Ваш номер участника на «{event.name}» изменён: {move.from_number} → {move.to_number}.",
            )
            success_count += 1
        except (TelegramAPIError, ValueError):
            logger.warning("reassignment_notice_failed registrant_id=%s", move.registrant_id)
            fail_count += 1
    return success_count, fail_count
