from html import escape

from aiogram import F, Router
from aiogram.filters import Command
from aiogram.types import Message
from sqlalchemy.ext.asyncio import AsyncSession

from event_bot.services.chats import get_active_events_by_chat_id
from event_bot.utils.time import format_datetime

router = Router()
router.message.filter(F.chat.type.in_({"group", "supergroup"}))


@router.message(Command("events"))
async def cmd_group_events(message: Message, session: AsyncSession):
    events = await get_active_events_by_chat_id(session, message.chat.id)
    if not events:
        await message.answer("Для этого чата нет активных мероприятий.")
        return
    lines = [f"📅 <b>{escape(ev.name)}</b> – {format_datetime(ev.starts_at)}, {escape(ev.location)}" for ev in events]
    await message.answer(
        "Ближайшие мероприятия:\n\n" + "\n".join(lines) + "\n\nДля регистрации напишите мне в личные сообщения /start"
    )
