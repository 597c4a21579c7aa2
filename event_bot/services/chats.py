"""Telegram group chats and their links to events.

An event can be announced in several groups; ``notify-group`` posts the
summary to every active chat linked to the event.
"""

import logging
import re
from typing import Iterable, List, Optional

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import col, select

from event_bot.errors import DuplicateChat, NotFound
from event_bot.models import Chat, Event, EventChat

logger = logging.getLogger(__name__)

_CHAT_ID_RE = re.compile(r"^-?\d+$")


async def list_chats(session: AsyncSession) -> List[Chat]:
    result = await session.execute(select(Chat).order_by(col(Chat.title), col(Chat.id)))
    return list(result.scalars().all())


async def get_chat(session: AsyncSession, chat_pk: int) -> Chat:
    chat = await session.get(Chat, chat_pk)
    if not chat:
        raise NotFound("chat", chat_pk)
    return chat


async def create_chat(session: AsyncSession, chat_id, title: Optional[str] = None) -> Chat:
    telegram_chat_id = str(chat_id).strip()
    if not _CHAT_ID_RE.match(telegram_chat_id):
        raise ValueError("Идентификатор чата должен быть числом, например -1001234567890.")
    existing = (
        await session.execute(select(Chat).where(Chat.chat_id == telegram_chat_id))
    ).scalars().first()
    if existing:
        raise DuplicateChat(telegram_chat_id)

    chat = Chat(chat_id=telegram_chat_id, title=(title or "").strip() or None)
    session.add(chat)
    await session.commit()
    await session.refresh(chat)
    logger.info("chat_added id=%s chat_id=%s", chat.id, chat.chat_id)
    return chat


async def delete_chat(session: AsyncSession, chat_pk: int) -> None:
    """Remove the chat together with its event links."""
    chat = await get_chat(session, chat_pk)
    try:
        await session.execute(delete(EventChat).where(col(EventChat.chat_id) == chat_pk))
        await session.delete(chat)
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    logger.info("chat_deleted id=%s", chat_pk)


async def replace_event_chats(session: AsyncSession, event_id: int, chat_pks: Iterable[int]) -> None:
    """Make *chat_pks* the exact set of chats linked to the event.

    Does not commit; event create/update write the links in their own
    transaction.
    """
    wanted: list[int] = []
    for chat_pk in chat_pks:
        if chat_pk not in wanted:
            wanted.append(chat_pk)
    if wanted:
        found = set(
            (await session.execute(select(Chat.id).where(col(Chat.id).in_(wanted)))).scalars().all()
        )
        missing = [chat_pk for chat_pk in wanted if chat_pk not in found]
        if missing:
            raise NotFound("chat", missing[0])

    await session.execute(delete(EventChat).where(col(EventChat.event_id) == event_id))
    for chat_pk in wanted:
        session.add(EventChat(event_id=event_id, chat_id=chat_pk))


async def list_event_chats(session: AsyncSession, event_id: int, active_only: bool = False) -> List[Chat]:
    stmt = (
        select(Chat)
        .join(EventChat, col(EventChat.chat_id) == col(Chat.id))
        .where(EventChat.event_id == event_id)
    )
    if active_only:
        stmt = stmt.where(Chat.is_active == True)  # noqa: E712
    result = await session.execute(stmt.order_by(col(Chat.id)))
    return list(result.scalars().all())


async def event_chat_ids(session: AsyncSession, event_id: int) -> List[int]:
    result = await session.execute(
        select(EventChat.chat_id).where(EventChat.event_id == event_id).order_by(col(EventChat.chat_id))
    )
    return list(result.scalars().all())


async def get_active_events_by_chat_id(session: AsyncSession, telegram_chat_id) -> List[Event]:
    """Active events announced in the Telegram chat, soonest first."""
    result = await session.execute(
        select(Event)
        .join(EventChat, col(EventChat.event_id) == col(Event.id))
        .join(Chat, col(Chat.id) == col(EventChat.chat_id))
        .where(Chat.chat_id == str(telegram_chat_id))
        .where(Event.is_active == True)  # noqa: E712
        .order_by(col(Event.starts_at))
    )
    return list(result.scalars().all())
