from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel, UniqueConstraint

from event_bot.utils.time import utcnow


class Chat(SQLModel, table=True):
    """A Telegram group the bot posts event summaries to."""

    id: Optional[int] = Field(default=None, primary_key=True)
    chat_id: str = Field(unique=True, index=True, max_length=50)  # Telegram id, e.g. "-1001234567890"
    title: Optional[str] = Field(default=None, max_length=200)
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class EventChat(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("event_id", "chat_id", name="unique_event_chat"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    event_id: int = Field(foreign_key="event.id", index=True)
    chat_id: int = Field(foreign_key="chat.id", index=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
