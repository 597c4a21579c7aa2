from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Index, text
from sqlmodel import Field, SQLModel, UniqueConstraint

from event_bot.utils.time import utcnow


class Registrant(SQLModel, table=True):
    """One person's registration for one event."""

    __table_args__ = (
        UniqueConstraint("telegram_id", "event_id", name="unique_telegram_event"),
        # two active registrants of one event never share a number
        Index(
            "unique_active_event_number",
            "event_id",
            "participant_number",
            unique=True,
            sqlite_where=text("is_active"),
            postgresql_where=text("is_active"),
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    telegram_id: str = Field(index=True, max_length=50)
    telegram_nickname: Optional[str] = Field(default=None, index=True, max_length=100)  # без "@"
    full_name: str
    phone: str = Field(max_length=20)
    transport_type: str = Field(max_length=20)
    transport_model: Optional[str] = Field(default=None, max_length=100)
    participant_number: Optional[int] = None
    is_active: bool = Field(default=True)
    event_id: int = Field(foreign_key="event.id", index=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
