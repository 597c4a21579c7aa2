from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel, UniqueConstraint

from event_bot.utils.time import utcnow


class ReservedNumber(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("event_id", "number", name="unique_event_reserved_number"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    event_id: int = Field(foreign_key="event.id", index=True)
    number: int
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
