from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from event_bot.utils.time import utcnow


class FixedNumberBinding(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    telegram_nickname: str = Field(unique=True, index=True, max_length=100)
    participant_number: int = Field(unique=True, index=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
