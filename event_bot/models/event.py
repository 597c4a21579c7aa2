from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Column, DateTime
from sqlmodel import Field, SQLModel

from event_bot.utils.time import utcnow

# monowheel | scooter | eboard | spectator
TRANSPORT_TYPES: tuple[str, ...] = ("monowheel", "scooter", "eboard", "spectator")


class Event(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    description: Optional[str] = Field(default=None, max_length=900)
    location: str
    starts_at: datetime = Field(sa_type=DateTime(timezone=True))
    allowed_transport_types: list[str] = Field(
        default_factory=lambda: list(TRANSPORT_TYPES),
        sa_column=Column(JSON, nullable=False),
    )
    disable_link_previews: bool = Field(default=False)
    share_code: Optional[str] = Field(default=None, unique=True, index=True, max_length=50)
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
