import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import col, select

from event_bot.errors import AllocationExhausted
from event_bot.models import Event, Registrant
from event_bot.services.number_pool import next_available
from event_bot.utils.nickname import normalize_nickname
from event_bot.utils.time import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Reassignment:
    """A registrant moved from one number to another within an event."""

    event_id: int
    registrant_id: int
    full_name: str
    telegram_nickname: Optional[str]
    from_number: Optional[int]
    to_number: int

    def as_dict(self) -> dict:
        return {
            "eventId": self.event_id,
            "registrantId": self.registrant_id,
            "fullName": self.full_name,
            "telegramNickname": self.telegram_nickname,
            "fromNumber": self.from_number,
            "toNumber": self.to_number,
        }


@dataclass(frozen=True)
class Displacement:
    """Who would lose *number* if it were bound now (shown before committing)."""

    event_id: int
    event_name: str
    registrant_id: int
    full_name: str
    telegram_nickname: Optional[str]
    number: int
    to_number: Optional[int]  # None: the event has no free number left

    def as_dict(self) -> dict:
        return {
            "eventId": self.event_id,
            "eventName": self.event_name,
            "registrantId": self.registrant_id,
            "fullName": self.full_name,
            "telegramNickname": self.telegram_nickname,
            "number": self.number,
            "toNumber": self.to_number,
        }


async def assign_number(session: AsyncSession, registrant: Registrant, number: Optional[int]) -> None:
    """Write a participant number and flush right away.

    The flush keeps the active-number unique index satisfied step by step:
    the evicted holder's new number is stored before anybody takes the old one.
    """
    registrant.participant_number = number
    registrant.updated_at = utcnow()
    session.add(registrant)
    await session.flush()


async def find_holder(
    session: AsyncSession,
    event_id: int,
    number: int,
    *,
    exclude_registrant_id: Optional[int] = None,
    owner_nickname: Optional[str] = None,
) -> Optional[Registrant]:
    stmt = (
        select(Registrant)
        .where(Registrant.event_id == event_id)
        .where(Registrant.participant_number == number)
        .where(Registrant.is_active == True)  # noqa: E712
    )
    if exclude_registrant_id is not None:
        stmt = stmt.where(Registrant.id != exclude_registrant_id)
    if owner_nickname is not None:
        stmt = stmt.where(col(Registrant.telegram_nickname).is_distinct_from(owner_nickname))
    result = await session.execute(stmt.order_by(col(Registrant.id)))
    return result.scalars().first()


async def clear_seat(
    session: AsyncSession,
    event_id: int,
    number: int,
    *,
    exclude_registrant_id: Optional[int] = None,
    owner_nickname: Optional[str] = None,
) -> Optional[Reassignment]:
    """Move whoever actively holds *number* in the event to the lowest free number.

    No-op (returns ``None``) when nobody holds it.  The holder is never
    deactivated, only renumbered.  The contested number is excluded from the
    pool along with the holder, so one eviction cannot cause another.
    Raises ``AllocationExhausted`` if the holder has nowhere to go; the
    caller's transaction must then be rolled back.
    """
    holder = await find_holder(
        session,
        event_id,
        number,
        exclude_registrant_id=exclude_registrant_id,
        owner_nickname=owner_nickname,
    )
    if holder is None or holder.id is None:
        return None

    new_number = await next_available(
        session,
        event_id,
        exclude_registrant_id=holder.id,
        extra_used={number},
    )
    await assign_number(session, holder, new_number)
    logger.info(
        "seat_cleared event_id=%s registrant_id=%s number=%s -> %s",
        event_id,
        holder.id,
        number,
        new_number,
    )
    return Reassignment(
        event_id=event_id,
        registrant_id=holder.id,
        full_name=holder.full_name,
        telegram_nickname=holder.telegram_nickname,
        from_number=number,
        to_number=new_number,
    )


async def preview_displacements(
    session: AsyncSession,
    number: int,
    nickname: Optional[str] = None,
) -> list[Displacement]:
    """List active holders of *number* across all events, with their predicted new number.

    Holders that already carry *nickname* are skipped: they would keep the seat.
    Nothing is written.
    """
    owner = normalize_nickname(nickname)
    stmt = (
        select(Registrant, Event)
        .join(Event, Registrant.event_id == Event.id)  # type: ignore[arg-type]
        .where(Registrant.participant_number == number)
        .where(Registrant.is_active == True)  # noqa: E712
        .order_by(col(Registrant.event_id), col(Registrant.id))
    )
    if owner is not None:
        stmt = stmt.where(col(Registrant.telegram_nickname).is_distinct_from(owner))

    displacements: list[Displacement] = []
    for registrant, event in (await session.execute(stmt)).all():
        try:
            to_number: Optional[int] = await next_available(
                session,
                registrant.event_id,
                exclude_registrant_id=registrant.id,
                extra_used={number},
            )
        except AllocationExhausted:
            to_number = None
        displacements.append(
            Displacement(
                event_id=registrant.event_id,
                event_name=event.name,
                registrant_id=registrant.id,
                full_name=registrant.full_name,
                telegram_nickname=registrant.telegram_nickname,
                number=number,
                to_number=to_number,
            )
        )
    return displacements
