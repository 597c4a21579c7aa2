import logging
from dataclasses import dataclass, field
from typing import Iterable, List

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import col, select

from event_bot.config import settings
from event_bot.errors import NotFound
from event_bot.models import Event, ReservedNumber
from event_bot.services.locks import NumberLocks, number_locks

logger = logging.getLogger(__name__)


@dataclass
class ReservedAddResult:
    added: List[int] = field(default_factory=list)
    skipped: List[int] = field(default_factory=list)  # outside 1..MAX_DYNAMIC_NUMBER or not integers
    duplicates: List[int] = field(default_factory=list)  # already reserved

    def as_dict(self) -> dict:
        return {"added": self.added, "skipped": self.skipped, "duplicates": self.duplicates}


async def list_reserved_numbers(session: AsyncSession, event_id: int) -> List[ReservedNumber]:
    result = await session.execute(
        select(ReservedNumber)
        .where(ReservedNumber.event_id == event_id)
        .order_by(col(ReservedNumber.number))
    )
    return list(result.scalars().all())


async def add_reserved_numbers(
    session: AsyncSession,
    event_id: int,
    numbers: Iterable,
    locks: NumberLocks = number_locks,
) -> ReservedAddResult:
    """Exclude *numbers* from automatic assignment in the event.

    Out-of-range values are left out and reported back in ``skipped``
    instead of failing the whole batch.  Registrants already holding one of
    the numbers keep it.
    """
    if not await session.get(Event, event_id):
        raise NotFound("event", event_id)

    outcome = ReservedAddResult()
    valid: list[int] = []
    for raw in numbers:
        if isinstance(raw, bool) or not isinstance(raw, int) or not 1 <= raw <= settings.MAX_DYNAMIC_NUMBER:
            outcome.skipped.append(raw)
        elif raw not in valid:
            valid.append(raw)

    async with locks.event(event_id):
        try:
            existing = {r.number for r in await list_reserved_numbers(session, event_id)}
            for number in sorted(valid):
                if number in existing:
                    outcome.duplicates.append(number)
                    continue
                session.add(ReservedNumber(event_id=event_id, number=number))
                outcome.added.append(number)
            await session.commit()
        except Exception:
            await session.rollback()
            raise

    if outcome.skipped:
        logger.warning("reserved_numbers_skipped event_id=%s values=%s", event_id, outcome.skipped)
    logger.info("reserved_numbers_added event_id=%s numbers=%s", event_id, outcome.added)
    return outcome


async def remove_reserved_numbers(
    session: AsyncSession,
    event_id: int,
    numbers: Iterable[int],
    locks: NumberLocks = number_locks,
) -> int:
    numbers = [n for n in numbers if isinstance(n, int) and not isinstance(n, bool)]
    if not numbers:
        return 0
    async with locks.event(event_id):
        result = await session.execute(
            delete(ReservedNumber)
            .where(col(ReservedNumber.event_id) == event_id)
            .where(col(ReservedNumber.number).in_(numbers))
        )
        await session.commit()
    logger.info("reserved_numbers_removed event_id=%s numbers=%s", event_id, numbers)
    return result.rowcount or 0
