import logging
from typing import Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from event_bot.config import settings
from event_bot.errors import AllocationExhausted
from event_bot.models import FixedNumberBinding, Registrant, ReservedNumber

logger = logging.getLogger(__name__)


async def used_numbers(
    session: AsyncSession,
    event_id: int,
    exclude_registrant_id: Optional[int] = None,
) -> set[int]:
    """Numbers that dynamic assignment must skip for *event_id*.

    Active registrants of the event, the event's reserved numbers and every
    fixed binding (bindings are global, so they are taken in every event).
    """
    stmt = (
        select(Registrant.participant_number)
        .where(Registrant.event_id == event_id)
        .where(Registrant.is_active == True)  # noqa: E712
        .where(Registrant.participant_number != None)  # noqa: E711
    )
    if exclude_registrant_id is not None:
        stmt = stmt.where(Registrant.id != exclude_registrant_id)
    taken = (await session.execute(stmt)).scalars().all()

    reserved = (
        await session.execute(select(ReservedNumber.number).where(ReservedNumber.event_id == event_id))
    ).scalars().all()

    fixed = (await session.execute(select(FixedNumberBinding.participant_number))).scalars().all()

    return {*taken, *reserved, *fixed}


async def next_available(
    session: AsyncSession,
    event_id: int,
    *,
    exclude_registrant_id: Optional[int] = None,
    extra_used: Iterable[int] = (),
) -> int:
    """Lowest free number in 1..MAX_DYNAMIC_NUMBER for the event.

    The scan is strictly ascending, so the answer depends only on the pool
    state.  Raises ``AllocationExhausted`` when every number is used.
    """
    used = await used_numbers(session, event_id, exclude_registrant_id)
    used.update(extra_used)

    max_number = settings.MAX_DYNAMIC_NUMBER
    for candidate in range(1, max_number + 1):
        if candidate not in used:
            return candidate

    logger.warning("number_pool_exhausted event_id=%s max=%s", event_id, max_number)
    raise AllocationExhausted(event_id, max_number)
