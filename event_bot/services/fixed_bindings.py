import logging
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import col, select

from event_bot.config import settings
from event_bot.errors import DuplicateIdentifier, DuplicateNumber, NotFound
from event_bot.models import Event, FixedNumberBinding, Registrant
from event_bot.services.conflicts import Reassignment, assign_number, clear_seat
from event_bot.services.locks import NumberLocks, number_locks
from event_bot.utils.nickname import normalize_nickname

logger = logging.getLogger(__name__)


@dataclass
class BindingOutcome:
    binding: FixedNumberBinding
    # holders of the number who were moved elsewhere
    evictions: List[Reassignment] = field(default_factory=list)
    # registrations of the nickname moved onto the bound number
    reseated: List[Reassignment] = field(default_factory=list)


# --- lookups ---


async def list_bindings(session: AsyncSession) -> List[FixedNumberBinding]:
    result = await session.execute(
        select(FixedNumberBinding).order_by(col(FixedNumberBinding.participant_number))
    )
    return list(result.scalars().all())


async def get_binding_by_nickname(session: AsyncSession, nickname: Optional[str]) -> Optional[FixedNumberBinding]:
    normalized = normalize_nickname(nickname)
    if normalized is None:
        return None
    result = await session.execute(
        select(FixedNumberBinding).where(FixedNumberBinding.telegram_nickname == normalized)
    )
    return result.scalars().first()


async def get_binding_by_number(session: AsyncSession, number: int) -> Optional[FixedNumberBinding]:
    result = await session.execute(
        select(FixedNumberBinding).where(FixedNumberBinding.participant_number == number)
    )
    return result.scalars().first()


# --- create / delete ---


def _validate(nickname: Optional[str], number: int) -> str:
    normalized = normalize_nickname(nickname)
    if normalized is None:
        raise ValueError("Telegram-ник обязателен.")
    if isinstance(number, bool) or not isinstance(number, int):
        raise ValueError("Номер участника должен быть целым числом.")
    if not 1 <= number <= settings.MAX_FIXED_NUMBER:
        raise ValueError(f"Номер участника должен быть от 1 до {settings.MAX_FIXED_NUMBER}.")
    return normalized


async def create_binding(
    session: AsyncSession,
    nickname: str,
    number: int,
    locks: NumberLocks = number_locks,
) -> BindingOutcome:
    """Pin *nickname* to *number* in every event.

    1. Reject if the nickname already has a number (``DuplicateIdentifier``)
       or the number belongs to someone else (``DuplicateNumber``).
    2. Evict every other active holder of the number, event by event.
    3. Move every active registration of the nickname onto the number.

    Everything commits together; an ``AllocationExhausted`` during eviction
    rolls the binding back as well.
    """
    normalized = _validate(nickname, number)
    event_ids = (await session.execute(select(Event.id))).scalars().all()

    async with locks.registry(event_ids):
        try:
            existing = await get_binding_by_nickname(session, normalized)
            if existing:
                raise DuplicateIdentifier(normalized, existing.participant_number)
            taken = await get_binding_by_number(session, number)
            if taken and taken.telegram_nickname != normalized:
                raise DuplicateNumber(number, taken.telegram_nickname)

            binding = FixedNumberBinding(telegram_nickname=normalized, participant_number=number)
            session.add(binding)
            await session.flush()

            outcome = BindingOutcome(binding=binding)

            holders = (
                await session.execute(
                    select(Registrant.event_id)
                    .where(Registrant.participant_number == number)
                    .where(Registrant.is_active == True)  # noqa: E712
                    .where(col(Registrant.telegram_nickname).is_distinct_from(normalized))
                    .distinct()
                    .order_by(col(Registrant.event_id))
                )
            ).scalars().all()
            for event_id in holders:
                eviction = await clear_seat(session, event_id, number, owner_nickname=normalized)
                if eviction:
                    outcome.evictions.append(eviction)

            owners = (
                await session.execute(
                    select(Registrant)
                    .where(Registrant.telegram_nickname == normalized)
                    .where(Registrant.is_active == True)  # noqa: E712
                    .order_by(col(Registrant.event_id), col(Registrant.id))
                )
            ).scalars().all()
            seated_events: set[int] = set()
            for registrant in owners:
                if registrant.event_id in seated_events:
                    continue
                seated_events.add(registrant.event_id)
                if registrant.participant_number == number:
                    continue
                eviction = await clear_seat(
                    session, registrant.event_id, number, exclude_registrant_id=registrant.id
                )
                if eviction:
                    outcome.evictions.append(eviction)
                previous = registrant.participant_number
                await assign_number(session, registrant, number)
                outcome.reseated.append(
                    Reassignment(
                        event_id=registrant.event_id,
                        registrant_id=registrant.id,  # type: ignore[arg-type]
                        full_name=registrant.full_name,
                        telegram_nickname=registrant.telegram_nickname,
                        from_number=previous,
                        to_number=number,
                    )
                )

            await session.commit()
        except Exception:
            await session.rollback()
            raise

    logger.info(
        "fixed_binding_created nickname=%s number=%s evicted=%d reseated=%d",
        normalized,
        number,
        len(outcome.evictions),
        len(outcome.reseated),
    )
    return outcome


async def delete_binding(session: AsyncSession, binding_id: int) -> None:
    """Remove a binding. Registrants keep whatever number they hold now."""
    binding = await session.get(FixedNumberBinding, binding_id)
    if not binding:
        raise NotFound("binding", binding_id)
    nickname = binding.telegram_nickname
    await session.delete(binding)
    await session.commit()
    logger.info("fixed_binding_deleted id=%s nickname=%s", binding_id, nickname)
