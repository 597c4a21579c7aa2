"""Registration lifecycle: the only place that decides a participant's number.

Every create / reactivate / nickname change asks :func:`resolve_strategy`
once.  A fixed binding wins (``FixedNumber``: clear the seat, take it);
otherwise the number comes from the event pool (``DynamicNumber``).
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Optional, Union

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import col, select

from event_bot.errors import AlreadyRegistered, NotFound
from event_bot.models import Event, FixedNumberBinding, Registrant, ReservedNumber
from event_bot.services.conflicts import Reassignment, assign_number, clear_seat
from event_bot.services.fixed_bindings import get_binding_by_nickname
from event_bot.services.locks import NumberLocks, number_locks
from event_bot.services.number_pool import next_available
from event_bot.utils.nickname import normalize_nickname
from event_bot.utils.phone import normalize_phone
from event_bot.utils.time import utcnow
from event_bot.utils.transport import normalize_transport_type

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FixedNumber:
    number: int


@dataclass(frozen=True)
class DynamicNumber:
    pass


NumberStrategy = Union[FixedNumber, DynamicNumber]


@dataclass
class RegistrationOutcome:
    registrant: Registrant
    evictions: List[Reassignment] = field(default_factory=list)


UPDATABLE_FIELDS = frozenset(
    {"full_name", "phone", "transport_type", "transport_model", "telegram_nickname", "is_active"}
)


async def resolve_strategy(session: AsyncSession, nickname: Optional[str]) -> NumberStrategy:
    binding = await get_binding_by_nickname(session, nickname)
    if binding:
        return FixedNumber(binding.participant_number)
    return DynamicNumber()


async def _seat(
    session: AsyncSession,
    event_id: int,
    strategy: NumberStrategy,
    registrant_id: Optional[int] = None,
) -> tuple[int, Optional[Reassignment]]:
    if isinstance(strategy, FixedNumber):
        eviction = await clear_seat(session, event_id, strategy.number, exclude_registrant_id=registrant_id)
        return strategy.number, eviction
    number = await next_available(session, event_id, exclude_registrant_id=registrant_id)
    return number, None


async def _still_free(session: AsyncSession, registrant: Registrant, nickname: Optional[str]) -> bool:
    """Can a returning registrant keep their old number?"""
    number = registrant.participant_number
    if number is None:
        return False

    holder = (
        await session.execute(
            select(Registrant.id)
            .where(Registrant.event_id == registrant.event_id)
            .where(Registrant.participant_number == number)
            .where(Registrant.is_active == True)  # noqa: E712
            .where(Registrant.id != registrant.id)
        )
    ).first()
    if holder:
        return False

    reserved = (
        await session.execute(
            select(ReservedNumber.id)
            .where(ReservedNumber.event_id == registrant.event_id)
            .where(ReservedNumber.number == number)
        )
    ).first()
    if reserved:
        return False

    bound_to = (
        await session.execute(
            select(FixedNumberBinding.telegram_nickname).where(FixedNumberBinding.participant_number == number)
        )
    ).scalars().first()
    return bound_to is None or bound_to == nickname


def _clean_profile(event: Event, values: dict[str, Any]) -> dict[str, Any]:
    """Validate and normalise profile fields; raises ``ValueError`` with a user-facing message."""
    cleaned = dict(values)
    if "full_name" in cleaned:
        full_name = (cleaned["full_name"] or "").strip()
        if len(full_name) < 2:
            raise ValueError("ФИО должно содержать минимум 2 символа.")
        cleaned["full_name"] = full_name
    if "phone" in cleaned:
        phone = normalize_phone(cleaned["phone"] or "")
        if phone is None:
            raise ValueError("Неверный формат телефона. Используйте: +7 (XXX) XXX-XX-XX")
        cleaned["phone"] = phone
    if "transport_type" in cleaned:
        transport = normalize_transport_type(cleaned["transport_type"])
        if transport is None or transport not in (event.allowed_transport_types or []):
            raise ValueError("Этот тип транспорта недоступен для мероприятия.")
        cleaned["transport_type"] = transport
    if "transport_model" in cleaned:
        model = (cleaned["transport_model"] or "").strip()
        cleaned["transport_model"] = model or None
    if "telegram_nickname" in cleaned:
        cleaned["telegram_nickname"] = normalize_nickname(cleaned["telegram_nickname"])
    if "is_active" in cleaned:
        cleaned["is_active"] = bool(cleaned["is_active"])
    return cleaned


# ---------------- reads ----------------


async def get_registrant(session: AsyncSession, registrant_id: int) -> Registrant:
    registrant = await session.get(Registrant, registrant_id)
    if not registrant:
        raise NotFound("registrant", registrant_id)
    return registrant


async def get_registration(session: AsyncSession, telegram_id: str, event_id: int) -> Optional[Registrant]:
    result = await session.execute(
        select(Registrant)
        .where(Registrant.telegram_id == str(telegram_id))
        .where(Registrant.event_id == event_id)
        .execution_options(populate_existing=True)
    )
    return result.scalars().first()


async def list_registrations_by_telegram_id(session: AsyncSession, telegram_id: str) -> List[Registrant]:
    result = await session.execute(
        select(Registrant).where(Registrant.telegram_id == str(telegram_id)).order_by(col(Registrant.id))
    )
    return list(result.scalars().all())


async def list_event_registrants(session: AsyncSession, event_id: int, active_only: bool = False) -> List[Registrant]:
    stmt = select(Registrant).where(Registrant.event_id == event_id)
    if active_only:
        stmt = stmt.where(Registrant.is_active == True)  # noqa: E712
    result = await session.execute(
        stmt.order_by(col(Registrant.participant_number).is_(None), col(Registrant.participant_number))
    )
    return list(result.scalars().all())


async def list_all_registrants(session: AsyncSession) -> List[tuple[Registrant, str]]:
    """Every registration across events with its event name, newest first."""
    result = await session.execute(
        select(Registrant, Event.name)
        .join(Event, col(Event.id) == col(Registrant.event_id))
        .order_by(col(Registrant.created_at).desc(), col(Registrant.id).desc())
    )
    return [(registrant, event_name) for registrant, event_name in result.all()]


async def list_known_nicknames(session: AsyncSession) -> List[str]:
    result = await session.execute(
        select(Registrant.telegram_nickname)
        .where(Registrant.telegram_nickname != None)  # noqa: E711
        .where(Registrant.telegram_nickname != "")
        .distinct()
        .order_by(col(Registrant.telegram_nickname))
    )
    return [nick for nick in result.scalars().all() if nick]


async def count_registrations_between(session: AsyncSession, start: datetime, end: datetime) -> int:
    return (
        await session.scalar(
            select(func.count())
            .select_from(Registrant)
            .where(Registrant.created_at >= start)
            .where(Registrant.created_at < end)
            .where(Registrant.is_active == True)  # noqa: E712
        )
    ) or 0


# ---------------- writes ----------------


async def _registrant_event_id(session: AsyncSession, registrant_id: int) -> int:
    event_id = await session.scalar(select(Registrant.event_id).where(Registrant.id == registrant_id))
    if event_id is None:
        raise NotFound("registrant", registrant_id)
    return event_id


async def _load_locked(session: AsyncSession, registrant_id: int) -> Registrant:
    # Caller holds the event lock; drop whatever the identity map cached before it.
    registrant = await session.get(Registrant, registrant_id, populate_existing=True)
    if not registrant:
        raise NotFound("registrant", registrant_id)
    return registrant


async def register_participant(
    session: AsyncSession,
    event_id: int,
    telegram_id: str,
    full_name: str,
    phone: str,
    transport_type: str,
    transport_model: Optional[str] = None,
    telegram_nickname: Optional[str] = None,
    locks: NumberLocks = number_locks,
) -> RegistrationOutcome:
    """Register *telegram_id* for an event and assign the participant number.

    A previous, cancelled registration for the same event is reactivated
    with the new profile data instead of creating a second row.
    """
    event = await session.get(Event, event_id)
    if not event:
        raise NotFound("event", event_id)

    profile = _clean_profile(
        event,
        {
            "full_name": full_name,
            "phone": phone,
            "transport_type": transport_type,
            "transport_model": transport_model,
            "telegram_nickname": telegram_nickname,
        },
    )

    async with locks.event(event_id):
        existing = await get_registration(session, telegram_id, event_id)
        if existing and existing.is_active:
            raise AlreadyRegistered(str(telegram_id), event_id)
        if existing:
            return await _apply_update(session, event, existing, {**profile, "is_active": True})

        try:
            strategy = await resolve_strategy(session, profile["telegram_nickname"])
            number, eviction = await _seat(session, event_id, strategy)
            registrant = Registrant(
                telegram_id=str(telegram_id),
                event_id=event_id,
                participant_number=number,
                is_active=True,
                **profile,
            )
            session.add(registrant)
            await session.commit()
        except Exception:
            await session.rollback()
            raise

    logger.info(
        "registered event_id=%s registrant_id=%s number=%s strategy=%s",
        event_id,
        registrant.id,
        number,
        type(strategy).__name__,
    )
    return RegistrationOutcome(registrant=registrant, evictions=[eviction] if eviction else [])


async def update_registrant(
    session: AsyncSession,
    registrant_id: int,
    updates: dict[str, Any],
    locks: NumberLocks = number_locks,
) -> RegistrationOutcome:
    """Apply profile edits; re-resolve the number on reactivation or nickname change."""
    unknown = set(updates) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError("Нельзя изменить поля: " + ", ".join(sorted(unknown)))

    event_id = await _registrant_event_id(session, registrant_id)
    event = await session.get(Event, event_id)
    if not event:
        raise NotFound("event", event_id)

    cleaned = _clean_profile(event, updates)
    async with locks.event(event_id):
        registrant = await _load_locked(session, registrant_id)
        return await _apply_update(session, event, registrant, cleaned)


async def _apply_update(
    session: AsyncSession,
    event: Event,
    registrant: Registrant,
    cleaned: dict[str, Any],
) -> RegistrationOutcome:
    # Caller holds the event lock.  The registrant row is written last so the
    # eviction (if any) reaches the database before the new number does.
    try:
        will_be_active = cleaned.get("is_active", registrant.is_active)
        reactivating = will_be_active and not registrant.is_active
        nickname = cleaned.get("telegram_nickname", registrant.telegram_nickname)
        nickname_changed = nickname != registrant.telegram_nickname

        number = registrant.participant_number
        evictions: List[Reassignment] = []
        if will_be_active and (reactivating or nickname_changed):
            strategy = await resolve_strategy(session, nickname)
            if isinstance(strategy, FixedNumber):
                number, eviction = await _seat(session, event.id, strategy, registrant.id)  # type: ignore[arg-type]
                if eviction:
                    evictions.append(eviction)
            elif reactivating and not await _still_free(session, registrant, nickname):
                number, _ = await _seat(session, event.id, strategy, registrant.id)  # type: ignore[arg-type]

        for key, value in cleaned.items():
            setattr(registrant, key, value)
        previous = registrant.participant_number
        await assign_number(session, registrant, number)
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    if previous != number:
        logger.info(
            "renumbered event_id=%s registrant_id=%s %s -> %s",
            event.id,
            registrant.id,
            previous,
            number,
        )
    return RegistrationOutcome(registrant=registrant, evictions=evictions)


async def deactivate_registrant(
    session: AsyncSession,
    registrant_id: int,
    locks: NumberLocks = number_locks,
) -> Registrant:
    """Soft delete: the number stays on the record but returns to the event pool."""
    event_id = await _registrant_event_id(session, registrant_id)
    async with locks.event(event_id):
        registrant = await _load_locked(session, registrant_id)
        number = registrant.participant_number
        try:
            registrant.is_active = False
            registrant.updated_at = utcnow()
            session.add(registrant)
            await session.commit()
        except Exception:
            await session.rollback()
            raise
    logger.info("deactivated registrant_id=%s number=%s", registrant_id, number)
    return registrant


async def delete_registrant(
    session: AsyncSession,
    registrant_id: int,
    locks: NumberLocks = number_locks,
) -> None:
    event_id = await _registrant_event_id(session, registrant_id)
    async with locks.event(event_id):
        registrant = await _load_locked(session, registrant_id)
        try:
            await session.delete(registrant)
            await session.commit()
        except Exception:
            await session.rollback()
            raise
    logger.info("deleted registrant_id=%s event_id=%s", registrant_id, event_id)
