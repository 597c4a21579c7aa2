import logging
import secrets
import string
from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy import delete, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import col, select

from event_bot.errors import NotFound
from event_bot.models import TRANSPORT_TYPES, Event, EventChat, Registrant, ReservedNumber
from event_bot.services.chats import replace_event_chats
from event_bot.services.locks import NumberLocks, number_locks
from event_bot.utils.time import as_utc, to_utc, utcnow
from event_bot.utils.transport import normalize_transport_type

logger = logging.getLogger(__name__)

_SHARE_ALPHABET = string.ascii_uppercase + string.digits
EVENT_FIELDS = frozenset(
    {"name", "description", "location", "starts_at", "allowed_transport_types", "disable_link_previews", "is_active"}
)


@dataclass(frozen=True)
class EventStats:
    participants: int = 0
    monowheel: int = 0
    scooter: int = 0
    eboard: int = 0
    spectator: int = 0

    def as_dict(self) -> dict:
        return {
            "participantCount": self.participants,
            "monowheelCount": self.monowheel,
            "scooterCount": self.scooter,
            "eboardCount": self.eboard,
            "spectatorCount": self.spectator,
        }


def generate_share_code() -> str:
    """Формат XXX-YYYY-ZZZ."""
    parts = ("".join(secrets.choice(_SHARE_ALPHABET) for _ in range(size)) for size in (3, 4, 3))
    return "-".join(parts)


def _clean_event_fields(values: dict[str, Any]) -> dict[str, Any]:
    cleaned = dict(values)
    if "name" in cleaned:
        name = (cleaned["name"] or "").strip()
        if len(name) < 2:
            raise ValueError("Название мероприятия обязательно.")
        cleaned["name"] = name
    if "location" in cleaned:
        location = (cleaned["location"] or "").strip()
        if len(location) < 2:
            raise ValueError("Место проведения обязательно.")
        cleaned["location"] = location
    if "starts_at" in cleaned:
        if cleaned["starts_at"] is None:
            raise ValueError("Дата и время мероприятия обязательны.")
        cleaned["starts_at"] = to_utc(cleaned["starts_at"])
    if "description" in cleaned:
        description = (cleaned["description"] or "").strip()
        if len(description) > 900:
            raise ValueError("Описание не должно превышать 900 символов.")
        cleaned["description"] = description or None
    if "allowed_transport_types" in cleaned:
        raw_types = cleaned["allowed_transport_types"]
        if raw_types is None:
            cleaned["allowed_transport_types"] = list(TRANSPORT_TYPES)
        else:
            types: list[str] = []
            for raw in raw_types:
                canonical = normalize_transport_type(raw)
                if canonical is None:
                    raise ValueError(f"Неизвестный тип транспорта: {raw}")
                if canonical not in types:
                    types.append(canonical)
            if not types:
                raise ValueError("Выберите хотя бы один тип транспорта.")
            cleaned["allowed_transport_types"] = types
    return cleaned


async def create_event(
    session: AsyncSession,
    name: str,
    location: str,
    starts_at: datetime,
    description: str | None = None,
    allowed_transport_types: list[str] | None = None,
    disable_link_previews: bool = False,
    chat_ids: list[int] | None = None,
) -> Event:
    """Naive *starts_at* is read as local time in ``settings.TIMEZONE``."""
    fields = _clean_event_fields(
        {
            "name": name,
            "location": location,
            "starts_at": starts_at,
            "description": description,
            "allowed_transport_types": allowed_transport_types,
        }
    )
    new_event = Event(
        disable_link_previews=disable_link_previews,
        share_code=generate_share_code(),
        **fields,
    )
    try:
        session.add(new_event)
        if chat_ids:
            await session.flush()
            await replace_event_chats(session, new_event.id, chat_ids)  # type: ignore[arg-type]
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    await session.refresh(new_event)
    return new_event


async def get_event(session: AsyncSession, event_id: int) -> Event:
    event = await session.get(Event, event_id)
    if not event:
        raise NotFound("event", event_id)
    return event


async def update_event(session: AsyncSession, event_id: int, updates: dict[str, Any]) -> Event:
    """Apply *updates*; a ``chat_ids`` entry replaces the set of linked chats."""
    updates = dict(updates)
    chat_ids = updates.pop("chat_ids", None)
    unknown = set(updates) - EVENT_FIELDS
    if unknown:
        raise ValueError("Нельзя изменить поля: " + ", ".join(sorted(unknown)))
    event = await get_event(session, event_id)
    cleaned = _clean_event_fields(updates)
    try:
        for key, value in cleaned.items():
            setattr(event, key, value)
        event.updated_at = utcnow()
        session.add(event)
        if chat_ids is not None:
            await replace_event_chats(session, event_id, chat_ids)
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    return event


async def delete_event(session: AsyncSession, event_id: int, locks: NumberLocks = number_locks) -> None:
    """Удаляет мероприятие вместе с его участниками, резервом номеров и привязками к чатам."""
    async with locks.event(event_id):
        event = await get_event(session, event_id)
        try:
            await session.execute(delete(Registrant).where(col(Registrant.event_id) == event_id))
            await session.execute(delete(ReservedNumber).where(col(ReservedNumber.event_id) == event_id))
            await session.execute(delete(EventChat).where(col(EventChat.event_id) == event_id))
            await session.delete(event)
            await session.commit()
        except Exception:
            await session.rollback()
            raise
    logger.info("event_deleted event_id=%s", event_id)


async def list_locations(session: AsyncSession) -> List[str]:
    """Distinct event locations, for the admin form's suggestions."""
    result = await session.execute(select(Event.location).distinct().order_by(col(Event.location)))
    return [location for location in result.scalars().all() if location]


async def get_event_by_share_code(session: AsyncSession, share_code: str) -> Optional[Event]:
    result = await session.execute(select(Event).where(Event.share_code == share_code))
    return result.scalars().first()


async def ensure_share_code(session: AsyncSession, event_id: int) -> str:
    event = await get_event(session, event_id)
    if not event.share_code:
        event.share_code = generate_share_code()
        event.updated_at = utcnow()
        session.add(event)
        await session.commit()
    return event.share_code  # type: ignore[return-value]


async def get_active_events(session: AsyncSession) -> List[Event]:
    result = await session.execute(
        select(Event)
        .where(Event.is_active == True)  # noqa: E712
        .order_by(col(Event.starts_at))
    )
    return list(result.scalars().all())


async def event_stats(session: AsyncSession, event_id: int) -> EventStats:
    rows = (
        await session.execute(
            select(Registrant.transport_type, func.count())
            .where(Registrant.event_id == event_id)
            .where(Registrant.is_active == True)  # noqa: E712
            .group_by(col(Registrant.transport_type))
        )
    ).all()
    counts = {transport: count for transport, count in rows}
    return EventStats(
        participants=sum(counts.values()),
        monowheel=counts.get("monowheel", 0),
        scooter=counts.get("scooter", 0),
        eboard=counts.get("eboard", 0),
        spectator=counts.get("spectator", 0),
    )


async def list_events_with_stats(session: AsyncSession) -> List[tuple[Event, EventStats]]:
    events = (await session.execute(select(Event).order_by(col(Event.created_at).desc()))).scalars().all()
    return [(event, await event_stats(session, event.id)) for event in events]  # type: ignore[arg-type]


async def public_event_view(session: AsyncSession, share_code: str) -> dict:
    """Публичная страница мероприятия: только активные участники, без телефонов."""
    event = await get_event_by_share_code(session, share_code)
    if not event:
        raise NotFound("event", share_code)
    registrants = (
        await session.execute(
            select(Registrant)
            .where(Registrant.event_id == event.id)
            .where(Registrant.is_active == True)  # noqa: E712
            .order_by(col(Registrant.participant_number))
        )
    ).scalars().all()
    return {
        "event": {
            "id": event.id,
            "name": event.name,
            "description": event.description,
            "location": event.location,
            "startsAt": as_utc(event.starts_at).isoformat(),
        },
        "participants": [
            {
                "id": r.id,
                "fullName": r.full_name,
                "telegramNickname": r.telegram_nickname,
                "transportType": r.transport_type,
                "transportModel": r.transport_model,
                "participantNumber": r.participant_number,
            }
            for r in registrants
        ],
    }
