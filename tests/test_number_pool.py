import pytest

from event_bot.config import settings
from event_bot.errors import AllocationExhausted
from event_bot.models import FixedNumberBinding, Registrant, ReservedNumber
from event_bot.services.number_pool import next_available, used_numbers

from helpers import make_event


def seat(event_id: int, telegram_id: str, number: int, is_active: bool = True) -> Registrant:
    return Registrant(
        telegram_id=telegram_id,
        full_name="Тест Тестов",
        phone="+7 (999) 123-45-67",
        transport_type="spectator",
        participant_number=number,
        is_active=is_active,
        event_id=event_id,
    )


async def test_empty_event_starts_at_one(session):
    event = await make_event(session)
    assert await next_available(session, event.id) == 1


async def test_used_set_combines_registrants_reserved_and_fixed(session):
    event = await make_event(session)
    other = await make_event(session, name="Другая покатушка")
    session.add_all(
        [
            seat(event.id, "1", 1),
            seat(event.id, "2", 4, is_active=False),
            seat(other.id, "3", 5),
            ReservedNumber(event_id=event.id, number=2),
            ReservedNumber(event_id=other.id, number=6),
            FixedNumberBinding(telegram_nickname="dave", participant_number=3),
        ]
    )
    await session.commit()

    assert await used_numbers(session, event.id) == {1, 2, 3}
    # inactive registrant's 4 is free again; other event's numbers do not count
    assert await next_available(session, event.id) == 4
    assert await next_available(session, other.id) == 1


async def test_lowest_gap_is_returned(session):
    event = await make_event(session)
    session.add_all([seat(event.id, str(n), n) for n in (1, 2, 4, 7)])
    await session.commit()

    assert await next_available(session, event.id) == 3


async def test_exclude_and_extra_used(session):
    event = await make_event(session)
    holder = seat(event.id, "1", 1)
    session.add_all([holder, seat(event.id, "2", 2)])
    await session.commit()

    assert await next_available(session, event.id, exclude_registrant_id=holder.id) == 1
    assert await next_available(session, event.id, exclude_registrant_id=holder.id, extra_used={1}) == 3


async def test_exhausted_pool_raises(session, monkeypatch):
    monkeypatch.setattr(settings, "MAX_DYNAMIC_NUMBER", 3)
    event = await make_event(session)
    session.add_all([seat(event.id, "1", 1), ReservedNumber(event_id=event.id, number=2)])
    session.add(FixedNumberBinding(telegram_nickname="dave", participant_number=3))
    await session.commit()

    with pytest.raises(AllocationExhausted) as exc_info:
        await next_available(session, event.id)
    assert exc_info.value.details() == {"eventId": event.id, "maxNumber": 3}


async def test_fixed_numbers_above_range_do_not_matter(session, monkeypatch):
    monkeypatch.setattr(settings, "MAX_DYNAMIC_NUMBER", 2)
    event = await make_event(session)
    session.add(FixedNumberBinding(telegram_nickname="big", participant_number=500))
    await session.commit()

    assert await next_available(session, event.id) == 1
