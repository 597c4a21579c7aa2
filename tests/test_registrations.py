import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func
from sqlmodel import select

from event_bot.config import settings
from event_bot.errors import AllocationExhausted, AlreadyRegistered, NotFound
from event_bot.models import Registrant
from event_bot.services.fixed_bindings import create_binding
from event_bot.services.registrations import (
    DynamicNumber,
    FixedNumber,
    count_registrations_between,
    deactivate_registrant,
    delete_registrant,
    get_registrant,
    get_registration,
    list_all_registrants,
    list_event_registrants,
    list_known_nicknames,
    list_registrations_by_telegram_id,
    resolve_strategy,
    update_registrant,
)
from event_bot.services.reserved_numbers import add_reserved_numbers

from helpers import active_numbers, make_event, numbers_by_nickname, register


async def test_first_registrant_gets_one(session):
    event = await make_event(session)

    outcome = await register(session, event.id, 100, "alice")

    assert outcome.registrant.participant_number == 1
    assert outcome.registrant.is_active is True
    assert outcome.evictions == []


async def test_reserved_number_is_skipped(session):
    event = await make_event(session)
    await register(session, event.id, 1, "alice")
    bob = (await register(session, event.id, 2, "bob")).registrant
    await add_reserved_numbers(session, event.id, [3])

    carol = (await register(session, event.id, 3, "carol")).registrant

    assert bob.participant_number == 2
    assert carol.participant_number == 4


async def test_profile_is_normalised(session):
    event = await make_event(session)

    registrant = (
        await register(
            session,
            event.id,
            1,
            " @Alice ",
            transport_type="Моноколесо",
            full_name="  Алиса Петрова ",
            phone="89161234567",
            transport_model=" Begode Master ",
        )
    ).registrant

    assert registrant.telegram_nickname == "alice"
    assert registrant.full_name == "Алиса Петрова"
    assert registrant.phone == "+7 (916) 123-45-67"
    assert registrant.transport_type == "monowheel"
    assert registrant.transport_model == "Begode Master"


@pytest.mark.parametrize(
    "overrides",
    [
        {"full_name": "А"},
        {"phone": "12345"},
        {"transport_type": "scooter"},
        {"transport_type": "bicycle"},
    ],
)
async def test_invalid_profile_is_rejected(session, overrides):
    event = await make_event(session, allowed_transport_types=["monowheel", "spectator"])

    with pytest.raises(ValueError):
        await register(session, event.id, 1, "alice", **{"transport_type": "monowheel", **overrides})
    assert await active_numbers(session, event.id) == []


async def test_unknown_event(session):
    with pytest.raises(NotFound):
        await register(session, 404, 1, "alice")


async def test_second_active_registration_is_rejected(session):
    event = await make_event(session)
    await register(session, event.id, 1, "alice")

    with pytest.raises(AlreadyRegistered):
        await register(session, event.id, 1, "alice")


async def test_same_person_in_two_events(session):
    first = await make_event(session, name="Первая")
    second = await make_event(session, name="Вторая")
    await register(session, first.id, 9, "zed")
    await register(session, second.id, 8, "yan")

    outcome = await register(session, second.id, 1, "alice")
    await register(session, first.id, 1, "alice")

    assert outcome.registrant.participant_number == 2
    assert [r.event_id for r in await list_registrations_by_telegram_id(session, "1")] == [second.id, first.id]


async def test_fixed_binding_applies_on_registration(session):
    event = await make_event(session)
    await create_binding(session, "dave", 7)

    assert await resolve_strategy(session, "@DAVE") == FixedNumber(7)
    assert await resolve_strategy(session, "alice") == DynamicNumber()
    assert await resolve_strategy(session, None) == DynamicNumber()

    await register(session, event.id, 1, "alice")
    dave = (await register(session, event.id, 2, "Dave")).registrant

    assert dave.participant_number == 7
    assert await numbers_by_nickname(session, event.id) == {"alice": 1, "dave": 7}


async def test_second_account_with_bound_nickname_takes_the_seat(session):
    event = await make_event(session)
    await create_binding(session, "dave", 1)
    first = (await register(session, event.id, 1, "dave")).registrant

    outcome = await register(session, event.id, 2, "dave")

    assert outcome.registrant.participant_number == 1
    assert [(m.registrant_id, m.from_number, m.to_number) for m in outcome.evictions] == [(first.id, 1, 2)]
    await session.refresh(first)
    assert first.is_active is True
    assert first.participant_number == 2


async def test_deactivate_then_reactivate_keeps_free_number(session):
    event = await make_event(session)
    await register(session, event.id, 1, "alice")
    await register(session, event.id, 2, "bob")
    await add_reserved_numbers(session, event.id, [3])
    carol = (await register(session, event.id, 3, "carol")).registrant
    assert carol.participant_number == 4

    await deactivate_registrant(session, carol.id)
    assert await active_numbers(session, event.id) == [1, 2]
    outcome = await update_registrant(session, carol.id, {"is_active": True})

    assert outcome.registrant.is_active is True
    assert outcome.registrant.participant_number == 4


async def test_soft_deleted_number_returns_to_pool(session):
    event = await make_event(session)
    alice = (await register(session, event.id, 1, "alice")).registrant
    await register(session, event.id, 2, "bob")

    await deactivate_registrant(session, alice.id)
    carol = (await register(session, event.id, 3, "carol")).registrant

    assert carol.participant_number == 1
    # history stays on the record
    assert (await get_registrant(session, alice.id)).participant_number == 1


async def test_reactivation_draws_new_number_when_old_one_was_taken(session):
    event = await make_event(session)
    await register(session, event.id, 1, "alice")
    carol = (await register(session, event.id, 2, "carol")).registrant
    await deactivate_registrant(session, carol.id)
    await register(session, event.id, 3, "dan")

    outcome = await update_registrant(session, carol.id, {"is_active": True})

    assert outcome.registrant.participant_number == 3
    assert await numbers_by_nickname(session, event.id) == {"alice": 1, "dan": 2, "carol": 3}


async def test_reactivation_draws_new_number_when_old_one_was_reserved(session):
    event = await make_event(session)
    await register(session, event.id, 1, "alice")
    carol = (await register(session, event.id, 2, "carol")).registrant
    await deactivate_registrant(session, carol.id)
    await add_reserved_numbers(session, event.id, [2])

    outcome = await update_registrant(session, carol.id, {"is_active": True})

    assert outcome.registrant.participant_number == 3


async def test_reactivation_draws_new_number_when_old_one_was_bound(session):
    event = await make_event(session)
    await register(session, event.id, 1, "alice")
    carol = (await register(session, event.id, 2, "carol")).registrant
    await deactivate_registrant(session, carol.id)
    await create_binding(session, "dave", 2)

    outcome = await update_registrant(session, carol.id, {"is_active": True})

    assert outcome.registrant.participant_number == 3


async def test_reactivation_applies_own_fixed_binding(session):
    event = await make_event(session)
    carol = (await register(session, event.id, 1, "carol")).registrant
    await deactivate_registrant(session, carol.id)
    await create_binding(session, "carol", 50)

    outcome = await update_registrant(session, carol.id, {"is_active": True})

    assert outcome.registrant.participant_number == 50


async def test_registering_again_reactivates_the_cancelled_row(session):
    event = await make_event(session)
    first_id = (await register(session, event.id, 1, "alice")).registrant.id
    await deactivate_registrant(session, first_id)

    outcome = await register(session, event.id, 1, "alice", full_name="Алиса Новая")

    assert outcome.registrant.id == first_id
    assert outcome.registrant.full_name == "Алиса Новая"
    assert outcome.registrant.participant_number == 1
    count = await session.scalar(select(func.count()).select_from(Registrant))
    assert count == 1


async def test_nickname_change_to_bound_nickname_moves_number(session):
    event = await make_event(session)
    await create_binding(session, "dave", 5)
    alice = (await register(session, event.id, 1, "alice")).registrant

    outcome = await update_registrant(session, alice.id, {"telegram_nickname": "@dave"})

    assert outcome.registrant.telegram_nickname == "dave"
    assert outcome.registrant.participant_number == 5


async def test_nickname_change_without_binding_keeps_number(session):
    event = await make_event(session)
    await register(session, event.id, 1, "alice")
    bob = (await register(session, event.id, 2, "bob")).registrant

    outcome = await update_registrant(session, bob.id, {"telegram_nickname": "robert", "transport_type": "monowheel"})

    assert outcome.registrant.participant_number == 2
    assert outcome.registrant.transport_type == "monowheel"


async def test_update_rejects_unknown_fields(session):
    event = await make_event(session)
    alice = (await register(session, event.id, 1, "alice")).registrant

    with pytest.raises(ValueError):
        await update_registrant(session, alice.id, {"participant_number": 42})


async def test_update_missing_registrant(session):
    with pytest.raises(NotFound):
        await update_registrant(session, 999, {"full_name": "Кто-то"})


async def test_exhausted_pool_rejects_registration(session, session_factory, monkeypatch):
    monkeypatch.setattr(settings, "MAX_DYNAMIC_NUMBER", 5)
    event = await make_event(session)
    event_id = event.id
    for telegram_id in (1, 2, 3):
        await register(session, event_id, telegram_id)
    await add_reserved_numbers(session, event_id, [4, 5])

    with pytest.raises(AllocationExhausted):
        await register(session, event_id, 4)

    async with session_factory() as fresh:
        assert await get_registration(fresh, "4", event_id) is None
        assert await active_numbers(fresh, event_id) == [1, 2, 3]


async def test_exhausted_reactivation_leaves_registrant_inactive(session, monkeypatch):
    monkeypatch.setattr(settings, "MAX_DYNAMIC_NUMBER", 2)
    event = await make_event(session)
    await register(session, event.id, 1)
    carol_id = (await register(session, event.id, 2)).registrant.id
    await deactivate_registrant(session, carol_id)
    await register(session, event.id, 3)

    with pytest.raises(AllocationExhausted):
        await update_registrant(session, carol_id, {"is_active": True})

    carol = await get_registrant(session, carol_id)
    await session.refresh(carol)
    assert carol.is_active is False


async def test_hard_delete(session):
    event = await make_event(session)
    alice = (await register(session, event.id, 1, "alice")).registrant

    await delete_registrant(session, alice.id)

    with pytest.raises(NotFound):
        await get_registrant(session, alice.id)
    assert (await register(session, event.id, 2, "bob")).registrant.participant_number == 1


async def test_concurrent_registrations_get_distinct_numbers(session_factory, session):
    event = await make_event(session)

    async def attempt(telegram_id: int) -> int:
        async with session_factory() as own_session:
            outcome = await register(own_session, event.id, telegram_id)
            return outcome.registrant.participant_number

    numbers = await asyncio.gather(*(attempt(i) for i in range(1, 11)))

    assert sorted(numbers) == list(range(1, 11))


async def test_reads(session):
    event = await make_event(session)
    await register(session, event.id, 1, "bob")
    alice = (await register(session, event.id, 2, "@Alice")).registrant
    await register(session, event.id, 3)
    await deactivate_registrant(session, alice.id)

    assert [r.telegram_nickname for r in await list_event_registrants(session, event.id)] == ["bob", "alice", None]
    assert len(await list_event_registrants(session, event.id, active_only=True)) == 2
    assert await list_known_nicknames(session) == ["alice", "bob"]

    now = datetime.now(timezone.utc)
    assert await count_registrations_between(session, now - timedelta(hours=1), now + timedelta(hours=1)) == 2


async def test_reactivation_sees_changes_made_by_another_session(session_factory, session):
    event = await make_event(session)
    event_id = event.id
    alice_id = (await register(session, event_id, 1, "alice")).registrant.id

    async with session_factory() as admin:
        await deactivate_registrant(admin, alice_id)
        bob = (await register(admin, event_id, 2, "bob")).registrant
        assert bob.participant_number == 1

    # this session still caches alice as active with number 1
    outcome = await update_registrant(session, alice_id, {"is_active": True})

    assert outcome.registrant.is_active is True
    assert outcome.registrant.participant_number == 2
    async with session_factory() as fresh:
        assert await numbers_by_nickname(fresh, event_id) == {"alice": 2, "bob": 1}


async def test_deactivation_returns_the_current_number(session_factory, session):
    event = await make_event(session)
    event_id = event.id
    alice_id = (await register(session, event_id, 1, "alice")).registrant.id

    async with session_factory() as admin:
        await create_binding(admin, "dave", 1)

    registrant = await deactivate_registrant(session, alice_id)

    assert registrant.is_active is False
    assert registrant.participant_number == 2
    async with session_factory() as fresh:
        assert await active_numbers(fresh, event_id) == []


async def test_deactivate_and_delete_missing_registrant(session):
    with pytest.raises(NotFound):
        await deactivate_registrant(session, 999)
    with pytest.raises(NotFound):
        await delete_registrant(session, 999)


async def test_all_registrants_across_events(session):
    first = await make_event(session, name="Первая")
    second = await make_event(session, name="Вторая")
    await register(session, first.id, 1, "alice")
    await register(session, second.id, 1, "alice")
    await register(session, second.id, 2, "bob")

    rows = await list_all_registrants(session)

    assert [(r.telegram_nickname, name) for r, name in rows] == [
        ("bob", "Вторая"),
        ("alice", "Вторая"),
        ("alice", "Первая"),
    ]
