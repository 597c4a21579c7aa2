from unittest.mock import AsyncMock

import pytest

from event_bot.webapp.server import XLSX_CONTENT_TYPE, create_admin_app

EVENT = {"name": "Ночная покатушка", "location": "Парк Горького", "startsAt": "2026-11-01T19:00:00"}


def participant(event_id: int, telegram_id: str, nickname=None, **overrides) -> dict:
    body = {
        "eventId": event_id,
        "telegramId": telegram_id,
        "fullName": f"Участник {telegram_id}",
        "phone": "+79991234567",
        "transportType": "spectator",
        "telegramNickname": nickname,
    }
    body.update(overrides)
    return body


@pytest.fixture
async def client(aiohttp_client, session_factory):
    return await aiohttp_client(create_admin_app(session_factory))


@pytest.fixture
async def event_id(client) -> int:
    resp = await client.post("/api/events", json=EVENT)
    assert resp.status == 201
    return (await resp.json())["id"]


async def test_events_crud(client, event_id):
    resp = await client.get("/api/events")
    [listed] = await resp.json()
    assert listed["id"] == event_id
    assert listed["participantCount"] == 0
    assert listed["allowedTransportTypes"] == ["monowheel", "scooter", "eboard", "spectator"]

    resp = await client.put(f"/api/events/{event_id}", json={"location": "ВДНХ", "description": None})
    assert resp.status == 200
    assert (await resp.json())["location"] == "ВДНХ"

    resp = await client.delete(f"/api/events/{event_id}")
    assert resp.status == 200
    resp = await client.get(f"/api/events/{event_id}")
    assert resp.status == 404


async def test_registration_and_conflicts(client, event_id):
    resp = await client.post("/api/participants", json=participant(event_id, "1", "alice"))
    assert resp.status == 201
    data = await resp.json()
    assert data["participant"]["participantNumber"] == 1
    assert data["participant"]["phone"] == "+7 (999) 123-45-67"

    resp = await client.post("/api/participants", json=participant(event_id, "1", "alice"))
    assert resp.status == 409
    assert "уже зарегистрированы" in (await resp.json())["message"]

    await client.post("/api/participants", json=participant(event_id, "2", "bob"))

    resp = await client.get("/api/fixed-bindings/check-conflicts/2", params={"nickname": "dave"})
    preview = await resp.json()
    assert preview["hasConflicts"] is True
    assert [(c["telegramNickname"], c["toNumber"]) for c in preview["conflicts"]] == [("bob", 3)]

    resp = await client.post("/api/fixed-bindings", json={"telegramNickname": "@dave", "participantNumber": 2})
    assert resp.status == 201
    created = await resp.json()
    assert created["binding"]["telegramNickname"] == "dave"
    assert [(e["fromNumber"], e["toNumber"]) for e in created["evictions"]] == [(2, 3)]

    resp = await client.post("/api/fixed-bindings", json={"telegramNickname": "eve", "participantNumber": 2})
    assert resp.status == 409
    body = await resp.json()
    assert body["conflictWith"] == "dave"

    resp = await client.post("/api/fixed-bindings", json={"telegramNickname": "dave", "participantNumber": 8})
    assert resp.status == 409
    assert (await resp.json())["existingNumber"] == 2

    resp = await client.get(f"/api/events/{event_id}/participants")
    numbers = {p["telegramNickname"]: p["participantNumber"] for p in await resp.json()}
    assert numbers == {"alice": 1, "bob": 3}

    resp = await client.get("/api/telegram-nicknames")
    assert await resp.json() == ["alice", "bob"]


async def test_participant_update_and_delete(client, event_id):
    resp = await client.post("/api/participants", json=participant(event_id, "1", "alice"))
    registrant_id = (await resp.json())["participant"]["id"]

    resp = await client.put(f"/api/participants/{registrant_id}", json={"transportType": "monowheel", "transportModel": "Begode"})
    assert resp.status == 200
    assert (await resp.json())["participant"]["transportModel"] == "Begode"

    resp = await client.delete(f"/api/participants/{registrant_id}")
    assert (await resp.json())["isActive"] is False

    resp = await client.put(f"/api/participants/{registrant_id}", json={"isActive": True})
    assert (await resp.json())["participant"]["participantNumber"] == 1

    resp = await client.delete(f"/api/users/{registrant_id}")
    assert resp.status == 200
    resp = await client.delete(f"/api/users/{registrant_id}")
    assert resp.status == 404


async def test_reserved_numbers(client, event_id):
    resp = await client.post(f"/api/events/{event_id}/reserved-numbers", json={"numbers": [1, 2, 150]})
    assert resp.status == 201
    assert await resp.json() == {"added": [1, 2], "skipped": [150], "duplicates": []}

    resp = await client.post("/api/participants", json=participant(event_id, "1"))
    assert (await resp.json())["participant"]["participantNumber"] == 3

    resp = await client.delete(f"/api/events/{event_id}/reserved-numbers", json={"numbers": [1]})
    assert await resp.json() == {"removed": 1}

    resp = await client.get(f"/api/events/{event_id}/reserved-numbers")
    assert [r["number"] for r in await resp.json()] == [2]


async def test_validation_errors(client, event_id):
    resp = await client.post("/api/participants", json=participant(event_id, "1", phone="12345"))
    assert resp.status == 400
    assert "телефона" in (await resp.json())["message"]

    resp = await client.post("/api/participants", json={"eventId": event_id})
    assert resp.status == 400
    fields = {err["field"] for err in (await resp.json())["errors"]}
    assert {"telegramId", "fullName", "phone", "transportType"} <= fields

    resp = await client.post("/api/fixed-bindings", data="not json", headers={"Content-Type": "application/json"})
    assert resp.status == 400

    resp = await client.post("/api/fixed-bindings", json={"telegramNickname": "dave", "participantNumber": 1000})
    assert resp.status == 400


async def test_not_found(client):
    assert (await client.get("/api/events/404/participants")).status == 404
    assert (await client.delete("/api/fixed-bindings/404")).status == 404
    assert (await client.post("/api/participants", json=participant(404, "1"))).status == 404


async def test_share_and_public_view(client, event_id):
    await client.post("/api/participants", json=participant(event_id, "1", "alice"))
    resp = await client.post(f"/api/events/{event_id}/share")
    code = (await resp.json())["shareCode"]

    resp = await client.get(f"/api/public/events/{code}")
    view = await resp.json()
    assert view["event"]["id"] == event_id
    assert view["participants"][0]["participantNumber"] == 1


async def test_export_and_stats(client, event_id):
    await client.post("/api/participants", json=participant(event_id, "1", "alice"))

    resp = await client.get(f"/api/events/{event_id}/export")
    assert resp.status == 200
    assert resp.content_type == XLSX_CONTENT_TYPE
    assert (await resp.read())[:2] == b"PK"

    resp = await client.get("/api/stats/today")
    assert await resp.json() == {"registrationsToday": 1}


async def test_notify_without_bot(client, event_id):
    resp = await client.post(f"/api/events/{event_id}/notify-group")
    assert resp.status == 503


async def test_notify_posts_to_linked_chats(aiohttp_client, session_factory):
    bot = AsyncMock()
    client = await aiohttp_client(create_admin_app(session_factory, bot=bot))
    chat = await (await client.post("/api/chats", json={"chatId": "-100123", "title": "Покатушки"})).json()
    event = await (await client.post("/api/events", json={**EVENT, "chatIds": [chat["id"]]})).json()
    bare = await (await client.post("/api/events", json=EVENT)).json()

    resp = await client.post(f"/api/events/{event['id']}/notify-group")
    assert resp.status == 200
    assert (await resp.json())["sent"] == 1
    assert bot.send_message.await_args.args[0] == -100123

    resp = await client.post(f"/api/events/{bare['id']}/notify-group")
    assert resp.status == 404


async def test_chats_crud_and_event_links(client):
    resp = await client.post("/api/chats", json={"chatId": -100123, "title": "Покатушки"})
    assert resp.status == 201
    chat = await resp.json()
    assert chat["chatId"] == "-100123"

    resp = await client.post("/api/chats", json={"chatId": "-100123"})
    assert resp.status == 409

    resp = await client.post("/api/events", json={**EVENT, "chatIds": [chat["id"]]})
    event = await resp.json()
    assert event["chatIds"] == [chat["id"]]

    resp = await client.put(f"/api/events/{event['id']}", json={"chatIds": [404]})
    assert resp.status == 404
    resp = await client.put(f"/api/events/{event['id']}", json={"chatIds": []})
    assert (await resp.json())["chatIds"] == []

    resp = await client.get("/api/chats")
    assert [c["title"] for c in await resp.json()] == ["Покатушки"]
    resp = await client.delete(f"/api/chats/{chat['id']}")
    assert resp.status == 200
    assert await (await client.get("/api/chats")).json() == []


async def test_locations_and_all_participants(client, event_id):
    resp = await client.post("/api/events", json={**EVENT, "name": "Дневная", "location": "ВДНХ"})
    other_id = (await resp.json())["id"]
    await client.post("/api/participants", json=participant(event_id, "1", "alice"))
    await client.post("/api/participants", json=participant(other_id, "2", "bob"))

    resp = await client.get("/api/events/locations")
    assert await resp.json() == ["ВДНХ", "Парк Горького"]

    resp = await client.get("/api/users/all")
    rows = await resp.json()
    assert [(r["telegramNickname"], r["eventName"]) for r in rows] == [("bob", "Дневная"), ("alice", "Ночная покатушка")]


async def test_admin_token(aiohttp_client, session_factory):
    client = await aiohttp_client(create_admin_app(session_factory, admin_token="secret"))

    assert (await client.get("/api/events")).status == 401
    assert (await client.get("/api/events", headers={"X-Admin-Token": "secret"})).status == 200
    # public pages stay open
    assert (await client.get("/api/public/events/AAA-BBBB-CCC")).status == 404
