"""Admin JSON API served with aiohttp next to the bot.

``create_admin_app`` builds the application (used directly by tests);
``start_admin_server`` runs it on ``ADMIN_API_HOST:ADMIN_API_PORT``.
Every request gets its own ``AsyncSession`` in ``request["session"]``.
Service errors are turned into ``{"message": ..., ...details}`` responses.
"""

import logging
import os
from pathlib import Path
from typing import Any, Optional, Type, TypeVar

from aiogram import Bot
from aiohttp import web
from pydantic import BaseModel, ValidationError
from sqlalchemy.ext.asyncio import async_sessionmaker

from event_bot.config import settings
from event_bot.errors import (
    AllocationExhausted,
    AlreadyRegistered,
    DuplicateChat,
    DuplicateIdentifier,
    DuplicateNumber,
    NotFound,
    NumberingError,
)
from event_bot.models import Chat, Event, FixedNumberBinding, Registrant, ReservedNumber
from event_bot.services import chats as chats_service
from event_bot.services import events as events_service
from event_bot.services import fixed_bindings as bindings_service
from event_bot.services import registrations as registrations_service
from event_bot.services import reserved_numbers as reserved_service
from event_bot.services.broadcasts import notify_reassignments, send_event_summary
from event_bot.services.conflicts import preview_displacements
from event_bot.services.reports import make_event_report
from event_bot.utils.time import as_utc, today_bounds_utc
from event_bot.webapp.schemas import (
    ChatCreate,
    EventCreate,
    EventUpdate,
    FixedBindingCreate,
    ParticipantCreate,
    ParticipantUpdate,
    ReservedNumbersRequest,
)

logger = logging.getLogger(__name__)

routes = web.RouteTableDef()

SchemaT = TypeVar("SchemaT", bound=BaseModel)

CONFLICT_ERRORS = (AllocationExhausted, AlreadyRegistered, DuplicateChat, DuplicateIdentifier, DuplicateNumber)
NULLABLE_FIELDS = frozenset({"description", "transport_model", "telegram_nickname"})
XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


# ---------------- serialisation ----------------


def _iso(value):
    return as_utc(value).isoformat() if value else None


def event_to_dict(event: Event, chat_ids: Optional[list[int]] = None) -> dict:
    return {
        "id": event.id,
        "name": event.name,
        "description": event.description,
        "location": event.location,
        "startsAt": _iso(event.starts_at),
        "allowedTransportTypes": event.allowed_transport_types,
        "disableLinkPreviews": event.disable_link_previews,
        "shareCode": event.share_code,
        "isActive": event.is_active,
        "chatIds": chat_ids or [],
        "createdAt": _iso(event.created_at),
    }


def chat_to_dict(chat: Chat) -> dict:
    return {
        "id": chat.id,
        "chatId": chat.chat_id,
        "title": chat.title,
        "isActive": chat.is_active,
        "createdAt": _iso(chat.created_at),
    }


def registrant_to_dict(registrant: Registrant) -> dict:
    return {
        "id": registrant.id,
        "eventId": registrant.event_id,
        "telegramId": registrant.telegram_id,
        "telegramNickname": registrant.telegram_nickname,
        "fullName": registrant.full_name,
        "phone": registrant.phone,
        "transportType": registrant.transport_type,
        "transportModel": registrant.transport_model,
        "participantNumber": registrant.participant_number,
        "isActive": registrant.is_active,
        "createdAt": _iso(registrant.created_at),
    }


def binding_to_dict(binding: FixedNumberBinding) -> dict:
    return {
        "id": binding.id,
        "telegramNickname": binding.telegram_nickname,
        "participantNumber": binding.participant_number,
        "createdAt": _iso(binding.created_at),
    }


def reserved_to_dict(reserved: ReservedNumber) -> dict:
    return {"id": reserved.id, "eventId": reserved.event_id, "number": reserved.number}


# ---------------- helpers ----------------


async def _read(request: web.Request, schema: Type[SchemaT]) -> SchemaT:
    try:
        payload: Any = await request.json()
    except ValueError as exc:
        raise ValueError("Тело запроса должно быть в формате JSON.") from exc
    return schema.model_validate(payload)


def _updates(body: BaseModel) -> dict:
    return {
        key: value
        for key, value in body.model_dump(exclude_unset=True).items()
        if value is not None or key in NULLABLE_FIELDS
    }


def _int(request: web.Request, key: str) -> int:
    return int(request.match_info[key])


async def _notify(request: web.Request, moves) -> None:
    bot: Optional[Bot] = request.app["bot"]
    moves = list(moves)
    if bot is None or not moves:
        return
    sent, failed = await notify_reassignments(bot, request["session"], moves)
    logger.info("reassignment_notices sent=%d failed=%d", sent, failed)


# ---------------- middlewares ----------------


@web.middleware
async def error_middleware(request: web.Request, handler):
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except NotFound as exc:
        return web.json_response({"message": str(exc), **exc.details()}, status=404)
    except CONFLICT_ERRORS as exc:
        return web.json_response({"message": str(exc), **exc.details()}, status=409)
    except NumberingError as exc:
        return web.json_response({"message": str(exc), **exc.details()}, status=400)
    except ValidationError as exc:
        errors = [{"field": ".".join(str(p) for p in err["loc"]), "error": err["msg"]} for err in exc.errors()]
        return web.json_response({"message": "Некорректные данные запроса.", "errors": errors}, status=400)
    except ValueError as exc:
        return web.json_response({"message": str(exc)}, status=400)


@web.middleware
async def token_middleware(request: web.Request, handler):
    token = request.app["admin_token"]
    if token and not request.path.startswith("/api/public/"):
        if request.headers.get("X-Admin-Token") != token:
            return web.json_response({"message": "Требуется авторизация."}, status=401)
    return await handler(request)


@web.middleware
async def session_middleware(request: web.Request, handler):
    async with request.app["session_pool"]() as session:
        request["session"] = session
        return await handler(request)


# ---------------- events ----------------


@routes.get("/api/events")
async def list_events(request: web.Request) -> web.Response:
    session = request["session"]
    rows = await events_service.list_events_with_stats(session)
    return web.json_response(
        [
            {**event_to_dict(event, await chats_service.event_chat_ids(session, event.id)), **stats.as_dict()}  # type: ignore[arg-type]
            for event, stats in rows
        ]
    )


@routes.get("/api/events/locations")
async def list_locations(request: web.Request) -> web.Response:
    return web.json_response(await events_service.list_locations(request["session"]))


@routes.post("/api/events")
async def create_event(request: web.Request) -> web.Response:
    session = request["session"]
    body = await _read(request, EventCreate)
    event = await events_service.create_event(session, **body.model_dump())
    chat_ids = await chats_service.event_chat_ids(session, event.id)  # type: ignore[arg-type]
    return web.json_response(event_to_dict(event, chat_ids), status=201)


@routes.get(r"/api/events/{id:\d+}")
async def get_event(request: web.Request) -> web.Response:
    session = request["session"]
    event = await events_service.get_event(session, _int(request, "id"))
    stats = await events_service.event_stats(session, event.id)  # type: ignore[arg-type]
    chat_ids = await chats_service.event_chat_ids(session, event.id)  # type: ignore[arg-type]
    return web.json_response({**event_to_dict(event, chat_ids), **stats.as_dict()})


@routes.put(r"/api/events/{id:\d+}")
async def update_event(request: web.Request) -> web.Response:
    session = request["session"]
    event_id = _int(request, "id")
    body = await _read(request, EventUpdate)
    event = await events_service.update_event(session, event_id, _updates(body))
    return web.json_response(event_to_dict(event, await chats_service.event_chat_ids(session, event_id)))


@routes.delete(r"/api/events/{id:\d+}")
async def delete_event(request: web.Request) -> web.Response:
    await events_service.delete_event(request["session"], _int(request, "id"))
    return web.json_response({"message": "Мероприятие удалено."})


@routes.post(r"/api/events/{id:\d+}/share")
async def share_event(request: web.Request) -> web.Response:
    code = await events_service.ensure_share_code(request["session"], _int(request, "id"))
    return web.json_response({"shareCode": code})


@routes.get("/api/public/events/{share_code}")
async def public_event(request: web.Request) -> web.Response:
    view = await events_service.public_event_view(request["session"], request.match_info["share_code"])
    return web.json_response(view)


@routes.get(r"/api/events/{id:\d+}/export")
async def export_event(request: web.Request) -> web.Response:
    event_id = _int(request, "id")
    path = await make_event_report(request["session"], event_id)
    try:
        body = Path(path).read_bytes()
    finally:
        os.remove(path)
    return web.Response(
        body=body,
        content_type=XLSX_CONTENT_TYPE,
        headers={"Content-Disposition": f'attachment; filename="event_{event_id}_participants.xlsx"'},
    )


@routes.post(r"/api/events/{id:\d+}/notify-group")
async def notify_group(request: web.Request) -> web.Response:
    bot: Optional[Bot] = request.app["bot"]
    if bot is None:
        return web.json_response({"message": "Бот не запущен."}, status=503)
    sent, failed = await send_event_summary(bot, request["session"], _int(request, "id"))
    return web.json_response({"message": "Уведомление отправлено.", "sent": sent, "failed": failed})


@routes.get("/api/stats/today")
async def stats_today(request: web.Request) -> web.Response:
    start, end = today_bounds_utc()
    count = await registrations_service.count_registrations_between(request["session"], start, end)
    return web.json_response({"registrationsToday": count})


# ---------------- participants ----------------


@routes.get(r"/api/events/{id:\d+}/participants")
async def list_participants(request: web.Request) -> web.Response:
    session = request["session"]
    event_id = _int(request, "id")
    await events_service.get_event(session, event_id)
    active_only = request.query.get("activeOnly", "").lower() in ("1", "true")
    registrants = await registrations_service.list_event_registrants(session, event_id, active_only=active_only)
    return web.json_response([registrant_to_dict(r) for r in registrants])


@routes.post("/api/participants")
async def create_participant(request: web.Request) -> web.Response:
    body = await _read(request, ParticipantCreate)
    outcome = await registrations_service.register_participant(request["session"], **body.model_dump())
    await _notify(request, outcome.evictions)
    return web.json_response(
        {
            "participant": registrant_to_dict(outcome.registrant),
            "evictions": [move.as_dict() for move in outcome.evictions],
        },
        status=201,
    )


@routes.put(r"/api/participants/{id:\d+}")
async def update_participant(request: web.Request) -> web.Response:
    body = await _read(request, ParticipantUpdate)
    outcome = await registrations_service.update_registrant(request["session"], _int(request, "id"), _updates(body))
    await _notify(request, outcome.evictions)
    return web.json_response(
        {
            "participant": registrant_to_dict(outcome.registrant),
            "evictions": [move.as_dict() for move in outcome.evictions],
        }
    )


@routes.delete(r"/api/participants/{id:\d+}")
async def deactivate_participant(request: web.Request) -> web.Response:
    registrant = await registrations_service.deactivate_registrant(request["session"], _int(request, "id"))
    return web.json_response(registrant_to_dict(registrant))


@routes.get("/api/users/all")
async def list_all_participants(request: web.Request) -> web.Response:
    rows = await registrations_service.list_all_registrants(request["session"])
    return web.json_response([{**registrant_to_dict(r), "eventName": event_name} for r, event_name in rows])


@routes.delete(r"/api/users/{id:\d+}")
async def delete_participant(request: web.Request) -> web.Response:
    await registrations_service.delete_registrant(request["session"], _int(request, "id"))
    return web.json_response({"message": "Участник удалён."})


@routes.get("/api/telegram-nicknames")
async def telegram_nicknames(request: web.Request) -> web.Response:
    return web.json_response(await registrations_service.list_known_nicknames(request["session"]))


# ---------------- reserved numbers ----------------


@routes.get(r"/api/events/{id:\d+}/reserved-numbers")
async def list_reserved(request: web.Request) -> web.Response:
    session = request["session"]
    event_id = _int(request, "id")
    await events_service.get_event(session, event_id)
    reserved = await reserved_service.list_reserved_numbers(session, event_id)
    return web.json_response([reserved_to_dict(r) for r in reserved])


@routes.post(r"/api/events/{id:\d+}/reserved-numbers")
async def add_reserved(request: web.Request) -> web.Response:
    body = await _read(request, ReservedNumbersRequest)
    result = await reserved_service.add_reserved_numbers(request["session"], _int(request, "id"), body.numbers)
    return web.json_response(result.as_dict(), status=201)


@routes.delete(r"/api/events/{id:\d+}/reserved-numbers")
async def remove_reserved(request: web.Request) -> web.Response:
    body = await _read(request, ReservedNumbersRequest)
    removed = await reserved_service.remove_reserved_numbers(request["session"], _int(request, "id"), body.numbers)
    return web.json_response({"removed": removed})


# ---------------- fixed bindings ----------------


@routes.get("/api/fixed-bindings")
async def list_bindings(request: web.Request) -> web.Response:
    bindings = await bindings_service.list_bindings(request["session"])
    return web.json_response([binding_to_dict(b) for b in bindings])


@routes.get(r"/api/fixed-bindings/check-conflicts/{number:\d+}")
async def check_conflicts(request: web.Request) -> web.Response:
    number = _int(request, "number")
    displacements = await preview_displacements(request["session"], number, request.query.get("nickname"))
    return web.json_response(
        {
            "number": number,
            "hasConflicts": bool(displacements),
            "conflicts": [d.as_dict() for d in displacements],
        }
    )


@routes.post("/api/fixed-bindings")
async def create_binding(request: web.Request) -> web.Response:
    body = await _read(request, FixedBindingCreate)
    outcome = await bindings_service.create_binding(
        request["session"], body.telegram_nickname, body.participant_number
    )
    await _notify(request, [*outcome.evictions, *outcome.reseated])
    return web.json_response(
        {
            "binding": binding_to_dict(outcome.binding),
            "evictions": [move.as_dict() for move in outcome.evictions],
            "reseated": [move.as_dict() for move in outcome.reseated],
        },
        status=201,
    )


@routes.delete(r"/api/fixed-bindings/{id:\d+}")
async def delete_binding(request: web.Request) -> web.Response:
    await bindings_service.delete_binding(request["session"], _int(request, "id"))
    return web.json_response({"message": "Привязка удалена."})


# ---------------- chats ----------------


@routes.get("/api/chats")
async def list_chats(request: web.Request) -> web.Response:
    chats = await chats_service.list_chats(request["session"])
    return web.json_response([chat_to_dict(c) for c in chats])


@routes.post("/api/chats")
async def create_chat(request: web.Request) -> web.Response:
    body = await _read(request, ChatCreate)
    chat = await chats_service.create_chat(request["session"], body.chat_id, body.title)
    return web.json_response(chat_to_dict(chat), status=201)


@routes.delete(r"/api/chats/{id:\d+}")
async def delete_chat(request: web.Request) -> web.Response:
    await chats_service.delete_chat(request["session"], _int(request, "id"))
    return web.json_response({"message": "Чат удалён."})


# ---------------- application ----------------


def create_admin_app(
    session_pool: async_sessionmaker,
    bot: Optional[Bot] = None,
    admin_token: Optional[str] = None,
) -> web.Application:
    app = web.Application(middlewares=[error_middleware, token_middleware, session_middleware])
    app["session_pool"] = session_pool
    app["bot"] = bot
    app["admin_token"] = admin_token
    app.add_routes(routes)
    return app


async def start_admin_server(
    session_pool: async_sessionmaker,
    bot: Optional[Bot] = None,
    host: Optional[str] = None,
    port: Optional[int] = None,
) -> web.AppRunner:
    """Start the admin API in the running event loop; the caller owns ``runner.cleanup()``."""
    app = create_admin_app(session_pool, bot, settings.ADMIN_API_TOKEN)
    runner = web.AppRunner(app)
    await runner.setup()
    _host = host or settings.ADMIN_API_HOST
    _port = port or settings.ADMIN_API_PORT
    site = web.TCPSite(runner, host=_host, port=_port)
    await site.start()
    logger.info("Admin API is being served at http://%s:%d/", _host, _port)
    return runner
