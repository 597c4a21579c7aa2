import logging
import time
from typing import Any, Awaitable, Callable

from aiogram import BaseMiddleware
from aiogram.fsm.context import FSMContext
from aiogram.types import TelegramObject

logger = logging.getLogger(__name__)

TOUCHED_KEY = "touched_at"


class RegistrationTimeoutMiddleware(BaseMiddleware):
    """Drops an unfinished registration dialogue after *ttl_seconds* of silence.

    The dialogue lives in aiogram's FSM storage (one record per chat/user).
    Every update that leaves the user inside a dialogue refreshes
    ``touched_at``; an update arriving after the TTL finds the state cleared
    and is handled as if no dialogue was open.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.time):
        super().__init__()
        self.ttl_seconds = ttl_seconds
        self.clock = clock

    async def __call__(
        self,
        handler: Callable[[TelegramObject, dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: dict[str, Any],
    ) -> Any:
        state: FSMContext | None = data.get("state")
        if state is None:
            return await handler(event, data)

        if await state.get_state() is not None:
            touched = (await state.get_data()).get(TOUCHED_KEY)
            if touched is not None and self.clock() - touched > self.ttl_seconds:
                logger.info("registration_session_expired key=%s", state.key)
                await state.clear()
                data["raw_state"] = None

        result = await handler(event, data)

        if await state.get_state() is not None:
            await state.update_data({TOUCHED_KEY: self.clock()})
        return result
