import asyncio
from contextlib import AsyncExitStack, asynccontextmanager
from typing import AsyncIterator, Iterable


class NumberLocks:
    """Serialises number allocation per event inside one process.

    Registrations, updates and reserved-number edits take the lock of their
    event.  Fixed-binding changes take the registry lock and then every
    event lock in ascending id order, so no two holders can deadlock.
    """

    def __init__(self) -> None:
        self._events: dict[int, asyncio.Lock] = {}
        self._registry = asyncio.Lock()

    def _lock_for(self, event_id: int) -> asyncio.Lock:
        lock = self._events.get(event_id)
        if lock is None:
            lock = self._events[event_id] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def event(self, event_id: int) -> AsyncIterator[None]:
        async with self._lock_for(event_id):
            yield

    @asynccontextmanager
    async def registry(self, event_ids: Iterable[int]) -> AsyncIterator[None]:
        async with AsyncExitStack() as stack:
            await stack.enter_async_context(self._registry)
            for event_id in sorted(set(event_ids)):
                await stack.enter_async_context(self._lock_for(event_id))
            yield

    def reset(self) -> None:
        self._events.clear()
        self._registry = asyncio.Lock()


number_locks = NumberLocks()
