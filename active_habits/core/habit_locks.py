from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, TypeVar

from loguru import logger

T = TypeVar("T")


class HabitLocks:
    """Per-habit exclusive sections; habits never wait on each other.

    ``coalesce`` runs a pass under the habit's lock. A request arriving while a
    pass is running waits for it and then runs once against the current state;
    any further requests arriving meanwhile share that follow-up pass.

    A habit's lock lives only while someone holds or waits for it.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}
        self._queued: dict[str, asyncio.Future] = {}

    @asynccontextmanager
    async def hold(self, habit_id: str) -> AsyncIterator[None]:
        lock = self._locks.get(habit_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[habit_id] = lock
        self._users[habit_id] = self._users.get(habit_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[habit_id] -= 1
            if not self._users[habit_id]:
                del self._users[habit_id]
                del self._locks[habit_id]

    def is_busy(self, habit_id: str) -> bool:
        lock = self._locks.get(habit_id)
        return lock is not None and lock.locked()

    def tracked(self) -> int:
        return len(self._locks)

    async def coalesce(self, habit_id: str, run_pass: Callable[[], Awaitable[T]]) -> T:
        queued = self._queued.get(habit_id)
        if queued is not None:
            logger.debug("coalesce habit={} status=joined", habit_id)
            return await asyncio.shield(queued)

        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._queued[habit_id] = future
        try:
            async with self.hold(habit_id):
                if self._queued.get(habit_id) is future:
                    del self._queued[habit_id]
                result = await run_pass()
        except BaseException as exc:
            if self._queued.get(habit_id) is future:
                del self._queued[habit_id]
            if not future.done():
                if isinstance(exc, asyncio.CancelledError):
                    future.cancel()
                else:
                    future.set_exception(exc)
                    # Mark retrieved; joiners re-raise it themselves.
                    future.exception()
            raise
        future.set_result(result)
        return result
