from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable


class UserLocks:
    """Per-user ``asyncio.Lock`` registry.

    Locks are taken in ascending user id order so two operations touching the
    same pair of users cannot deadlock. When disabled, ``hold`` is a no-op and
    balance updates race exactly as they would without it.
    """

    def __init__(self, enabled: bool = False) -> None:
        self.enabled = enabled
        self._locks: dict[int, asyncio.Lock] = {}

    def _lock(self, user_id: int) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = self._locks[user_id] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def hold(self, user_ids: Iterable[int]) -> AsyncIterator[None]:
        if not self.enabled:
            yield
            return

        acquired: list[asyncio.Lock] = []
        try:
            for user_id in sorted(set(user_ids)):
                lock = self._lock(user_id)
                await lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
