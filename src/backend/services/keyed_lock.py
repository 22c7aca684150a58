"""
Per-key write serialization.

Gives every voter (or phone) its own asyncio lock so read-modify-write
sequences on one record never interleave, while unrelated keys proceed
concurrently. Locks are dropped as soon as nobody holds or waits on them.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator


class KeyedLock:
    """
    Usage:
        async with locks.hold(f"otp:{phone}"):
            # read, mutate and commit the record
            ...
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncGenerator[None, None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)
