"""Per-application write serialization"""

import asyncio
import weakref
from contextlib import asynccontextmanager
from typing import AsyncIterator


class ApplicationLocks:
    """
    One asyncio.Lock per application id.

    asyncio.Lock wakes waiters in FIFO order, so writes for the same
    application apply in call order. Locks are dropped once nobody holds
    or awaits them.
    """

    def __init__(self) -> None:
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def lock_for(self, application_id: str) -> asyncio.Lock:
        lock = self._locks.get(application_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[application_id] = lock
        return lock

    @asynccontextmanager
    async def hold(self, application_id: str) -> AsyncIterator[None]:
        lock = self.lock_for(application_id)
        async with lock:
            yield
