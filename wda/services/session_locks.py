"""Per-session mutual exclusion.

Every read-modify-write of a session runs under the session's lock, so two
coroutines in this process cannot interleave on the same session. Writers
outside the process are caught by the store's version check instead.

A lock lives only while some coroutine holds or waits for it; the entry is
dropped when the last one leaves, so the registry does not grow with the
number of sessions ever touched.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict

from wda.core.logging import bind_context, unbind_context


class SessionLockRegistry:
    """asyncio.Lock per session id, shared by the session-facing services."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def is_locked(self, session_id: str) -> bool:
        lock = self._locks.get(session_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, session_id: str) -> AsyncIterator[None]:
        """Hold the session lock and tag log lines with session_id."""
        lock = self._locks.get(session_id)
        if lock is None:
            lock = self._locks[session_id] = asyncio.Lock()
        # Counted before the first await so a waiter keeps the entry alive
        self._users[session_id] = self._users.get(session_id, 0) + 1
        try:
            async with lock:
                bind_context(session_id=session_id)
                try:
                    yield
                finally:
                    unbind_context("session_id")
        finally:
            self._users[session_id] -= 1
            if self._users[session_id] == 0:
                del self._users[session_id]
                del self._locks[session_id]
