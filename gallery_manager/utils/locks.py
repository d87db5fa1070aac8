"""
Per-identity locks.

Promotion renames a directory after rewriting rows, and nothing else may touch
either identity in between. Every gallery operation takes the lock of each
(type, identity) it touches; multiple locks are taken in sorted order.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional, Tuple

Key = Tuple[str, str]


class IdentityLocks:
    """Registry of asyncio locks keyed by (type, identity), dropped when unused."""

    def __init__(self):
        self._locks: Dict[Key, asyncio.Lock] = {}
        self._users: Dict[Key, int] = {}

    def _acquire_ref(self, key: Key) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1
        return lock

    def _release_ref(self, key: Key) -> None:
        self._users[key] -= 1
        if self._users[key] == 0:
            del self._users[key]
            del self._locks[key]

    @asynccontextmanager
    async def hold(self, type: str, *identities: Optional[str]) -> AsyncIterator[None]:
        keys = sorted({(type, identity) for identity in identities if identity is not None})
        locks = [self._acquire_ref(key) for key in keys]
        acquired = []
        try:
            for lock in locks:
                await lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
            for key in keys:
                self._release_ref(key)

    def __len__(self) -> int:
        return len(self._locks)


# Process-wide registry shared by galleries that do not get their own
identity_locks = IdentityLocks()
