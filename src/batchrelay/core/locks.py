"""Per-key asyncio locks for serializing record updates."""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator


class KeyedLock:
    """Hand out one asyncio.Lock per key, dropping it when nobody holds or waits on it.

    Serialization only covers coroutines running in this process; a second
    replica writing the same record is not coordinated.

    Example:
        >>> locks = KeyedLock()
        >>> async with locks.hold("rec123"):
        ...     fields = await store.read("rec123")
        ...     await store.patch("rec123", {...})
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)
