"""
KeyedLock: one asyncio.Lock per key, created on demand.

Serializes work for the same key inside one process (e.g. score submissions
for one learner/course pair) while letting different keys run concurrently.
Locks are dropped once no task holds or waits for them.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Hashable, Tuple

from courseboard.core.logging.logger import get_logger

logger = get_logger(__name__)


class KeyedLock:
    def __init__(self, name: str = "keyed_lock") -> None:
        self._name = name
        # key -> (lock, number of holders + waiters)
        self._entries: Dict[Hashable, Tuple[asyncio.Lock, int]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def is_locked(self, key: Hashable) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry[0].locked()

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        """Hold the lock for `key` for the duration of the block."""
        lock, refs = self._entries.get(key, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._entries[key] = (lock, refs + 1)

        try:
            if lock.locked():
                logger.debug(
                    "Waiting for keyed lock",
                    extra={"lock_name": self._name, "lock_key": str(key)},
                )
            async with lock:
                yield
        finally:
            current_lock, current_refs = self._entries[key]
            if current_refs <= 1:
                del self._entries[key]
            else:
                self._entries[key] = (current_lock, current_refs - 1)
