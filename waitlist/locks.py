"""Per-key serialization of queue and capacity mutations."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Hashable


class KeyedLocks:
    """One asyncio lock per key, created on first use.

    Work on the same key (an institution, a class) runs one at a time;
    different keys never wait on each other.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        # Never pruned; keys are institution and class ids, a small bounded set
        self._locks: Dict[Hashable, asyncio.Lock] = {}

    def _lock_for(self, key: Hashable) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        async with self._lock_for(key):
            yield
