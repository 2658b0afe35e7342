"""
In-memory authority cache.

Single-process backend for tests and local development. Entries carry an
absolute expiry on a monotonic clock; expired entries are dropped on read.

Invariants:
    - All data is lost on process exit
    - Never shared between processes (use RedisCache for that)
"""

from __future__ import annotations

import asyncio
import time
from typing import Callable, Dict, Optional, Tuple


class InMemoryCache:
    """In-memory implementation of AuthorityCache.

    Example:
        >>> cache = InMemoryCache()
        >>> await cache.set_with_expiry("acme:acme.io", "{}", 300)
        >>> await cache.get("acme:acme.io")
        '{}'
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        """Initialize the cache.

        Args:
            clock: Source of monotonic seconds, injectable for tests
        """
        self._clock = clock
        self._entries: Dict[str, Tuple[str, float]] = {}
        self._lock = asyncio.Lock()

    async def connect(self) -> None:
        pass

    async def close(self) -> None:
        async with self._lock:
            self._entries.clear()

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    async def set_with_expiry(self, key: str, value: str, ttl_seconds: int) -> None:
        async with self._lock:
            self._entries[key] = (value, self._clock() + ttl_seconds)

    async def refresh_expiry(self, key: str, ttl_seconds: int) -> bool:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None or self._clock() >= entry[1]:
                self._entries.pop(key, None)
                return False
            self._entries[key] = (entry[0], self._clock() + ttl_seconds)
            return True

    async def delete(self, *keys: str) -> int:
        async with self._lock:
            removed = 0
            for key in keys:
                if self._entries.pop(key, None) is not None:
                    removed += 1
            return removed

    def __len__(self) -> int:
        return len(self._entries)
