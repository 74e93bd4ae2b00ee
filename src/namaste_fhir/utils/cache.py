"""
In-process TTL cache used for signing keys and ABHA profiles.

Caches are plain instances owned by the service container; nothing here is a
module-level singleton. The clock is injectable so tests can move time.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Generic, Hashable, Optional, TypeVar

logger = logging.getLogger(__name__)

V = TypeVar("V")

Clock = Callable[[], float]


@dataclass
class CacheEntry(Generic[V]):
    """Cached value with the clock reading at which it was stored."""
    value: V
    stored_at: float


class TTLCache(Generic[V]):
    """
    Time-bounded key/value cache.

    ``get_or_load`` de-duplicates concurrent misses for the same key: the
    first caller runs the loader and every other caller awaits the same task.
    A loader that raises leaves the cache untouched.
    """

    def __init__(
        self,
        ttl_seconds: float,
        clock: Clock = time.monotonic,
        max_size: int = 1024,
        name: str = "cache",
    ):
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self.max_size = max_size
        self.name = name
        self._entries: Dict[Hashable, CacheEntry[V]] = {}
        self._in_flight: Dict[Hashable, "asyncio.Task[V]"] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key) is not None

    def get(self, key: Hashable) -> Optional[V]:
        """Return the cached value, or None if absent or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self.clock() - entry.stored_at >= self.ttl_seconds:
            del self._entries[key]
            return None
        return entry.value

    def entry(self, key: Hashable) -> Optional[CacheEntry[V]]:
        """Return the live entry for a key, including its store time."""
        if self.get(key) is None:
            return None
        return self._entries[key]

    def set(self, key: Hashable, value: V) -> None:
        if key not in self._entries and len(self._entries) >= self.max_size:
            self._evict()
        self._entries[key] = CacheEntry(value=value, stored_at=self.clock())

    def _evict(self) -> None:
        now = self.clock()
        expired = [k for k, e in self._entries.items() if now - e.stored_at >= self.ttl_seconds]
        for key in expired:
            del self._entries[key]
        if len(self._entries) >= self.max_size:
            oldest = min(self._entries, key=lambda k: self._entries[k].stored_at)
            del self._entries[oldest]

    async def get_or_load(self, key: Hashable, loader: Callable[[], Awaitable[V]]) -> V:
        """
        Return the cached value for ``key``, loading it on a miss.

        Args:
            key: Cache key
            loader: Zero-argument coroutine function producing the value

        Returns:
            The cached or freshly loaded value

        Raises:
            Whatever the loader raises; nothing is cached in that case
        """
        cached = self.get(key)
        if cached is not None:
            logger.debug("%s hit: %s", self.name, key)
            return cached

        task = self._in_flight.get(key)
        if task is None:
            logger.debug("%s miss: %s", self.name, key)
            task = asyncio.ensure_future(self._load(key, loader))
            self._in_flight[key] = task

        # shield: one waiter being cancelled must not cancel the shared load
        return await asyncio.shield(task)

    async def _load(self, key: Hashable, loader: Callable[[], Awaitable[Any]]) -> V:
        try:
            value = await loader()
            self.set(key, value)
            return value
        finally:
            self._in_flight.pop(key, None)
