"""Bounded in-process cache with LRU eviction and an injectable clock.

Used for research results: one entry per (patient, record content) pair.
Entries optionally expire after ``ttl_s`` seconds; ``ttl_s <= 0`` keeps
them until evicted by size.
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Generic, Hashable, TypeVar

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


@dataclass
class CacheStats:
    """Hit/miss/eviction counters for a cache instance."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0
    expirations: int = 0


class BoundedCache(Generic[K, V]):
    """LRU mapping with a maximum size and optional TTL.

    Usage::

        cache = BoundedCache(max_entries=128, ttl_s=3600, clock=time.monotonic)
        cache.set(key, value)
        value = cache.get(key)  # None on miss
    """

    def __init__(
        self,
        max_entries: int = 256,
        *,
        ttl_s: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._max_entries = max_entries
        self._ttl_s = ttl_s
        self._clock = clock
        self._entries: OrderedDict[K, tuple[float, V]] = OrderedDict()
        self.stats = CacheStats()

    def get(self, key: K) -> V | None:
        """Return the cached value for ``key`` or None, counting a hit or miss."""
        entry = self._entries.get(key)
        if entry is None:
            self.stats.misses += 1
            return None

        stored_at, value = entry
        if self._ttl_s > 0 and self._clock() - stored_at >= self._ttl_s:
            del self._entries[key]
            self.stats.expirations += 1
            self.stats.misses += 1
            return None

        self._entries.move_to_end(key)
        self.stats.hits += 1
        return value

    def set(self, key: K, value: V) -> None:
        """Store ``value``, evicting the least recently used entry when full."""
        if key in self._entries:
            self._entries.move_to_end(key)
        self._entries[key] = (self._clock(), value)

        while len(self._entries) > self._max_entries:
            evicted, _ = self._entries.popitem(last=False)
            self.stats.evictions += 1
            logger.debug("Evicted cache entry %r", evicted)

    def clear(self) -> None:
        """Drop every entry (stats are kept)."""
        self._entries.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
