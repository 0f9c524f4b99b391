"""
In-memory result cache for provider lookups.

Entries are never refreshed in place: a read past the duration bound is a
miss, and the stale entry stays put until the next ``set`` for that key
overwrites it (or LRU eviction removes it).
"""
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Optional

import structlog

logger = structlog.get_logger()

CARD_CACHE_DURATION = 4 * 60 * 60
CURRENCY_CACHE_DURATION = 60 * 60


@dataclass
class CacheEntry:
    """A cached payload and the epoch-seconds time it was stored."""
    payload: Any
    timestamp: float


class ResultCache:
    """
    Time-bounded memoization with LRU eviction.

    Usage:
        cache = ResultCache(duration=CARD_CACHE_DURATION)
        cached = cache.get(key)
        if cached is None:
            cached = await fetch()
            cache.set(key, cached)
    """

    def __init__(
        self,
        duration: float = CARD_CACHE_DURATION,
        max_size: int = 1000,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize cache.

        Args:
            duration: Seconds an entry stays readable after it was stored.
            max_size: Maximum number of entries before the oldest is evicted.
            clock: Source of epoch seconds (injectable for tests).
        """
        self.duration = duration
        self.max_size = max_size
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()

    def get(self, key: str) -> Optional[Any]:
        """
        Get a fresh value from cache.

        Returns:
            Cached payload, or None if absent or older than ``duration``.
        """
        entry = self._entries.get(key)
        if entry is None:
            return None

        if self._clock() - entry.timestamp >= self.duration:
            return None

        self._entries.move_to_end(key)
        return entry.payload

    def get_entry(self, key: str) -> Optional[CacheEntry]:
        """Return the raw entry for ``key`` regardless of age."""
        return self._entries.get(key)

    def age(self, key: str) -> Optional[float]:
        """Seconds since ``key`` was stored, or None if absent."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        return self._clock() - entry.timestamp

    def set(self, key: str, value: Any) -> None:
        """Store ``value`` under ``key``, overwriting any previous entry."""
        if key in self._entries:
            del self._entries[key]

        if len(self._entries) >= self.max_size:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Result cache eviction", key=evicted)

        self._entries[key] = CacheEntry(payload=value, timestamp=self._clock())

    def delete(self, key: str) -> None:
        """Delete a specific key from cache."""
        self._entries.pop(key, None)

    def clear(self) -> None:
        """Clear all cached items."""
        self._entries.clear()

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
