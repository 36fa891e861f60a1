"""
Local Bounded Cache

In-process key -> payload store with per-entry TTL and a fixed capacity
evicted in insertion order (FIFO).

STAGE-2.1: Local tier

Implementation Details:
- OrderedDict keeps insertion order; popitem(last=False) drops the oldest
- Overwriting an existing key keeps its position
- Expiry is checked lazily on read; cleanup_expired() sweeps on demand
- Every method is synchronous and never awaits, so each call is atomic
  with respect to other coroutines on the event loop

Author: Refactored for clarity and maintainability
Date: 2025-12-13
"""

import fnmatch
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass


@dataclass(frozen=True)
class CacheEntry:
    key: str
    value: bytes
    stored_at: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now - self.stored_at >= self.ttl

    def remaining_ttl(self, now: float) -> float:
        return max(0.0, self.ttl - (now - self.stored_at))


class LocalBoundedCache:
    """
    FIFO + TTL in-memory cache.

    Args:
        max_size: Maximum number of entries held at once
        clock: Time source in seconds (injectable for tests)
    """

    def __init__(self, max_size: int = 1000, clock: Callable[[], float] = time.time):
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self._max_size = max_size
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()

    def get_entry(self, key: str) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            del self._entries[key]
            return None
        return entry

    def get(self, key: str) -> bytes | None:
        """Return the payload, or None when absent or expired."""
        entry = self.get_entry(key)
        return entry.value if entry else None

    def set(self, key: str, value: bytes, ttl: float) -> None:
        """
        Store a payload.

        When the cache is full and key is new, exactly one entry (the oldest
        inserted) is evicted first.
        """
        if key not in self._entries and len(self._entries) >= self._max_size:
            self._entries.popitem(last=False)
        self._entries[key] = CacheEntry(key=key, value=value, stored_at=self._clock(), ttl=ttl)

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def delete_matching(self, pattern: str) -> int:
        """Delete keys matching a glob pattern (``*``, ``?``, ``[...]``)."""
        matched = [key for key in self._entries if fnmatch.fnmatchcase(key, pattern)]
        for key in matched:
            del self._entries[key]
        return len(matched)

    def clear(self) -> None:
        self._entries.clear()

    def cleanup_expired(self) -> int:
        """
        Remove every expired entry.

        Meant to be called periodically by an external scheduler.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    @property
    def size(self) -> int:
        return len(self._entries)

    @property
    def max_size(self) -> int:
        return self._max_size

    def keys(self) -> list[str]:
        """Keys in insertion order (oldest first), including not yet swept expired ones."""
        return list(self._entries.keys())
