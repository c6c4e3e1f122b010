"""In-memory TTL cache for fetched project records."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_SIZE = 500


@dataclass(frozen=True)
class _CacheEntry(Generic[T]):
    value: T
    expires_at: float


class DataCache(Generic[T]):
    """Bounded key/value cache with per-entry time-to-live.

    Expiry is lazy: an expired entry is dropped when it is next read. When
    the cache is full, inserting a new key evicts the oldest-inserted entry
    (FIFO, not true LRU). Re-setting a key counts as a fresh insertion.

    Not safe for concurrent use from multiple threads; within one event loop
    get/set/evict never interleave because none of them await.
    """

    def __init__(
        self,
        max_size: int = DEFAULT_MAX_SIZE,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self._max_size = max_size
        self._clock = clock
        self._store: dict[str, _CacheEntry[T]] = {}

    def get(self, key: str) -> T | None:
        entry = self._store.get(key)
        if entry is None:
            return None
        if self._clock() > entry.expires_at:
            del self._store[key]
            return None
        return entry.value

    def set(self, key: str, value: T, ttl_seconds: float) -> None:
        self._store.pop(key, None)
        if len(self._store) >= self._max_size:
            oldest = next(iter(self._store))
            del self._store[oldest]
            logger.debug("Cache full, evicted %s", oldest)
        self._store[key] = _CacheEntry(value=value, expires_at=self._clock() + ttl_seconds)

    def invalidate(self, key: str) -> bool:
        """Drop a key; returns True if it was present."""
        return self._store.pop(key, None) is not None

    def invalidate_matching(self, predicate: Callable[[str], bool]) -> int:
        """Drop every key for which ``predicate`` is true; returns removed count."""
        doomed = [k for k in self._store if predicate(k)]
        for key in doomed:
            del self._store[key]
        return len(doomed)

    def clear(self) -> None:
        self._store.clear()

    def stats(self) -> dict[str, int]:
        return {"size": len(self._store), "max_size": self._max_size}

    def __len__(self) -> int:
        return len(self._store)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get(key) is not None
