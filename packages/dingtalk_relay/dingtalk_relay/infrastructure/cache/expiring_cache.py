"""Bounded, expiring LRU cache shared by the relay registries."""

from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Callable, Iterator
from datetime import timedelta
from typing import Any, Generic, TypeVar

from dingtalk_relay.domain.enums import EvictionReason
from dingtalk_relay.infrastructure.logging import get_logger

logger = get_logger(__name__)

V = TypeVar("V")

EvictionHook = Callable[[str, Any, EvictionReason], None]


class CacheEntry(Generic[V]):
    """Represents a cache entry with value and access metadata."""

    __slots__ = ("key", "value", "last_accessed", "expires_at", "hit_count")

    def __init__(self, key: str, value: V, now: float, ttl_seconds: float) -> None:
        """Initialize cache entry.

        Args:
            key: Cache key
            value: Cached value
            now: Current clock reading in seconds
            ttl_seconds: Time to live in seconds
        """
        self.key = key
        self.value = value
        self.last_accessed = now
        self.expires_at = now + ttl_seconds
        self.hit_count = 0

    def is_expired(self, now: float) -> bool:
        """Check if entry is expired at the given clock reading."""
        return now >= self.expires_at

    def touch(self, now: float, ttl_seconds: float | None) -> None:
        """Record an access; optionally restart the TTL."""
        self.hit_count += 1
        self.last_accessed = now
        if ttl_seconds is not None:
            self.expires_at = now + ttl_seconds


class ExpiringCache(Generic[V]):
    """LRU cache with a per-instance capacity and time to live.

    This cache provides:
    - LRU eviction when capacity is reached
    - Lazy TTL expiry, checked on every read
    - An optional eviction hook for observability
    - Hit/miss statistics

    All operations are synchronous, so a read-then-write sequence on one
    cache is never interleaved with another asyncio task. It is not safe
    for concurrent use from several OS threads.
    """

    def __init__(
        self,
        capacity: int,
        ttl: timedelta,
        name: str = "cache",
        update_age_on_get: bool = True,
        on_evict: EvictionHook | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the cache.

        Args:
            capacity: Maximum number of live entries
            ttl: Time to live for each entry
            name: Name used in logs and stats
            update_age_on_get: Restart an entry's TTL when it is read
            on_evict: Hook called with (key, value, reason) when an entry leaves
            clock: Monotonic clock returning seconds
        """
        if capacity < 1:
            raise ValueError("Cache capacity must be at least 1")
        if ttl.total_seconds() <= 0:
            raise ValueError("Cache TTL must be positive")

        self.name = name
        self._capacity = capacity
        self._ttl_seconds = ttl.total_seconds()
        self._update_age_on_get = update_age_on_get
        self._on_evict = on_evict
        self._clock = clock

        # Use OrderedDict for LRU behavior; most recently used at the end
        self._entries: OrderedDict[str, CacheEntry[V]] = OrderedDict()

        # Statistics
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

    def get(self, key: str) -> V | None:
        """Get value from cache.

        Args:
            key: Cache key

        Returns:
            Cached value or None if not found/expired
        """
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None

        now = self._clock()
        if entry.is_expired(now):
            self._remove(key, EvictionReason.EXPIRED)
            self._misses += 1
            self._expirations += 1
            return None

        self._entries.move_to_end(key)
        entry.touch(now, self._ttl_seconds if self._update_age_on_get else None)
        self._hits += 1
        return entry.value

    def has(self, key: str) -> bool:
        """Check for a live entry without refreshing its recency or age."""
        entry = self._entries.get(key)
        if entry is None:
            return False
        if entry.is_expired(self._clock()):
            self._remove(key, EvictionReason.EXPIRED)
            self._expirations += 1
            return False
        return True

    def peek(self, key: str) -> V | None:
        """Return a live value without touching recency, age, stats or residency."""
        entry = self._entries.get(key)
        if entry is None or entry.is_expired(self._clock()):
            return None
        return entry.value

    def set(self, key: str, value: V) -> None:
        """Put value in cache, evicting the least recently used entry if full.

        Args:
            key: Cache key
            value: Value to cache
        """
        if key in self._entries:
            self._remove(key, EvictionReason.REPLACED)

        while len(self._entries) >= self._capacity:
            oldest = next(iter(self._entries))
            self._remove(oldest, EvictionReason.EVICTED)
            self._evictions += 1

        self._entries[key] = CacheEntry(key, value, self._clock(), self._ttl_seconds)

    def delete(self, key: str) -> bool:
        """Remove entry from cache.

        Args:
            key: Cache key

        Returns:
            True if entry was removed, False if not found
        """
        if key in self._entries:
            self._remove(key, EvictionReason.DELETED)
            return True
        return False

    def clear(self) -> None:
        """Clear all entries from cache."""
        for key in list(self._entries):
            self._remove(key, EvictionReason.CLEARED)

    def sweep_expired(self) -> int:
        """Remove all expired entries.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        expired_keys = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired_keys:
            self._remove(key, EvictionReason.EXPIRED)
            self._expirations += 1

        if expired_keys:
            logger.debug(
                "Swept expired cache entries",
                extra={"cache": self.name, "count": len(expired_keys)},
            )
        return len(expired_keys)

    def items(self) -> Iterator[tuple[str, V]]:
        """Iterate over live entries, least recently used first.

        Expired entries are skipped but left in place; removing them is
        ``sweep_expired``'s job.
        """
        now = self._clock()
        for key, entry in list(self._entries.items()):
            if not entry.is_expired(now):
                yield key, entry.value

    def keys(self) -> list[str]:
        """Return live keys, least recently used first."""
        return [key for key, _ in self.items()]

    def values(self) -> list[V]:
        """Return live values, least recently used first."""
        return [value for _, value in self.items()]

    def _remove(self, key: str, reason: EvictionReason) -> None:
        entry = self._entries.pop(key, None)
        if entry is None or self._on_evict is None:
            return
        try:
            self._on_evict(key, entry.value, reason)
        except Exception as e:
            # The hook is observability only; it must never break the caller
            logger.warning(
                "Cache eviction hook failed",
                exc_info=e,
                extra={"cache": self.name, "key": key, "reason": reason.value},
            )

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.has(key)

    @property
    def size(self) -> int:
        """Get current number of resident entries (expired ones may linger until read)."""
        return len(self._entries)

    @property
    def capacity(self) -> int:
        """Get cache capacity."""
        return self._capacity

    @property
    def ttl(self) -> timedelta:
        """Get entry time to live."""
        return timedelta(seconds=self._ttl_seconds)

    @property
    def hit_rate(self) -> float:
        """Get cache hit rate."""
        total = self._hits + self._misses
        return self._hits / total if total > 0 else 0.0

    @property
    def stats(self) -> dict[str, Any]:
        """Get cache statistics."""
        return {
            "name": self.name,
            "size": self.size,
            "capacity": self.capacity,
            "ttl_seconds": self._ttl_seconds,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": self.hit_rate,
            "evictions": self._evictions,
            "expirations": self._expirations,
        }
