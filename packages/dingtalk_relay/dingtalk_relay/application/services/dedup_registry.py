"""Inbound message deduplication."""

from __future__ import annotations

import time
from collections.abc import Callable
from datetime import timedelta

from dingtalk_relay.infrastructure.cache import EvictionHook, ExpiringCache


class DedupRegistry:
    """Remembers inbound message ids for a bounded window.

    Upstream redelivery is at-least-once; this turns it into effectively-once
    processing for the configured window. An id seen again after the window
    lapses is processed again.
    """

    def __init__(
        self,
        capacity: int = 1000,
        ttl: timedelta = timedelta(minutes=5),
        on_evict: EvictionHook | None = None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock_ms: Callable[[], float] = lambda: time.time() * 1000,
    ) -> None:
        self._cache: ExpiringCache[float] = ExpiringCache(
            capacity=capacity,
            ttl=ttl,
            name="dedup",
            on_evict=on_evict,
            clock=clock,
        )
        self._wall_clock_ms = wall_clock_ms

    def is_processed(self, msg_id: str) -> bool:
        """Return True if the id was marked within the window."""
        return self._cache.has(msg_id)

    def mark_processed(self, msg_id: str) -> None:
        """Record the id with the time of first processing."""
        self._cache.set(msg_id, self._wall_clock_ms())

    def sweep_expired(self) -> int:
        return self._cache.sweep_expired()

    @property
    def size(self) -> int:
        return self._cache.size

    @property
    def cache(self) -> ExpiringCache[float]:
        return self._cache
