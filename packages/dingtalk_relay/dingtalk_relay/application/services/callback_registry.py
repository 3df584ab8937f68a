"""Conversation-to-callback bindings with protocol-level expiry."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import timedelta

from dingtalk_relay.infrastructure.cache import EvictionHook, ExpiringCache
from dingtalk_relay.infrastructure.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class CallbackBinding:
    """A delivery target granted for one conversation turn.

    Attributes:
        target: Opaque delivery locator (session webhook URL)
        expires_at_ms: Absolute expiry in epoch milliseconds, as sent by the platform
    """

    target: str
    expires_at_ms: float

    def is_valid(self, now_ms: float) -> bool:
        return now_ms <= self.expires_at_ms


class CallbackRegistry:
    """Binds conversation ids to delivery callbacks.

    Two expirations apply. The cache TTL is housekeeping only; the
    ``expires_at_ms`` carried by the inbound message is the grant's real
    validity, so a binding read past it is evicted even while still resident.
    """

    def __init__(
        self,
        capacity: int = 100,
        ttl: timedelta = timedelta(hours=2),
        on_evict: EvictionHook | None = None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock_ms: Callable[[], float] = lambda: time.time() * 1000,
    ) -> None:
        """Initialize the callback registry.

        Args:
            capacity: Maximum number of bindings
            ttl: Housekeeping TTL for a binding
            on_evict: Optional cache eviction hook
            clock: Monotonic clock for the cache TTL
            wall_clock_ms: Wall clock in epoch milliseconds for ``expires_at_ms``
        """
        self._cache: ExpiringCache[CallbackBinding] = ExpiringCache(
            capacity=capacity,
            ttl=ttl,
            name="callbacks",
            update_age_on_get=False,
            on_evict=on_evict,
            clock=clock,
        )
        self._now_ms = wall_clock_ms

    def set_callback(self, conversation_id: str, target: str, expires_at_ms: float) -> None:
        """Bind a delivery target to a conversation, replacing any previous one."""
        self._cache.set(conversation_id, CallbackBinding(target, expires_at_ms))
        logger.info(
            "Stored delivery callback",
            extra={
                "conversation_id": conversation_id,
                "expires_at_ms": expires_at_ms,
            },
        )

    def get_callback(self, conversation_id: str) -> str | None:
        """Return the conversation's delivery target if it is still valid."""
        binding = self._cache.get(conversation_id)
        if binding is None:
            return None
        if not binding.is_valid(self._now_ms()):
            logger.warning(
                "Delivery callback expired",
                extra={"conversation_id": conversation_id},
            )
            self._cache.delete(conversation_id)
            return None
        return binding.target

    def has_valid_callback(self, conversation_id: str) -> bool:
        """Read-only validity check; unlike ``get_callback`` it never evicts."""
        binding = self._cache.peek(conversation_id)
        return binding is not None and binding.is_valid(self._now_ms())

    def stats(self) -> dict[str, int]:
        """Count resident bindings and those whose grant is still valid."""
        now_ms = self._now_ms()
        bindings = self._cache.values()
        return {
            "total": len(bindings),
            "active": sum(1 for binding in bindings if binding.is_valid(now_ms)),
        }

    def sweep_expired(self) -> int:
        return self._cache.sweep_expired()

    @property
    def size(self) -> int:
        return self._cache.size
