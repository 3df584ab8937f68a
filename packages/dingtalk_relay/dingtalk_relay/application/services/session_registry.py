"""Conversation-to-backend-session bindings."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from datetime import timedelta

from dingtalk_relay.domain.exceptions import BackendError
from dingtalk_relay.infrastructure.cache import EvictionHook, ExpiringCache
from dingtalk_relay.infrastructure.logging import get_logger

logger = get_logger(__name__)


class SessionRegistry:
    """Binds conversation ids to AI backend session ids.

    Sessions are created lazily on the first message of a conversation and
    reused while the binding stays in the cache. An evicted binding is
    silently recreated on the next message.

    Concurrent first messages for the same conversation share one creation:
    the first resolver parks a future in ``_in_flight`` and the others await
    it instead of calling the backend again.
    """

    def __init__(
        self,
        capacity: int = 100,
        ttl: timedelta = timedelta(minutes=30),
        on_evict: EvictionHook | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the session registry.

        Args:
            capacity: Maximum number of bindings
            ttl: Binding TTL, refreshed on every read
            on_evict: Optional cache eviction hook
            clock: Monotonic clock for the cache TTL
        """
        self._cache: ExpiringCache[str] = ExpiringCache(
            capacity=capacity,
            ttl=ttl,
            name="sessions",
            on_evict=on_evict,
            clock=clock,
        )
        self._in_flight: dict[str, asyncio.Future[str]] = {}

    async def get_or_create_session(
        self,
        conversation_id: str,
        create_fn: Callable[[], Awaitable[str]],
    ) -> str:
        """Return the conversation's session, creating it on a miss.

        Args:
            conversation_id: Conversation identifier
            create_fn: Async factory calling the AI backend; invoked at most once per miss

        Returns:
            Backend session identifier

        Raises:
            Exception: Whatever ``create_fn`` raised; nothing is stored in that case
        """
        session_id = self._cache.get(conversation_id)
        if session_id is not None:
            logger.debug(
                "Reusing backend session",
                extra={"conversation_id": conversation_id, "session_id": session_id},
            )
            return session_id

        pending = self._in_flight.get(conversation_id)
        if pending is not None:
            # shield: a cancelled waiter must not cancel the shared creation
            return await asyncio.shield(pending)

        future: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        self._in_flight[conversation_id] = future
        try:
            session_id = await create_fn()
            if not session_id:
                raise BackendError("create_session", "backend returned an empty session id")
            self._cache.set(conversation_id, session_id)
            future.set_result(session_id)
            logger.info(
                "Created backend session",
                extra={"conversation_id": conversation_id, "session_id": session_id},
            )
            return session_id
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            # Retrieve so an unawaited future does not log "exception was never retrieved"
            future.exception()
            raise
        finally:
            self._in_flight.pop(conversation_id, None)

    def get(self, conversation_id: str) -> str | None:
        """Return the bound session id without creating one."""
        return self._cache.get(conversation_id)

    def items(self) -> list[tuple[str, str]]:
        """Return live (conversation_id, session_id) pairs."""
        return list(self._cache.items())

    def conversation_ids(self) -> list[str]:
        return self._cache.keys()

    def sweep_expired(self) -> int:
        return self._cache.sweep_expired()

    @property
    def size(self) -> int:
        return self._cache.size
