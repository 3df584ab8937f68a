"""Control surface operations for an external tool-dispatch layer."""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING

from dingtalk_relay.application.models import (
    CallbackStats,
    ControlResult,
    ConversationInfo,
    DeliveryResult,
    ErrorInfo,
    PerformanceStats,
    StatsResult,
)
from dingtalk_relay.domain.exceptions import DomainError, NoCallbackBoundError, ValidationError
from dingtalk_relay.infrastructure.logging import get_logger
from dingtalk_relay.version import __version__

if TYPE_CHECKING:
    from dingtalk_relay.application.services.callback_registry import CallbackRegistry
    from dingtalk_relay.application.services.dedup_registry import DedupRegistry
    from dingtalk_relay.application.services.inbound_scheduler import InboundScheduler
    from dingtalk_relay.application.services.outbound_dispatcher import OutboundDispatcher
    from dingtalk_relay.application.services.session_registry import SessionRegistry
    from dingtalk_relay.infrastructure.monitoring import RelayMetrics

logger = get_logger(__name__)


class ControlService:
    """Operations exposed to tool layers and the admin API.

    None of these raise past the boundary: failures come back as a
    structured ``ErrorInfo``. Only ``send_message`` has side effects.
    """

    def __init__(
        self,
        dedup: DedupRegistry,
        callbacks: CallbackRegistry,
        sessions: SessionRegistry,
        dispatcher: OutboundDispatcher,
        scheduler: InboundScheduler,
        metrics: RelayMetrics,
    ) -> None:
        self._dedup = dedup
        self._callbacks = callbacks
        self._sessions = sessions
        self._dispatcher = dispatcher
        self._scheduler = scheduler
        self._metrics = metrics

    async def send_message(self, conversation_id: str, content: str) -> DeliveryResult:
        """Push a message into a conversation through its bound callback.

        Args:
            conversation_id: Target conversation id
            content: Message text

        Returns:
            DeliveryResult; ``error.code`` is NO_CALLBACK_BOUND when the
            conversation has no valid delivery target
        """
        start = time.perf_counter()
        try:
            if not conversation_id:
                raise ValidationError("Conversation id cannot be empty", field="conversation_id")
            if not content:
                raise ValidationError("Message content cannot be empty", field="content")

            target = self._callbacks.get_callback(conversation_id)
            if target is None:
                raise NoCallbackBoundError(conversation_id)

            chunks = await self._dispatcher.send(target, content)
            duration_ms = int((time.perf_counter() - start) * 1000)
            logger.info(
                "Control message delivered",
                extra={
                    "conversation_id": conversation_id,
                    "chunks": chunks,
                    "duration_ms": duration_ms,
                },
            )
            return DeliveryResult(
                success=True,
                conversation_id=conversation_id,
                chunks=chunks,
                duration_ms=duration_ms,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = ErrorInfo.from_exception(e)
            if isinstance(e, DomainError):
                # Caller mistakes, not pipeline errors
                logger.warning(
                    "Control message rejected",
                    extra={"conversation_id": conversation_id, "error_code": error.code},
                )
            else:
                self._metrics.record_error(error.code)
                logger.error(
                    "Control message failed",
                    exc_info=e,
                    extra={"conversation_id": conversation_id, "error_code": error.code},
                )
            return DeliveryResult(
                success=False,
                conversation_id=conversation_id,
                duration_ms=int((time.perf_counter() - start) * 1000),
                error=error,
            )

    def get_stats(self) -> ControlResult:
        """Aggregate registry, queue and performance statistics."""
        try:
            session_ids = self._sessions.conversation_ids()
            stats = StatsResult(
                version=__version__,
                session_count=len(session_ids),
                session_ids=session_ids,
                processed_count=self._dedup.size,
                callback_stats=CallbackStats(**self._callbacks.stats()),
                queue_stats={
                    "dispatcher": self._dispatcher.stats(),
                    "scheduler": self._scheduler.stats(),
                },
                performance_stats=PerformanceStats(**self._metrics.get_stats()),
            )
            return ControlResult(success=True, data=stats)
        except Exception as e:
            return self._failure("get_stats", e)

    def list_conversations(self) -> ControlResult:
        """List conversations with a backend session and whether they can be replied to."""
        try:
            conversations = [
                ConversationInfo(
                    conversation_id=conversation_id,
                    session_id=session_id,
                    has_callback=self._callbacks.has_valid_callback(conversation_id),
                )
                for conversation_id, session_id in self._sessions.items()
            ]
            return ControlResult(success=True, data=conversations)
        except Exception as e:
            return self._failure("list_conversations", e)

    def get_performance(self) -> ControlResult:
        """Runtime, message and queue statistics."""
        try:
            return ControlResult(success=True, data=PerformanceStats(**self._metrics.get_stats()))
        except Exception as e:
            return self._failure("get_performance", e)

    def _failure(self, operation: str, error: Exception) -> ControlResult:
        info = ErrorInfo.from_exception(error)
        self._metrics.record_error(info.code)
        logger.error(
            "Control operation failed",
            exc_info=error,
            extra={"operation": operation, "error_code": info.code},
        )
        return ControlResult(success=False, error=info)
