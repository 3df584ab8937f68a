"""End-to-end handling of one inbound message."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from dingtalk_relay.application.models import parse_inbound
from dingtalk_relay.domain.enums import RelayState
from dingtalk_relay.domain.exceptions import BackendError, RelayError
from dingtalk_relay.infrastructure.logging import (
    bind_message_context,
    get_logger,
    message_context,
)

if TYPE_CHECKING:
    from dingtalk_relay.application.services.callback_registry import CallbackRegistry
    from dingtalk_relay.application.services.dedup_registry import DedupRegistry
    from dingtalk_relay.application.services.outbound_dispatcher import OutboundDispatcher
    from dingtalk_relay.application.services.session_registry import SessionRegistry
    from dingtalk_relay.domain.interfaces import AIBackend
    from dingtalk_relay.infrastructure.monitoring import RelayMetrics

logger = get_logger(__name__)

NO_REPLY_TEXT = "No reply received"
LOG_PREVIEW_CHARS = 100


def _preview(text: str) -> str:
    if len(text) <= LOG_PREVIEW_CHARS:
        return text
    return text[:LOG_PREVIEW_CHARS] + "..."


@dataclass
class RelayOutcome:
    """What happened to one inbound message.

    ``trail`` lists the states passed through, always ending in DONE.
    ``failed_at`` is the state whose step raised, if any.
    """

    msg_id: str | None = None
    conversation_id: str | None = None
    trail: list[RelayState] = field(default_factory=list)
    failed_at: RelayState | None = None
    error: str | None = None
    duration_ms: int = 0

    @property
    def final_state(self) -> RelayState:
        return self.trail[-1] if self.trail else RelayState.RECEIVED

    def reached(self, state: RelayState) -> bool:
        return state in self.trail

    def to_dict(self) -> dict[str, Any]:
        return {
            "msg_id": self.msg_id,
            "conversation_id": self.conversation_id,
            "trail": [state.value for state in self.trail],
            "failed_at": self.failed_at.value if self.failed_at else None,
            "error": self.error,
            "duration_ms": self.duration_ms,
        }


class RelayOrchestrator:
    """Relays an inbound message to the AI backend and its reply back.

    Per message: deduplicate, bind the delivery callback, resolve the
    backend session, query the backend, then deliver the reply if the
    conversation still holds a valid callback. Every failure is contained
    here; ``handle`` only ever raises on cancellation.
    """

    def __init__(
        self,
        dedup: DedupRegistry,
        callbacks: CallbackRegistry,
        sessions: SessionRegistry,
        dispatcher: OutboundDispatcher,
        backend: AIBackend,
        metrics: RelayMetrics,
        session_title_prefix: str = "DingTalk conversation",
    ) -> None:
        self._dedup = dedup
        self._callbacks = callbacks
        self._sessions = sessions
        self._dispatcher = dispatcher
        self._backend = backend
        self._metrics = metrics
        self._session_title_prefix = session_title_prefix

    async def handle(self, raw_event: Any) -> RelayOutcome:
        """Process one raw inbound event.

        Args:
            raw_event: Inbound event as dict, JSON text/bytes or InboundEvent

        Returns:
            RelayOutcome describing the path taken
        """
        with message_context():
            return await self._relay(raw_event)

    async def _relay(self, raw_event: Any) -> RelayOutcome:
        start = time.perf_counter()
        outcome = RelayOutcome(trail=[RelayState.RECEIVED])
        current = RelayState.RECEIVED
        self._metrics.record_received()

        try:
            event = parse_inbound(raw_event)
            outcome.msg_id = event.msg_id
            bind_message_context(msg_id=event.msg_id)

            current = RelayState.DEDUP_CHECKED
            if self._dedup.is_processed(event.msg_id):
                outcome.trail += [RelayState.DEDUP_CHECKED, RelayState.DISCARDED]
                self._metrics.record_duplicate(event.msg_id)
                logger.info("Ignoring duplicate message")
                return outcome
            self._dedup.mark_processed(event.msg_id)
            outcome.trail.append(RelayState.DEDUP_CHECKED)

            current = RelayState.CONTENT_EXTRACTED
            conversation_id = event.resolved_conversation_id
            outcome.conversation_id = conversation_id
            bind_message_context(conversation_id=conversation_id)
            content = event.content
            if event.has_delivery_grant:
                self._callbacks.set_callback(
                    conversation_id,
                    event.delivery_target,  # type: ignore[arg-type]
                    event.delivery_target_expires_at,  # type: ignore[arg-type]
                )
            outcome.trail.append(RelayState.CONTENT_EXTRACTED)
            logger.info("Received message", extra={"preview": _preview(content)})

            if not content:
                logger.warning("Empty message content, skipping")
                return outcome

            current = RelayState.SESSION_RESOLVED
            session_id = await self._sessions.get_or_create_session(
                conversation_id,
                lambda: self._create_session(conversation_id),
            )
            outcome.trail.append(RelayState.SESSION_RESOLVED)

            current = RelayState.BACKEND_QUERIED
            reply = await self._query_backend(session_id, content)
            outcome.trail.append(RelayState.BACKEND_QUERIED)

            current = RelayState.REPLY_EXTRACTED
            reply = reply or NO_REPLY_TEXT
            outcome.trail.append(RelayState.REPLY_EXTRACTED)

            current = RelayState.CALLBACK_RESOLVED
            target = self._callbacks.get_callback(conversation_id)
            outcome.trail.append(RelayState.CALLBACK_RESOLVED)

            if target is None:
                outcome.trail.append(RelayState.DELIVERY_SKIPPED)
                self._metrics.record_delivery_skipped()
                logger.warning("No valid delivery callback, reply dropped")
            else:
                current = RelayState.DELIVERED
                await self._dispatcher.send(target, reply)
                outcome.trail.append(RelayState.DELIVERED)
                logger.info("Reply delivered")

            self._metrics.record_message(time.perf_counter() - start)

        except asyncio.CancelledError:
            raise
        except Exception as e:
            error_code = e.error_code if isinstance(e, RelayError) else type(e).__name__
            outcome.failed_at = current
            outcome.error = error_code
            self._metrics.record_error(error_code)
            logger.error(
                "Failed to process message",
                exc_info=e,
                extra={"failed_at": current.value, "error_code": error_code},
            )
        finally:
            outcome.trail.append(RelayState.DONE)
            outcome.duration_ms = int((time.perf_counter() - start) * 1000)

        return outcome

    async def _create_session(self, conversation_id: str) -> str:
        title = f"{self._session_title_prefix} {conversation_id}"
        try:
            return await self._backend.create_session(title)
        except BackendError:
            raise
        except Exception as e:
            raise BackendError("create_session", str(e)) from e

    async def _query_backend(self, session_id: str, content: str) -> str:
        started = time.perf_counter()
        try:
            reply = await self._backend.send_prompt(session_id, content)
        except BackendError:
            raise
        except Exception as e:
            raise BackendError("send_prompt", str(e), details={"session_id": session_id}) from e
        finally:
            self._metrics.record_backend_call(time.perf_counter() - started)

        logger.info(
            "Backend replied",
            extra={
                "session_id": session_id,
                "duration_ms": int((time.perf_counter() - started) * 1000),
                "preview": _preview(reply or ""),
            },
        )
        return reply
