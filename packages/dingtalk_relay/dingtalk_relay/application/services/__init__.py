"""Application services for the DingTalk relay."""

from __future__ import annotations

from .callback_registry import CallbackBinding, CallbackRegistry
from .control_service import ControlService
from .dedup_registry import DedupRegistry
from .inbound_scheduler import InboundScheduler
from .outbound_dispatcher import OutboundDispatcher, build_text_payload, split_chunks
from .relay_orchestrator import NO_REPLY_TEXT, RelayOrchestrator, RelayOutcome
from .session_registry import SessionRegistry

__all__ = [
    "NO_REPLY_TEXT",
    "CallbackBinding",
    "CallbackRegistry",
    "ControlService",
    "DedupRegistry",
    "InboundScheduler",
    "OutboundDispatcher",
    "RelayOrchestrator",
    "RelayOutcome",
    "SessionRegistry",
    "build_text_payload",
    "split_chunks",
]
