"""Application layer models for the DingTalk relay."""

from __future__ import annotations

from .control_models import (
    CallbackStats,
    ControlResult,
    ConversationInfo,
    DeliveryResult,
    ErrorInfo,
    PerformanceStats,
    SendMessageRequest,
    StatsResult,
)
from .inbound_models import InboundEvent, TextContent, parse_inbound

__all__ = [
    "CallbackStats",
    "ControlResult",
    "ConversationInfo",
    "DeliveryResult",
    "ErrorInfo",
    "InboundEvent",
    "PerformanceStats",
    "SendMessageRequest",
    "StatsResult",
    "TextContent",
    "parse_inbound",
]
