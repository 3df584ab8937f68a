"""Pydantic models returned by the control surface."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from dingtalk_relay.domain.exceptions import RelayError


class ErrorInfo(BaseModel):
    """Structured error a tool layer can render to its operator."""

    code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    details: dict[str, Any] = Field(default_factory=dict, description="Additional context")

    @classmethod
    def from_exception(cls, error: Exception) -> ErrorInfo:
        """Build from a relay exception, or wrap any other exception as INTERNAL_ERROR."""
        if isinstance(error, RelayError):
            return cls(code=error.error_code, message=error.message, details=error.details)
        return cls(
            code="INTERNAL_ERROR",
            message=str(error) or type(error).__name__,
            details={"error_type": type(error).__name__},
        )


class SendMessageRequest(BaseModel):
    """Request to push a message into a conversation."""

    conversation_id: str = Field(..., min_length=1, description="Target conversation id")
    content: str = Field(..., min_length=1, description="Message text")


class DeliveryResult(BaseModel):
    """Outcome of a control-surface send."""

    success: bool = Field(..., description="Whether every chunk was delivered")
    conversation_id: str = Field(..., description="Target conversation id")
    chunks: int = Field(default=0, ge=0, description="Chunks delivered")
    duration_ms: int = Field(default=0, ge=0, description="Time spent delivering")
    error: ErrorInfo | None = Field(default=None, description="Error details if failed")


class PerformanceStats(BaseModel):
    """Runtime, message and queue statistics."""

    runtime: dict[str, Any] = Field(default_factory=dict)
    messages: dict[str, Any] = Field(default_factory=dict)
    queue: dict[str, Any] = Field(default_factory=dict)


class CallbackStats(BaseModel):
    """Counts of stored delivery callbacks."""

    total: int = Field(default=0, ge=0, description="Resident bindings")
    active: int = Field(default=0, ge=0, description="Bindings whose grant is still valid")


class StatsResult(BaseModel):
    """Aggregate relay statistics."""

    version: str = Field(..., description="Relay version")
    session_count: int = Field(..., ge=0, description="Conversations with a backend session")
    session_ids: list[str] = Field(default_factory=list, description="Bound conversation ids")
    processed_count: int = Field(..., ge=0, description="Message ids inside the dedup window")
    callback_stats: CallbackStats
    queue_stats: dict[str, Any] = Field(default_factory=dict)
    performance_stats: PerformanceStats


class ConversationInfo(BaseModel):
    """A conversation known to the relay."""

    conversation_id: str
    session_id: str
    has_callback: bool


class ControlResult(BaseModel):
    """Envelope for read-only control operations that may fail."""

    success: bool
    data: Any = None
    error: ErrorInfo | None = None
