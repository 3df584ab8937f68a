"""Inbound event models and parsing."""

from __future__ import annotations

import json
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from dingtalk_relay.domain.exceptions import MalformedInboundError


class TextContent(BaseModel):
    """Structured text body, as DingTalk sends it."""

    model_config = ConfigDict(extra="ignore")

    content: str | None = Field(default="", description="Message text")


class InboundEvent(BaseModel):
    """A single inbound chat message.

    Accepts both the generic field names and DingTalk's robot callback names
    (``senderStaffId``, ``sessionWebhook``, ``sessionWebhookExpiredTime``).
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    msg_id: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("msgId", "msg_id"),
        description="Platform message id used for deduplication",
    )
    conversation_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("conversationId", "conversation_id"),
    )
    sender_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("senderId", "senderStaffId", "sender_id"),
    )
    text: str | TextContent | None = Field(default=None, description="Plain or structured text")
    delivery_target: str | None = Field(
        default=None,
        validation_alias=AliasChoices("deliveryTarget", "sessionWebhook", "delivery_target"),
        description="Reply locator granted for this turn",
    )
    delivery_target_expires_at: float | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "deliveryTargetExpiresAt", "sessionWebhookExpiredTime", "delivery_target_expires_at"
        ),
        description="Reply locator expiry in epoch milliseconds",
    )
    header_message_id: str | None = Field(
        default=None,
        exclude=True,
        description="Stream frame message id, used only as a conversation id fallback",
    )

    @property
    def content(self) -> str:
        """Extracted message text; empty if the event carries none."""
        if isinstance(self.text, str):
            return self.text
        if isinstance(self.text, TextContent):
            return self.text.content or ""
        return ""

    @property
    def resolved_conversation_id(self) -> str:
        """Conversation id, falling back to target, sender, frame id, then message id."""
        return (
            self.conversation_id
            or self.delivery_target
            or self.sender_id
            or self.header_message_id
            or self.msg_id
        )

    @property
    def has_delivery_grant(self) -> bool:
        return bool(self.delivery_target) and self.delivery_target_expires_at is not None


def parse_inbound(raw: Any) -> InboundEvent:
    """Parse a raw inbound event.

    ``raw`` may be an ``InboundEvent``, a dict, or JSON text/bytes. A stream
    frame of the form ``{"headers": {...}, "data": "<json>"}`` is unwrapped
    and its ``messageId`` header kept as a fallback id.

    Raises:
        MalformedInboundError: If the event cannot be parsed
    """
    if isinstance(raw, InboundEvent):
        return raw

    try:
        payload = _decode(raw)
        header_message_id = None
        if isinstance(payload.get("headers"), dict) and "data" in payload:
            header_message_id = payload["headers"].get("messageId")
            payload = _decode(payload["data"])
        event = InboundEvent.model_validate(payload)
    except MalformedInboundError:
        raise
    except (PydanticValidationError, ValueError, TypeError) as e:
        raise MalformedInboundError(str(e)) from e

    if header_message_id and not event.header_message_id:
        event.header_message_id = str(header_message_id)
    return event


def _decode(raw: Any) -> dict[str, Any]:
    if isinstance(raw, bytes | bytearray):
        raw = raw.decode("utf-8")
    if isinstance(raw, str):
        raw = json.loads(raw)
    if not isinstance(raw, dict):
        raise MalformedInboundError(f"expected a JSON object, got {type(raw).__name__}")
    return raw
