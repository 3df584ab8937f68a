"""Domain enums for the DingTalk relay."""

from __future__ import annotations

from enum import Enum


class RelayState(Enum):
    """States an inbound message passes through on its way to a reply."""

    RECEIVED = "RECEIVED"
    DEDUP_CHECKED = "DEDUP_CHECKED"
    DISCARDED = "DISCARDED"  # Already processed within the dedup window
    CONTENT_EXTRACTED = "CONTENT_EXTRACTED"
    SESSION_RESOLVED = "SESSION_RESOLVED"
    BACKEND_QUERIED = "BACKEND_QUERIED"
    REPLY_EXTRACTED = "REPLY_EXTRACTED"
    CALLBACK_RESOLVED = "CALLBACK_RESOLVED"
    DELIVERED = "DELIVERED"
    DELIVERY_SKIPPED = "DELIVERY_SKIPPED"  # No valid callback bound
    DONE = "DONE"


class EvictionReason(Enum):
    """Why an entry left a bounded expiring cache."""

    EVICTED = "evicted"
    EXPIRED = "expired"
    DELETED = "deleted"
    REPLACED = "replaced"
    CLEARED = "cleared"
