"""HTTP adapters for the relay's external collaborators."""

from __future__ import annotations

from .opencode_backend import OpenCodeBackend
from .webhook_transport import WebhookTransport

__all__ = ["OpenCodeBackend", "WebhookTransport"]
