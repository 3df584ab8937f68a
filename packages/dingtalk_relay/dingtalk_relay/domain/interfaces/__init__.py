"""Domain interfaces for the DingTalk relay.

This module contains abstract interfaces for the external collaborators
the relay pipeline depends on.
"""

from __future__ import annotations

from .ai_backend import AIBackend
from .delivery_transport import DeliveryTransport

__all__ = ["AIBackend", "DeliveryTransport"]
