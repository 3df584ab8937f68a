"""Abstract interface for posting payloads to a delivery target."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class DeliveryTransport(ABC):
    """Posts a JSON payload to an opaque delivery target (e.g. a session webhook)."""

    @abstractmethod
    async def post(self, target: str, payload: dict[str, Any]) -> None:
        """Post a payload to the target.

        Args:
            target: Delivery target locator
            payload: JSON-serializable payload

        Raises:
            Exception: Any failure; the caller wraps it as a delivery error
        """
        ...

    async def close(self) -> None:
        """Release any held resources."""
        return None
