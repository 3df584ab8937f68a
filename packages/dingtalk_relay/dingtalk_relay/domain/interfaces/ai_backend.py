"""Abstract interface for the conversational AI backend."""

from __future__ import annotations

from abc import ABC, abstractmethod


class AIBackend(ABC):
    """Opaque request/response capability of the AI backend.

    Implementations carry their own timeouts. Failures propagate to the
    caller as exceptions; no retry is expected at this seam.
    """

    @abstractmethod
    async def create_session(self, title: str) -> str:
        """Create a backend conversation session.

        Args:
            title: Human-readable session title

        Returns:
            Backend session identifier

        Raises:
            BackendError: If the session cannot be created
        """
        ...

    @abstractmethod
    async def send_prompt(self, session_id: str, text: str) -> str:
        """Send a user prompt within a session and return the reply text.

        Args:
            session_id: Backend session identifier
            text: Prompt text

        Returns:
            Reply text (may be empty if the backend returned no text parts)

        Raises:
            BackendError: If the prompt fails
        """
        ...

    async def close(self) -> None:
        """Release any held resources."""
        return None
