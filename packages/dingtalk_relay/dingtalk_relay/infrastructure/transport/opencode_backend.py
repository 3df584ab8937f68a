"""OpenCode server client implementing the AI backend interface."""

from __future__ import annotations

from typing import Any

import httpx

from dingtalk_relay.domain.exceptions import BackendError, ConfigurationError
from dingtalk_relay.domain.interfaces import AIBackend
from dingtalk_relay.infrastructure.logging import get_logger

logger = get_logger(__name__)


def extract_reply_text(body: Any) -> str:
    """Join the text parts of a prompt response with newlines."""
    if not isinstance(body, dict):
        return ""
    parts = body.get("parts") or []
    texts = [
        part.get("text", "")
        for part in parts
        if isinstance(part, dict) and part.get("type") == "text"
    ]
    return "\n".join(text for text in texts if text)


class OpenCodeBackend(AIBackend):
    """Talks to an OpenCode server over its HTTP API.

    ``POST /session`` creates a session; ``POST /session/{id}/message``
    sends a prompt and returns the assistant message with its parts.
    """

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the backend client.

        Args:
            base_url: OpenCode server base URL
            timeout_seconds: Request timeout; None waits for the model indefinitely
            client: Preconfigured client (tests pass one with a mock transport)
        """
        if not base_url:
            raise ConfigurationError("backend.base_url", "OpenCode server URL is required")
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout_seconds,
        )

    async def create_session(self, title: str) -> str:
        body = await self._post("create_session", "/session", {"title": title})
        session_id = body.get("id") if isinstance(body, dict) else None
        if not session_id:
            raise BackendError("create_session", "response carried no session id")
        return str(session_id)

    async def send_prompt(self, session_id: str, text: str) -> str:
        body = await self._post(
            "send_prompt",
            f"/session/{session_id}/message",
            {"parts": [{"type": "text", "text": text}]},
        )
        return extract_reply_text(body)

    async def _post(self, operation: str, path: str, payload: dict[str, Any]) -> Any:
        try:
            response = await self._client.post(path, json=payload)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            raise BackendError(
                operation,
                f"HTTP {e.response.status_code}",
                details={"path": path, "status_code": e.response.status_code},
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise BackendError(operation, str(e) or type(e).__name__, details={"path": path}) from e

    async def close(self) -> None:
        await self._client.aclose()
