"""Session webhook delivery over HTTP."""

from __future__ import annotations

from typing import Any

import httpx

from dingtalk_relay.application.error_handling import RetryConfig, RetryStrategy, with_retry
from dingtalk_relay.domain.exceptions import TransientDeliveryError
from dingtalk_relay.domain.interfaces import DeliveryTransport
from dingtalk_relay.infrastructure.logging import get_logger

logger = get_logger(__name__)

RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})


class WebhookTransport(DeliveryTransport):
    """Posts JSON payloads to DingTalk session webhooks.

    Uses one pooled ``httpx.AsyncClient``. Network errors and retryable
    status codes are retried ``retry_attempts`` times; other 4xx responses
    fail immediately.
    """

    def __init__(
        self,
        timeout_seconds: float = 10.0,
        retry_attempts: int = 2,
        max_connections: int = 10,
        client: httpx.AsyncClient | None = None,
        retry_config: RetryConfig | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            timeout_seconds: Per-request timeout
            retry_attempts: Retries after the first attempt
            max_connections: Connection pool size
            client: Preconfigured client (tests pass one with a mock transport)
            retry_config: Overrides the retry policy derived from ``retry_attempts``
        """
        self._client = client or httpx.AsyncClient(
            timeout=timeout_seconds,
            limits=httpx.Limits(
                max_connections=max_connections,
                max_keepalive_connections=max_connections,
            ),
        )
        self._retry_config = retry_config or RetryConfig(
            max_attempts=retry_attempts + 1,
            initial_delay=0.5,
            strategy=RetryStrategy.EXPONENTIAL,
            retryable_exceptions=(httpx.TransportError, TransientDeliveryError),
        )
        self._post_with_retry = with_retry(self._retry_config)(self._post_once)

    async def post(self, target: str, payload: dict[str, Any]) -> None:
        await self._post_with_retry(target, payload)

    async def _post_once(self, target: str, payload: dict[str, Any]) -> None:
        response = await self._client.post(target, json=payload)

        if response.status_code in RETRYABLE_STATUS_CODES:
            raise TransientDeliveryError(
                target,
                f"webhook returned HTTP {response.status_code}",
                details={"status_code": response.status_code},
            )
        response.raise_for_status()

        # DingTalk answers 200 with a non-zero errcode for rejected messages
        body = _json_or_none(response)
        if isinstance(body, dict) and body.get("errcode") not in (None, 0):
            raise httpx.HTTPStatusError(
                f"Webhook rejected message (errcode {body.get('errcode')}): {body.get('errmsg')}",
                request=response.request,
                response=response,
            )

    async def close(self) -> None:
        await self._client.aclose()


def _json_or_none(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None
