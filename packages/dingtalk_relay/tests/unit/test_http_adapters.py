"""Unit tests for the webhook transport and OpenCode backend."""

from __future__ import annotations

import json
from typing import Any

import httpx
import pytest
from dingtalk_relay.application.error_handling import RetryConfig
from dingtalk_relay.domain.exceptions import (
    BackendError,
    ConfigurationError,
    TransientDeliveryError,
)
from dingtalk_relay.infrastructure.transport import OpenCodeBackend, WebhookTransport
from dingtalk_relay.infrastructure.transport.opencode_backend import extract_reply_text

WEBHOOK = "https://oapi.dingtalk.com/robot/sendBySession?session=s1"
PAYLOAD = {"msgtype": "text", "text": {"content": "hi"}}


def _webhook_transport(handler: Any, max_attempts: int = 3) -> WebhookTransport:
    return WebhookTransport(
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        retry_config=RetryConfig(
            max_attempts=max_attempts,
            initial_delay=0.001,
            jitter=False,
            retryable_exceptions=(httpx.TransportError, TransientDeliveryError),
        ),
    )


class TestWebhookTransport:
    """Test session webhook delivery."""

    @pytest.mark.asyncio
    async def test_posts_json_payload(self) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"errcode": 0, "errmsg": "ok"})

        transport = _webhook_transport(handler)
        await transport.post(WEBHOOK, PAYLOAD)
        await transport.close()

        assert len(requests) == 1
        assert str(requests[0].url) == WEBHOOK
        assert json.loads(requests[0].content) == PAYLOAD

    @pytest.mark.asyncio
    async def test_retries_server_errors(self) -> None:
        statuses = iter([503, 502, 200])

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(next(statuses), json={})

        transport = _webhook_transport(handler)
        await transport.post(WEBHOOK, PAYLOAD)

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(503)

        transport = _webhook_transport(handler, max_attempts=2)
        with pytest.raises(TransientDeliveryError) as exc_info:
            await transport.post(WEBHOOK, PAYLOAD)

        assert calls == 2
        assert exc_info.value.details["status_code"] == 503

    @pytest.mark.asyncio
    async def test_retries_network_errors(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            if calls == 1:
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200, json={"errcode": 0})

        transport = _webhook_transport(handler)
        await transport.post(WEBHOOK, PAYLOAD)
        assert calls == 2

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(400)

        transport = _webhook_transport(handler)
        with pytest.raises(httpx.HTTPStatusError):
            await transport.post(WEBHOOK, PAYLOAD)
        assert calls == 1

    @pytest.mark.asyncio
    async def test_rejected_errcode_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"errcode": 300001, "errmsg": "session expired"})

        transport = _webhook_transport(handler)
        with pytest.raises(httpx.HTTPStatusError, match="300001"):
            await transport.post(WEBHOOK, PAYLOAD)


class TestOpenCodeBackend:
    """Test the OpenCode HTTP client."""

    @staticmethod
    def _backend(handler: Any) -> OpenCodeBackend:
        base_url = "http://opencode.test:4096"
        return OpenCodeBackend(
            base_url,
            client=httpx.AsyncClient(base_url=base_url, transport=httpx.MockTransport(handler)),
        )

    def test_requires_base_url(self) -> None:
        with pytest.raises(ConfigurationError):
            OpenCodeBackend("")

    @pytest.mark.asyncio
    async def test_create_session(self) -> None:
        seen: dict[str, Any] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"id": "ses_abc", "title": "t"})

        backend = self._backend(handler)
        assert await backend.create_session("DingTalk conversation c1") == "ses_abc"
        assert seen == {"path": "/session", "body": {"title": "DingTalk conversation c1"}}
        await backend.close()

    @pytest.mark.asyncio
    async def test_create_session_without_id(self) -> None:
        backend = self._backend(lambda request: httpx.Response(200, json={}))
        with pytest.raises(BackendError):
            await backend.create_session("t")

    @pytest.mark.asyncio
    async def test_send_prompt(self) -> None:
        seen: dict[str, Any] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "info": {"id": "msg_1"},
                    "parts": [
                        {"type": "step-start"},
                        {"type": "text", "text": "hi"},
                        {"type": "tool", "tool": "bash"},
                        {"type": "text", "text": "there"},
                    ],
                },
            )

        backend = self._backend(handler)
        assert await backend.send_prompt("ses_abc", "hello") == "hi\nthere"
        assert seen["path"] == "/session/ses_abc/message"
        assert seen["body"] == {"parts": [{"type": "text", "text": "hello"}]}

    @pytest.mark.asyncio
    async def test_http_error_becomes_backend_error(self) -> None:
        backend = self._backend(lambda request: httpx.Response(500, text="oops"))
        with pytest.raises(BackendError) as exc_info:
            await backend.send_prompt("ses_abc", "hello")
        assert exc_info.value.details["status_code"] == 500
        assert exc_info.value.details["operation"] == "send_prompt"

    @pytest.mark.asyncio
    async def test_invalid_json_becomes_backend_error(self) -> None:
        backend = self._backend(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(BackendError):
            await backend.send_prompt("ses_abc", "hello")

    def test_extract_reply_text(self) -> None:
        assert extract_reply_text({"parts": []}) == ""
        assert extract_reply_text(None) == ""
        assert extract_reply_text({"parts": [{"type": "text", "text": "a"}]}) == "a"
