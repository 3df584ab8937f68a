"""Shared fixtures and fakes for relay tests."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest
from dingtalk_relay.config import RelayConfig
from dingtalk_relay.domain.interfaces import AIBackend, DeliveryTransport
from dingtalk_relay.infrastructure.monitoring import RelayMetrics
from prometheus_client import CollectorRegistry

EPOCH_MS = 1_700_000_000_000.0


class FakeClock:
    """Manually advanced clock whose sleep moves time forward instantly."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def wall_ms(self) -> float:
        return EPOCH_MS + self.now * 1000

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += max(seconds, 0.0)
        await asyncio.sleep(0)


class FakeTransport(DeliveryTransport):
    """Records posted payloads together with the clock reading."""

    def __init__(self, clock: FakeClock | None = None, failures: int = 0) -> None:
        self.clock = clock
        self.failures = failures
        self.posts: list[tuple[str, dict[str, Any], float | None]] = []
        self.closed = False

    async def post(self, target: str, payload: dict[str, Any]) -> None:
        if self.failures > 0:
            self.failures -= 1
            raise ConnectionError("webhook unreachable")
        self.posts.append((target, payload, self.clock() if self.clock else None))

    async def close(self) -> None:
        self.closed = True

    @property
    def contents(self) -> list[str]:
        return [payload["text"]["content"] for _, payload, _ in self.posts]


class FakeBackend(AIBackend):
    """Scripted AI backend."""

    def __init__(self, reply: str = "hi there") -> None:
        self.reply = reply
        self.sessions_created: list[str] = []
        self.prompts: list[tuple[str, str]] = []
        self.fail_create: Exception | None = None
        self.fail_prompt: Exception | None = None
        self.create_gate: asyncio.Event | None = None
        self.closed = False

    async def create_session(self, title: str) -> str:
        if self.create_gate is not None:
            await self.create_gate.wait()
        if self.fail_create is not None:
            raise self.fail_create
        self.sessions_created.append(title)
        return f"ses_{len(self.sessions_created)}"

    async def send_prompt(self, session_id: str, text: str) -> str:
        self.prompts.append((session_id, text))
        if self.fail_prompt is not None:
            raise self.fail_prompt
        return self.reply

    async def close(self) -> None:
        self.closed = True


def make_event(
    msg_id: str = "a1",
    conversation_id: str = "c1",
    content: str = "hello",
    clock: FakeClock | None = None,
    target: str = "https://oapi.dingtalk.com/robot/sendBySession?session=s1",
    expires_in_ms: float = 3_600_000,
) -> dict[str, Any]:
    """Build a DingTalk robot callback payload."""
    now_ms = clock.wall_ms() if clock else EPOCH_MS
    return {
        "msgId": msg_id,
        "conversationId": conversation_id,
        "senderStaffId": "u1",
        "msgtype": "text",
        "text": {"content": content},
        "sessionWebhook": target,
        "sessionWebhookExpiredTime": now_ms + expires_in_ms,
    }


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def transport(clock: FakeClock) -> FakeTransport:
    return FakeTransport(clock)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def metrics() -> RelayMetrics:
    return RelayMetrics(registry=CollectorRegistry())


@pytest.fixture
def relay_config() -> RelayConfig:
    """Config isolated from the environment, with the report task off."""
    return RelayConfig(_env_file=None, enable_periodic_report=False)


@pytest.fixture
def event_factory() -> Any:
    return make_event
