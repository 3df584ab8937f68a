"""Unit tests for ControlService."""

from __future__ import annotations

from typing import Any

import pytest
from dingtalk_relay.application.models import ErrorInfo, PerformanceStats, StatsResult
from dingtalk_relay.application.services import (
    CallbackRegistry,
    ControlService,
    DedupRegistry,
    InboundScheduler,
    OutboundDispatcher,
    SessionRegistry,
)
from dingtalk_relay.domain.exceptions import BackendError
from dingtalk_relay.version import __version__

TARGET = "https://oapi.dingtalk.com/robot/sendBySession?session=s1"


class TestControlService:
    """Test the control surface operations."""

    @pytest.fixture
    def components(self, clock: Any, transport: Any, metrics: Any) -> dict[str, Any]:
        async def handler(event: Any) -> None:
            return None

        return {
            "dedup": DedupRegistry(clock=clock, wall_clock_ms=clock.wall_ms),
            "callbacks": CallbackRegistry(clock=clock, wall_clock_ms=clock.wall_ms),
            "sessions": SessionRegistry(clock=clock),
            "dispatcher": OutboundDispatcher(
                transport, max_message_size=10, metrics=metrics, clock=clock, sleep=clock.sleep
            ),
            "scheduler": InboundScheduler(handler, concurrency=3),
            "metrics": metrics,
        }

    @pytest.fixture
    def control(self, components: dict[str, Any]) -> ControlService:
        return ControlService(**components)

    @pytest.mark.asyncio
    async def test_send_message_delivers(
        self, control: ControlService, components: dict[str, Any], transport: Any, clock: Any
    ) -> None:
        components["callbacks"].set_callback("c1", TARGET, clock.wall_ms() + 60_000)

        result = await control.send_message("c1", "a long broadcast")

        assert result.success is True
        assert result.chunks == 2
        assert result.error is None
        assert transport.contents == ["a long bro", "adcast"]

    @pytest.mark.asyncio
    async def test_send_message_without_callback(
        self, control: ControlService, transport: Any, metrics: Any
    ) -> None:
        result = await control.send_message("c404", "hello")

        assert result.success is False
        assert result.error is not None
        assert result.error.code == "NO_CALLBACK_BOUND"
        assert result.error.details["conversation_id"] == "c404"
        assert transport.posts == []
        assert metrics.error_count == 0

    @pytest.mark.asyncio
    async def test_send_message_with_expired_callback(
        self, control: ControlService, components: dict[str, Any], clock: Any
    ) -> None:
        components["callbacks"].set_callback("c1", TARGET, clock.wall_ms() - 1)

        result = await control.send_message("c1", "hello")

        assert result.error is not None
        assert result.error.code == "NO_CALLBACK_BOUND"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(("conversation_id", "content"), [("", "hello"), ("c1", "")])
    async def test_send_message_validation(
        self, control: ControlService, metrics: Any, conversation_id: str, content: str
    ) -> None:
        result = await control.send_message(conversation_id, content)
        assert result.error is not None
        assert result.error.code == "VALIDATION_ERROR"
        assert metrics.error_count == 0

    @pytest.mark.asyncio
    async def test_send_message_delivery_failure(
        self,
        control: ControlService,
        components: dict[str, Any],
        transport: Any,
        metrics: Any,
        clock: Any,
    ) -> None:
        components["callbacks"].set_callback("c1", TARGET, clock.wall_ms() + 60_000)
        transport.failures = 1

        result = await control.send_message("c1", "hello")

        assert result.success is False
        assert result.error is not None
        assert result.error.code == "DELIVERY_FAILED"
        assert metrics.error_count >= 1

    @pytest.mark.asyncio
    async def test_get_stats(
        self, control: ControlService, components: dict[str, Any], clock: Any
    ) -> None:
        async def create() -> str:
            return "ses_1"

        await components["sessions"].get_or_create_session("c1", create)
        components["dedup"].mark_processed("a1")
        components["dedup"].mark_processed("a2")
        components["callbacks"].set_callback("c1", TARGET, clock.wall_ms() + 60_000)

        result = control.get_stats()

        assert result.success is True
        stats = result.data
        assert isinstance(stats, StatsResult)
        assert stats.version == __version__
        assert stats.session_count == 1
        assert stats.session_ids == ["c1"]
        assert stats.processed_count == 2
        assert stats.callback_stats.total == 1
        assert stats.callback_stats.active == 1
        assert stats.queue_stats["dispatcher"]["max_per_window"] == 20
        assert stats.queue_stats["scheduler"]["concurrency"] == 3
        assert stats.performance_stats.messages["error_rate"] == "0%"

    @pytest.mark.asyncio
    async def test_get_stats_leaves_registries_untouched(
        self, control: ControlService, components: dict[str, Any], clock: Any
    ) -> None:
        async def create() -> str:
            return "ses_1"

        sessions = components["sessions"]
        await sessions.get_or_create_session("c1", create)
        clock.advance(31 * 60)

        result = control.get_stats()

        assert result.success is True
        assert result.data.session_count == 0
        assert sessions.size == 1

    @pytest.mark.asyncio
    async def test_list_conversations(
        self, control: ControlService, components: dict[str, Any], clock: Any
    ) -> None:
        for conversation_id in ("c1", "c2"):

            async def create(cid: str = conversation_id) -> str:
                return f"ses_{cid}"

            await components["sessions"].get_or_create_session(conversation_id, create)
        components["callbacks"].set_callback("c2", TARGET, clock.wall_ms() + 60_000)

        result = control.list_conversations()

        assert result.success is True
        assert [(c.conversation_id, c.session_id, c.has_callback) for c in result.data] == [
            ("c1", "ses_c1", False),
            ("c2", "ses_c2", True),
        ]

    def test_get_performance(self, control: ControlService, metrics: Any) -> None:
        metrics.record_message(0.25)

        result = control.get_performance()

        assert isinstance(result.data, PerformanceStats)
        assert result.data.messages["total"] == 1
        assert result.data.messages["avg_process_time_ms"] == 250

    def test_read_failure_is_reported(
        self, control: ControlService, metrics: Any, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def broken() -> dict[str, Any]:
            raise BackendError("stats", "unavailable")

        monkeypatch.setattr(metrics, "get_stats", broken)

        result = control.get_performance()

        assert result.success is False
        assert result.error == ErrorInfo(
            code="BACKEND_ERROR",
            message="AI backend operation 'stats' failed: unavailable",
            details={"operation": "stats", "reason": "unavailable"},
        )


class TestErrorInfo:
    """Test ErrorInfo construction."""

    def test_from_unexpected_exception(self) -> None:
        info = ErrorInfo.from_exception(KeyError("x"))
        assert info.code == "INTERNAL_ERROR"
        assert info.details == {"error_type": "KeyError"}
