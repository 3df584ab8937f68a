"""Unit tests for retry support."""

from __future__ import annotations

import pytest
from dingtalk_relay.application.error_handling import (
    RetryConfig,
    RetryStrategy,
    calculate_retry_delay,
    with_retry,
)
from dingtalk_relay.domain.exceptions import TransientDeliveryError, ValidationError


class TestCalculateRetryDelay:
    """Test delay calculation."""

    @pytest.mark.parametrize(
        ("strategy", "expected"),
        [
            (RetryStrategy.EXPONENTIAL, [0.5, 1.0, 2.0]),
            (RetryStrategy.LINEAR, [0.5, 1.0, 1.5]),
            (RetryStrategy.CONSTANT, [0.5, 0.5, 0.5]),
        ],
    )
    def test_strategies(self, strategy: RetryStrategy, expected: list[float]) -> None:
        config = RetryConfig(initial_delay=0.5, strategy=strategy, jitter=False)
        assert [calculate_retry_delay(n, config) for n in (1, 2, 3)] == expected

    def test_capped_at_max_delay(self) -> None:
        config = RetryConfig(initial_delay=4, max_delay=5, jitter=False)
        assert calculate_retry_delay(5, config) == 5

    def test_jitter_stays_within_ten_percent(self) -> None:
        config = RetryConfig(initial_delay=1.0, strategy=RetryStrategy.CONSTANT)
        for _ in range(20):
            assert 0.9 <= calculate_retry_delay(1, config) <= 1.1


class TestWithRetry:
    """Test the retry decorator."""

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self) -> None:
        delays: list[float] = []
        calls = 0

        async def fake_sleep(delay: float) -> None:
            delays.append(delay)

        @with_retry(RetryConfig(max_attempts=3, jitter=False), sleep=fake_sleep)
        async def flaky() -> str:
            nonlocal calls
            calls += 1
            if calls < 3:
                raise TransientDeliveryError("https://hook", "HTTP 503")
            return "ok"

        assert await flaky() == "ok"
        assert calls == 3
        assert delays == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_raises_after_max_attempts(self) -> None:
        calls = 0

        async def fake_sleep(delay: float) -> None:
            return None

        @with_retry(RetryConfig(max_attempts=2), sleep=fake_sleep)
        async def always_fails() -> None:
            nonlocal calls
            calls += 1
            raise TransientDeliveryError("https://hook", "HTTP 503")

        with pytest.raises(TransientDeliveryError):
            await always_fails()
        assert calls == 2

    @pytest.mark.asyncio
    async def test_non_retryable_raises_immediately(self) -> None:
        calls = 0

        @with_retry(RetryConfig(max_attempts=3))
        async def invalid() -> None:
            nonlocal calls
            calls += 1
            raise ValidationError("bad input")

        with pytest.raises(ValidationError):
            await invalid()
        assert calls == 1
