"""Retry support for collaborator calls.

The relay pipeline itself never retries; transports that want
transport-level retries wrap their single-attempt call with ``with_retry``.
"""

import asyncio
import functools
import random
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any, TypeVar

from pydantic import BaseModel, Field

from dingtalk_relay.domain.exceptions import InfrastructureError
from dingtalk_relay.infrastructure.logging import get_logger

logger = get_logger(__name__)

AsyncFunc = TypeVar("AsyncFunc", bound=Callable[..., Awaitable[Any]])

JITTER_FRACTION = 0.1
MIN_DELAY = 0.01


class RetryStrategy(str, Enum):
    """How the delay grows between attempts."""

    EXPONENTIAL = "exponential"
    LINEAR = "linear"
    CONSTANT = "constant"


class RetryConfig(BaseModel):
    """Retry policy for one wrapped call."""

    max_attempts: int = Field(default=3, ge=1, description="Total attempts, including the first")
    initial_delay: float = Field(default=0.5, gt=0, description="Delay before the first retry")
    max_delay: float = Field(default=10.0, gt=0, description="Upper bound for any single delay")
    strategy: RetryStrategy = Field(default=RetryStrategy.EXPONENTIAL)
    jitter: bool = Field(default=True, description="Spread delays by +/-10%")
    retryable_exceptions: tuple[type[Exception], ...] = Field(
        default=(InfrastructureError,),
        description="Exception types worth another attempt",
    )


_GROWTH: dict[RetryStrategy, Callable[[float, int], float]] = {
    RetryStrategy.CONSTANT: lambda base, attempt: base,
    RetryStrategy.LINEAR: lambda base, attempt: base * attempt,
    RetryStrategy.EXPONENTIAL: lambda base, attempt: base * 2 ** (attempt - 1),
}


def calculate_retry_delay(attempt: int, config: RetryConfig) -> float:
    """Seconds to wait after failed attempt number ``attempt`` (1-based)."""
    delay = min(_GROWTH[config.strategy](config.initial_delay, attempt), config.max_delay)
    if config.jitter:
        spread = delay * JITTER_FRACTION
        delay += random.uniform(-spread, spread)
    return max(MIN_DELAY, delay)


def with_retry(
    config: RetryConfig | None = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> Callable[[AsyncFunc], AsyncFunc]:
    """
    Retry an async callable on the configured exception types.

    The last failure is re-raised unchanged once ``max_attempts`` is spent.
    Anything not listed in ``retryable_exceptions`` propagates at once.

    Example:
        @with_retry(RetryConfig(max_attempts=3))
        async def post_payload():
            ...
    """
    policy = config or RetryConfig()

    def decorator(func: AsyncFunc) -> AsyncFunc:
        name = getattr(func, "__name__", repr(func))

        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            attempt = 1
            while True:
                try:
                    return await func(*args, **kwargs)
                except policy.retryable_exceptions as e:
                    if attempt >= policy.max_attempts:
                        logger.error(
                            "Giving up after %d attempts: %s",
                            attempt,
                            name,
                            extra={"function": name, "attempt": attempt, "error": str(e)},
                        )
                        raise
                    delay = calculate_retry_delay(attempt, policy)
                    logger.warning(
                        "Attempt %d/%d of %s failed, retrying in %.2fs",
                        attempt,
                        policy.max_attempts,
                        name,
                        delay,
                        extra={"function": name, "attempt": attempt, "delay": delay, "error": str(e)},
                    )
                    await sleep(delay)
                    attempt += 1

        return wrapper  # type: ignore[return-value]

    return decorator
