"""Rate-limited, chunked outbound delivery."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from dingtalk_relay.domain.exceptions import TransientDeliveryError
from dingtalk_relay.infrastructure.logging import get_logger

if TYPE_CHECKING:
    from dingtalk_relay.domain.interfaces import DeliveryTransport
    from dingtalk_relay.infrastructure.monitoring import RelayMetrics

logger = get_logger(__name__)


def build_text_payload(content: str) -> dict[str, Any]:
    """Build a DingTalk text message payload."""
    return {"msgtype": "text", "text": {"content": content}}


def split_chunks(text: str, size: int) -> list[str]:
    """Split text into ordered fixed-size chunks; the last may be shorter."""
    if size < 1:
        raise ValueError("Chunk size must be at least 1")
    return [text[i : i + size] for i in range(0, len(text), size)]


class OutboundDispatcher:
    """Delivers replies to callback targets within the platform's rate limit.

    Payloads longer than ``max_message_size`` are split into chunks that are
    delivered one after another with ``chunk_delay`` seconds between them.
    Every chunk passes through the rate window: once ``max_per_window``
    sends have been issued, the next one waits until ``window`` seconds have
    passed since the last send.

    Whole ``send`` calls are serialized, so chunks of two messages never
    interleave and the rate window is only touched by one send at a time.
    """

    def __init__(
        self,
        transport: DeliveryTransport,
        max_per_window: int = 20,
        window: float = 60.0,
        max_message_size: int = 20 * 1024,
        chunk_delay: float = 1.0,
        metrics: RelayMetrics | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            transport: Delivery capability that posts payloads
            max_per_window: Maximum sends per rate window
            window: Rate window length in seconds
            max_message_size: Maximum characters per chunk
            chunk_delay: Seconds to wait between consecutive chunks
            metrics: Optional metrics recorder
            clock: Monotonic clock returning seconds
            sleep: Awaitable sleep, injectable for tests
        """
        self._transport = transport
        self.max_per_window = max_per_window
        self.window = window
        self.max_message_size = max_message_size
        self.chunk_delay = chunk_delay
        self._metrics = metrics
        self._clock = clock
        self._sleep = sleep

        # Rate window
        self._send_count = 0
        self._last_send_at: float | None = None

        self._lock = asyncio.Lock()

    async def send(self, target: str, text: str) -> int:
        """Deliver text to a target, chunking and rate limiting as needed.

        Args:
            target: Delivery target locator
            text: Message content

        Returns:
            Number of chunks delivered

        Raises:
            TransientDeliveryError: If any chunk fails; later chunks are not sent
        """
        async with self._lock:
            if len(text) <= self.max_message_size:
                await self._send_single(target, text)
                return 1

            chunks = split_chunks(text, self.max_message_size)
            logger.info(
                "Message exceeds size limit, sending in chunks",
                extra={"length": len(text), "chunk_count": len(chunks)},
            )
            for index, chunk in enumerate(chunks):
                logger.debug(
                    "Sending chunk",
                    extra={"chunk": index + 1, "chunk_count": len(chunks)},
                )
                await self._send_single(target, chunk)
                if index < len(chunks) - 1:
                    await self._sleep(self.chunk_delay)
            return len(chunks)

    async def _send_single(self, target: str, content: str) -> None:
        await self._wait_for_rate_limit()

        # The attempt counts against the window whether or not it succeeds
        self._send_count += 1
        self._last_send_at = self._clock()

        start = self._clock()
        try:
            await self._transport.post(target, build_text_payload(content))
        except TransientDeliveryError:
            raise
        except Exception as e:
            logger.error(
                "Delivery failed",
                exc_info=e,
                extra={"error": str(e), "length": len(content)},
            )
            raise TransientDeliveryError(target, str(e)) from e

        if self._metrics is not None:
            self._metrics.record_chunk_delivered()
        logger.info(
            "Delivered message",
            extra={"duration_ms": int((self._clock() - start) * 1000), "length": len(content)},
        )

    async def _wait_for_rate_limit(self) -> None:
        if self._send_count < self.max_per_window or self._last_send_at is None:
            return

        elapsed = self._clock() - self._last_send_at
        if elapsed < self.window:
            wait_time = self.window - elapsed
            logger.warning(
                "Rate limit reached, waiting",
                extra={"wait_seconds": round(wait_time, 3), "send_count": self._send_count},
            )
            await self._sleep(wait_time)
        self._send_count = 0

    def stats(self) -> dict[str, Any]:
        """Get rate window statistics."""
        since_last = None
        if self._last_send_at is not None:
            since_last = round(self._clock() - self._last_send_at, 3)
        return {
            "send_count": self._send_count,
            "seconds_since_last_send": since_last,
            "max_per_window": self.max_per_window,
            "window_seconds": self.window,
        }
