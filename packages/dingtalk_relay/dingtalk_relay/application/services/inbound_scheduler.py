"""Bounded-concurrency admission control for inbound messages."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from dingtalk_relay.infrastructure.logging import get_logger, log_error_with_trace

if TYPE_CHECKING:
    from dingtalk_relay.infrastructure.monitoring import RelayMetrics

logger = get_logger(__name__)

InboundHandler = Callable[[Any], Awaitable[Any]]


class InboundScheduler:
    """Runs at most ``concurrency`` inbound tasks at once, the rest wait FIFO.

    The scheduler never drops work; discarding redundant messages is the
    deduplication registry's job. A backlog deeper than
    ``backlog_warning_threshold`` is reported on every submit that finds it,
    but is not an error.
    """

    def __init__(
        self,
        handler: InboundHandler,
        concurrency: int = 3,
        backlog_warning_threshold: int = 10,
        metrics: RelayMetrics | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            handler: Coroutine function processing one inbound event
            concurrency: Maximum tasks running at once
            backlog_warning_threshold: Backlog depth that triggers a warning
            metrics: Optional metrics recorder for queue gauges
        """
        if concurrency < 1:
            raise ValueError("Concurrency must be at least 1")

        self._handler = handler
        self.concurrency = concurrency
        self.backlog_warning_threshold = backlog_warning_threshold
        self._metrics = metrics

        self._semaphore = asyncio.Semaphore(concurrency)
        self._tasks: set[asyncio.Task[Any]] = set()
        self._waiting = 0
        self._active = 0
        self._completed = 0
        self._failed = 0
        self._closed = False

    def submit(self, event: Any) -> asyncio.Task[Any]:
        """Queue an inbound event for processing.

        Args:
            event: Raw inbound event; owned by the scheduler until it completes

        Returns:
            Task that completes when the event has been handled
        """
        if self._closed:
            raise RuntimeError("InboundScheduler is closed")

        self._waiting += 1
        self._publish_queue_state()
        self._warn_if_backlogged()
        task = asyncio.create_task(self._run(event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, event: Any) -> Any:
        try:
            await self._semaphore.acquire()
        except asyncio.CancelledError:
            self._waiting -= 1
            self._publish_queue_state()
            raise

        self._waiting -= 1
        self._active += 1
        self._publish_queue_state()

        try:
            result = await self._handler(event)
            self._completed += 1
            return result
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._failed += 1
            log_error_with_trace(logger, e, "Inbound handler raised", active=self._active)
            if self._metrics is not None:
                self._metrics.record_error(type(e).__name__)
            return None
        finally:
            self._active -= 1
            self._semaphore.release()
            self._publish_queue_state()

    def _warn_if_backlogged(self) -> None:
        if self._waiting > self.backlog_warning_threshold:
            logger.warning(
                "Inbound backlog building up",
                extra={
                    "backlog": self._waiting,
                    "active": self._active,
                    "threshold": self.backlog_warning_threshold,
                },
            )

    def _publish_queue_state(self) -> None:
        if self._metrics is not None:
            self._metrics.update_queue(self._waiting, self._active)

    async def join(self) -> None:
        """Wait until every submitted event has been handled."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """Stop accepting events and cancel anything still queued or running."""
        self._closed = True
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        logger.info("Inbound scheduler closed", extra={"cancelled": len(tasks)})

    @property
    def backlog(self) -> int:
        """Events waiting for a worker slot."""
        return self._waiting

    @property
    def active(self) -> int:
        """Events currently being handled."""
        return self._active

    def stats(self) -> dict[str, Any]:
        """Get scheduler statistics."""
        return {
            "backlog": self._waiting,
            "active": self._active,
            "concurrency": self.concurrency,
            "completed": self._completed,
            "failed": self._failed,
            "backlog_warning_threshold": self.backlog_warning_threshold,
        }
