"""Periodic performance report and registry sweep."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from typing import Protocol

from dingtalk_relay.infrastructure.logging import get_logger
from dingtalk_relay.infrastructure.monitoring.metrics import RelayMetrics

logger = get_logger(__name__)


class Sweepable(Protocol):
    """A registry whose expired entries can be swept."""

    @property
    def size(self) -> int: ...

    def sweep_expired(self) -> int: ...


class PeriodicReporter:
    """Logs a performance report and sweeps expired registry entries.

    Registries expire lazily on read; the sweep only keeps the reported
    sizes honest and releases memory early.
    """

    def __init__(
        self,
        metrics: RelayMetrics,
        registries: dict[str, Sweepable],
        interval: float = 60.0,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        """Initialize the reporter.

        Args:
            metrics: Metrics recorder to report from
            registries: Registries to sweep, by display name
            interval: Seconds between reports
            sleep: Awaitable sleep, injectable for tests
        """
        self._metrics = metrics
        self._registries = registries
        self._interval = interval
        self._sleep = sleep
        self._running = False
        self._task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        """Start the report background task."""
        if self._running:
            logger.warning("PeriodicReporter already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._report_loop())
        logger.info("PeriodicReporter started", extra={"interval": self._interval})

    async def stop(self) -> None:
        """Stop the report background task."""
        self._running = False

        if self._task and not self._task.done():
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task

        logger.info("PeriodicReporter stopped")

    async def _report_loop(self) -> None:
        while self._running:
            await self._sleep(self._interval)
            try:
                self.report_once()
            except Exception as e:
                logger.error("Periodic report failed", exc_info=e)

    def report_once(self) -> dict[str, object]:
        """Sweep registries and log one report.

        Returns:
            The reported values
        """
        swept = {name: registry.sweep_expired() for name, registry in self._registries.items()}
        stats = self._metrics.get_stats()
        report: dict[str, object] = {
            "uptime_minutes": stats["runtime"]["uptime_seconds"] // 60,
            "messages_total": stats["messages"]["total"],
            "avg_process_time_ms": stats["messages"]["avg_process_time_ms"],
            "error_rate": stats["messages"]["error_rate"],
            "queue_size": stats["queue"]["current_size"],
            "cache_sizes": {name: registry.size for name, registry in self._registries.items()},
            "swept": swept,
        }
        logger.info("Performance report", extra=report)
        return report
