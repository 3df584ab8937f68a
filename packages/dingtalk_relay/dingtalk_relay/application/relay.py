"""Composition root wiring the relay pipeline together."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any

from prometheus_client import CollectorRegistry

from dingtalk_relay.application.services import (
    CallbackRegistry,
    ControlService,
    DedupRegistry,
    InboundScheduler,
    OutboundDispatcher,
    RelayOrchestrator,
    SessionRegistry,
)
from dingtalk_relay.config import RelayConfig
from dingtalk_relay.domain.enums import EvictionReason
from dingtalk_relay.domain.interfaces import AIBackend, DeliveryTransport
from dingtalk_relay.infrastructure.logging import get_logger
from dingtalk_relay.infrastructure.monitoring import PeriodicReporter, RelayMetrics
from dingtalk_relay.infrastructure.transport import OpenCodeBackend, WebhookTransport

logger = get_logger(__name__)


class RelayApplication:
    """Owns one relay's registries, services and background tasks.

    Every component is built here from ``RelayConfig`` and injected into its
    consumers; nothing is a module-level singleton, so tests can build as
    many isolated relays as they need.
    """

    def __init__(
        self,
        config: RelayConfig,
        backend: AIBackend | None = None,
        transport: DeliveryTransport | None = None,
        metrics_registry: CollectorRegistry | None = None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock_ms: Callable[[], float] = lambda: time.time() * 1000,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """Build the relay.

        Args:
            config: Relay configuration
            backend: AI backend; defaults to an OpenCode client from ``config.backend``
            transport: Delivery transport; defaults to a webhook transport from ``config.http``
            metrics_registry: Prometheus registry; a private one if omitted
            clock: Monotonic clock for cache TTLs and the rate window
            wall_clock_ms: Epoch-millisecond clock for callback grant expiry
            sleep: Awaitable sleep for rate limiting, chunk delays and reports
        """
        self.config = config
        self.backend = backend or OpenCodeBackend(config.backend.base_url)
        self.transport = transport or WebhookTransport(
            timeout_seconds=config.http.timeout_seconds,
            retry_attempts=config.http.retry_attempts,
            max_connections=config.http.max_connections,
        )

        self.metrics = RelayMetrics(
            concurrency=config.scheduler.concurrency,
            process_time_window=config.monitoring.process_time_window,
            registry=metrics_registry,
        )

        cache = config.cache
        self.dedup = DedupRegistry(
            capacity=cache.dedup_capacity,
            ttl=config.dedup_ttl,
            on_evict=self._on_cache_evict("dedup"),
            clock=clock,
            wall_clock_ms=wall_clock_ms,
        )
        self.callbacks = CallbackRegistry(
            capacity=cache.callback_capacity,
            ttl=config.callback_ttl,
            on_evict=self._on_cache_evict("callbacks"),
            clock=clock,
            wall_clock_ms=wall_clock_ms,
        )
        self.sessions = SessionRegistry(
            capacity=cache.session_capacity,
            ttl=config.session_ttl,
            on_evict=self._on_cache_evict("sessions"),
            clock=clock,
        )

        dispatcher = config.dispatcher
        self.dispatcher = OutboundDispatcher(
            self.transport,
            max_per_window=dispatcher.max_per_window,
            window=dispatcher.window_seconds,
            max_message_size=dispatcher.max_message_size,
            chunk_delay=dispatcher.chunk_delay_seconds,
            metrics=self.metrics,
            clock=clock,
            sleep=sleep,
        )

        self.orchestrator = RelayOrchestrator(
            dedup=self.dedup,
            callbacks=self.callbacks,
            sessions=self.sessions,
            dispatcher=self.dispatcher,
            backend=self.backend,
            metrics=self.metrics,
            session_title_prefix=config.backend.session_title_prefix,
        )
        self.scheduler = InboundScheduler(
            self.orchestrator.handle,
            concurrency=config.scheduler.concurrency,
            backlog_warning_threshold=config.scheduler.backlog_warning_threshold,
            metrics=self.metrics,
        )
        self.control = ControlService(
            dedup=self.dedup,
            callbacks=self.callbacks,
            sessions=self.sessions,
            dispatcher=self.dispatcher,
            scheduler=self.scheduler,
            metrics=self.metrics,
        )
        self.reporter = PeriodicReporter(
            self.metrics,
            {"dedup": self.dedup, "sessions": self.sessions, "callbacks": self.callbacks},
            interval=config.monitoring.report_interval_seconds,
            sleep=sleep,
        )

        logger.info(
            "Relay initialized",
            extra={
                "concurrency": config.scheduler.concurrency,
                "dedup_capacity": cache.dedup_capacity,
                "max_per_window": dispatcher.max_per_window,
            },
        )

    def submit(self, raw_event: Any) -> asyncio.Task[Any]:
        """Hand an inbound event to the scheduler.

        This is the entry point for inbound sources (stream listener or HTTP
        callback endpoint); it never raises for a bad event.
        """
        return self.scheduler.submit(raw_event)

    async def start(self) -> None:
        """Start background tasks."""
        if self.config.enable_periodic_report:
            await self.reporter.start()
        logger.info("Relay started")

    async def stop(self, drain: bool = True) -> None:
        """Stop the relay and release collaborator resources.

        Args:
            drain: Finish queued inbound work before stopping; otherwise cancel it
        """
        if drain:
            await self.scheduler.join()
        await self.scheduler.close()
        await self.reporter.stop()
        await self.transport.close()
        await self.backend.close()
        logger.info("Relay stopped")

    def _on_cache_evict(self, cache: str) -> Callable[[str, Any, EvictionReason], None]:
        def hook(key: str, value: Any, reason: EvictionReason) -> None:
            if reason in (EvictionReason.REPLACED, EvictionReason.DELETED):
                return
            self.metrics.record_cache_eviction(cache, reason)
            logger.debug(
                "Registry entry evicted",
                extra={"cache": cache, "key": key, "reason": reason.value},
            )

        return hook
