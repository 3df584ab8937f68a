"""Metrics collection for the relay pipeline."""

from __future__ import annotations

import time
from collections import deque
from typing import Any

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest

from dingtalk_relay.domain.enums import EvictionReason
from dingtalk_relay.infrastructure.logging import get_logger

logger = get_logger(__name__)


class RelayMetrics:
    """Records counts and timings for the relay.

    Every instance owns its prometheus collectors on its own registry, so
    several relays (or tests) can live in one process. Alongside the
    collectors it keeps a small in-process snapshot used by the control
    surface and the periodic report.
    """

    def __init__(
        self,
        concurrency: int = 3,
        process_time_window: int = 100,
        registry: CollectorRegistry | None = None,
    ) -> None:
        """Initialize metrics recorder.

        Args:
            concurrency: Configured scheduler concurrency, reported in stats
            process_time_window: Number of recent process times to average
            registry: Prometheus registry; a private one is created if omitted
        """
        self.registry = registry if registry is not None else CollectorRegistry()
        self._concurrency = concurrency

        self._messages_received = Counter(
            "relay_messages_received_total",
            "Total inbound messages admitted to processing",
            registry=self.registry,
        )
        self._messages_duplicate = Counter(
            "relay_messages_duplicate_total",
            "Total inbound messages discarded as duplicates",
            registry=self.registry,
        )
        self._messages_processed = Counter(
            "relay_messages_processed_total",
            "Total inbound messages processed without error",
            registry=self.registry,
        )
        self._errors = Counter(
            "relay_errors_total",
            "Total relay errors",
            ["error_type"],
            registry=self.registry,
        )
        self._chunks_delivered = Counter(
            "relay_chunks_delivered_total",
            "Total outbound chunks delivered",
            registry=self.registry,
        )
        self._deliveries_skipped = Counter(
            "relay_deliveries_skipped_total",
            "Total replies dropped because no valid callback was bound",
            registry=self.registry,
        )
        self._cache_evictions = Counter(
            "relay_cache_evictions_total",
            "Total registry cache evictions",
            ["cache", "reason"],
            registry=self.registry,
        )
        self._processing_duration = Histogram(
            "relay_message_processing_duration_seconds",
            "End-to-end inbound message processing duration in seconds",
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
            registry=self.registry,
        )
        self._backend_duration = Histogram(
            "relay_backend_duration_seconds",
            "AI backend prompt duration in seconds",
            buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
            registry=self.registry,
        )
        self._queue_backlog = Gauge(
            "relay_queue_backlog",
            "Inbound messages waiting for a worker",
            registry=self.registry,
        )
        self._queue_active = Gauge(
            "relay_queue_active",
            "Inbound messages currently being processed",
            registry=self.registry,
        )

        # In-process snapshot
        self._start_time = time.time()
        self._message_count = 0
        self._error_count = 0
        self._process_times: deque[float] = deque(maxlen=process_time_window)
        self._queue_size = 0
        self._active = 0

    def record_received(self) -> None:
        """Record that an inbound message entered processing."""
        self._messages_received.inc()

    def record_duplicate(self, msg_id: str) -> None:
        """Record a discarded duplicate.

        Args:
            msg_id: Duplicate inbound message id
        """
        self._messages_duplicate.inc()
        logger.debug(
            "Duplicate message discarded",
            extra={"msg_id": msg_id, "metric": "relay_messages_duplicate_total"},
        )

    def record_message(self, process_time_seconds: float) -> None:
        """Record a message that completed the pipeline.

        Args:
            process_time_seconds: Processing time in seconds
        """
        self._messages_processed.inc()
        self._processing_duration.observe(process_time_seconds)
        self._message_count += 1
        self._process_times.append(process_time_seconds * 1000)

    def record_error(self, error_type: str) -> None:
        """Record an error.

        Args:
            error_type: Error code or exception name
        """
        self._errors.labels(error_type=error_type).inc()
        self._error_count += 1

    def record_backend_call(self, duration_seconds: float) -> None:
        """Record an AI backend prompt duration."""
        self._backend_duration.observe(duration_seconds)

    def record_chunk_delivered(self) -> None:
        """Record one delivered outbound chunk."""
        self._chunks_delivered.inc()

    def record_delivery_skipped(self) -> None:
        """Record a reply dropped for lack of a valid callback."""
        self._deliveries_skipped.inc()

    def record_cache_eviction(self, cache: str, reason: EvictionReason) -> None:
        """Record a registry cache eviction.

        Args:
            cache: Cache name
            reason: Eviction reason
        """
        self._cache_evictions.labels(cache=cache, reason=reason.value).inc()

    def update_queue(self, backlog: int, active: int) -> None:
        """Update scheduler gauges.

        Args:
            backlog: Tasks waiting for a worker
            active: Tasks currently running
        """
        self._queue_size = backlog
        self._active = active
        self._queue_backlog.set(backlog)
        self._queue_active.set(active)

    @property
    def message_count(self) -> int:
        """Messages that completed the pipeline."""
        return self._message_count

    @property
    def error_count(self) -> int:
        """Errors recorded so far."""
        return self._error_count

    def get_stats(self) -> dict[str, Any]:
        """Get a snapshot of runtime, message and queue statistics."""
        avg_time = (
            sum(self._process_times) / len(self._process_times) if self._process_times else 0.0
        )
        if self._message_count > 0:
            error_rate = f"{self._error_count / self._message_count * 100:.2f}%"
        else:
            error_rate = "0%"

        return {
            "runtime": {
                "uptime_seconds": int(time.time() - self._start_time),
            },
            "messages": {
                "total": self._message_count,
                "avg_process_time_ms": int(avg_time),
                "error_count": self._error_count,
                "error_rate": error_rate,
            },
            "queue": {
                "current_size": self._queue_size,
                "active": self._active,
                "concurrency": self._concurrency,
            },
        }

    def export(self) -> bytes:
        """Render all collectors in the prometheus text exposition format."""
        return generate_latest(self.registry)
