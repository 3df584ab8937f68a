"""Monitoring infrastructure for the DingTalk relay."""

from __future__ import annotations

from .metrics import RelayMetrics
from .reporter import PeriodicReporter

__all__ = [
    "PeriodicReporter",
    "RelayMetrics",
]
