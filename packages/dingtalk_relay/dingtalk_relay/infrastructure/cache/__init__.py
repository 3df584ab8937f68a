"""Cache infrastructure for the DingTalk relay."""

from __future__ import annotations

from .expiring_cache import CacheEntry, EvictionHook, ExpiringCache

__all__ = [
    "CacheEntry",
    "EvictionHook",
    "ExpiringCache",
]
