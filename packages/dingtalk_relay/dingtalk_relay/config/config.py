"""Centralized configuration management for the DingTalk relay.

This module provides a centralized configuration system that supports:
- Environment variable overrides
- Default values with validation
- Type safety using Pydantic
- Hierarchical configuration structure
"""

from __future__ import annotations

from datetime import timedelta
from functools import lru_cache

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CacheConfig(BaseModel):
    """Capacity and TTL for each in-memory registry."""

    # Deduplication
    dedup_capacity: int = Field(
        default=1000, ge=1, le=1_000_000, description="Maximum remembered inbound message ids"
    )

    dedup_ttl_seconds: float = Field(
        default=300.0, gt=0, le=86400, description="Deduplication window in seconds"
    )

    # Backend sessions
    session_capacity: int = Field(
        default=100, ge=1, le=100_000, description="Maximum conversation-to-session bindings"
    )

    session_ttl_seconds: float = Field(
        default=1800.0, gt=0, le=86400, description="Session binding TTL in seconds"
    )

    # Delivery callbacks
    callback_capacity: int = Field(
        default=100, ge=1, le=100_000, description="Maximum conversation-to-callback bindings"
    )

    callback_ttl_seconds: float = Field(
        default=7200.0, gt=0, le=86400, description="Callback binding housekeeping TTL in seconds"
    )


class DispatcherConfig(BaseModel):
    """Outbound rate limiting and chunking."""

    max_per_window: int = Field(
        default=20, ge=1, le=10_000, description="Maximum sends per rate window"
    )

    window_seconds: float = Field(
        default=60.0, gt=0, le=3600, description="Rate window length in seconds"
    )

    max_message_size: int = Field(
        default=20 * 1024, ge=1, le=1_048_576, description="Maximum characters per outbound chunk"
    )

    chunk_delay_seconds: float = Field(
        default=1.0, ge=0, le=60, description="Delay between consecutive chunks in seconds"
    )


class SchedulerConfig(BaseModel):
    """Inbound admission control."""

    concurrency: int = Field(
        default=3, ge=1, le=100, description="Maximum concurrently processed inbound messages"
    )

    backlog_warning_threshold: int = Field(
        default=10, ge=0, le=100_000, description="Backlog depth that triggers a warning"
    )


class HttpConfig(BaseModel):
    """Outbound HTTP client settings."""

    timeout_seconds: float = Field(
        default=10.0, gt=0, le=300, description="Request timeout in seconds"
    )

    retry_attempts: int = Field(
        default=2, ge=0, le=10, description="Transport-level retries after the first attempt"
    )

    max_connections: int = Field(
        default=10, ge=1, le=1000, description="Connection pool size"
    )


class BackendConfig(BaseModel):
    """AI backend (OpenCode server) settings."""

    base_url: str = Field(
        default="http://localhost:4096", description="OpenCode server base URL"
    )

    session_title_prefix: str = Field(
        default="DingTalk conversation", description="Title prefix for new backend sessions"
    )


class MonitoringConfig(BaseModel):
    """Monitoring and periodic report configuration."""

    report_interval_seconds: float = Field(
        default=60.0, gt=0, le=86400, description="Interval between performance reports"
    )

    process_time_window: int = Field(
        default=100, ge=1, le=100_000, description="Number of recent process times kept"
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Root log level")

    json_format: bool = Field(default=False, description="Emit structured JSON log lines")


class RelayConfig(BaseSettings):
    """Main relay configuration.

    All configuration values can be overridden using environment variables
    with the prefix DINGTALK_RELAY_ (e.g., DINGTALK_RELAY_SCHEDULER__CONCURRENCY).
    """

    model_config = SettingsConfigDict(
        env_prefix="DINGTALK_RELAY_",
        env_nested_delimiter="__",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Sub-configurations
    cache: CacheConfig = Field(default_factory=CacheConfig)
    dispatcher: DispatcherConfig = Field(default_factory=DispatcherConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    http: HttpConfig = Field(default_factory=HttpConfig)
    backend: BackendConfig = Field(default_factory=BackendConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    # Feature flags
    enable_periodic_report: bool = Field(
        default=True, description="Run the background report and cache sweep task"
    )

    # Computed properties
    @property
    def dedup_ttl(self) -> timedelta:
        """Get deduplication window as timedelta."""
        return timedelta(seconds=self.cache.dedup_ttl_seconds)

    @property
    def session_ttl(self) -> timedelta:
        """Get session binding TTL as timedelta."""
        return timedelta(seconds=self.cache.session_ttl_seconds)

    @property
    def callback_ttl(self) -> timedelta:
        """Get callback binding TTL as timedelta."""
        return timedelta(seconds=self.cache.callback_ttl_seconds)


@lru_cache(maxsize=1)
def get_config() -> RelayConfig:
    """Get the singleton configuration instance.

    This function returns a cached configuration instance that reads from
    environment variables and configuration files.

    Returns:
        RelayConfig: The configuration instance
    """
    return RelayConfig()


def reload_config() -> RelayConfig:
    """Reload configuration from environment.

    This clears the cache and creates a new configuration instance.

    Returns:
        RelayConfig: The new configuration instance
    """
    get_config.cache_clear()
    return get_config()
