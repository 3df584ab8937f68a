"""FastAPI application factory."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from dingtalk_relay.api.admin import create_admin_router
from dingtalk_relay.api.inbound import create_inbound_router
from dingtalk_relay.application.relay import RelayApplication
from dingtalk_relay.config import RelayConfig, get_config
from dingtalk_relay.infrastructure.logging import (
    LoggingConfig,
    LogLevel,
    LogStream,
    get_logger,
    setup_logging,
)
from dingtalk_relay.version import __version__

logger = get_logger(__name__)


def configure_logging(config: RelayConfig, stream: LogStream = LogStream.STDOUT) -> None:
    """Apply the relay's logging settings to the root logger."""
    setup_logging(
        LoggingConfig(
            level=LogLevel(config.logging.level.upper()),
            json_format=config.logging.json_format,
            console_stream=stream,
        )
    )


def create_app(
    config: RelayConfig | None = None,
    relay: RelayApplication | None = None,
) -> FastAPI:
    """Create the relay's FastAPI application.

    Args:
        config: Relay configuration; loaded from the environment if omitted
        relay: Prebuilt relay; one is built from ``config`` if omitted

    Returns:
        FastAPI app whose lifespan starts and drains the relay
    """
    if relay is None:
        relay = RelayApplication(config or get_config())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await relay.start()
        try:
            yield
        finally:
            await relay.stop(drain=True)

    app = FastAPI(
        title="DingTalk Relay",
        version=__version__,
        description="Relays DingTalk robot messages to an AI backend and replies back",
        lifespan=lifespan,
    )
    app.state.relay = relay

    app.include_router(create_inbound_router(relay))
    app.include_router(create_admin_router(relay.control, relay.metrics))

    @app.get("/health", tags=["Health"])  # type: ignore[misc]
    async def health() -> dict[str, str]:
        return {"status": "ok", "version": __version__}

    logger.info("Relay API created", extra={"version": __version__})
    return app
