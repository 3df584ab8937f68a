"""HTTP entry point for DingTalk robot callbacks."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Body, status

from dingtalk_relay.infrastructure.logging import get_logger

if TYPE_CHECKING:
    from dingtalk_relay.application.relay import RelayApplication

logger = get_logger(__name__)


def create_inbound_router(relay: RelayApplication) -> APIRouter:
    """Create the inbound callback router.

    Payloads are handed to the relay's scheduler and acknowledged at once.
    Parse failures are reported in the logs only.

    Args:
        relay: Relay application receiving the events

    Returns:
        Configured FastAPI router
    """
    router = APIRouter(prefix="/api/v1", tags=["Inbound"])

    @router.post(  # type: ignore[misc]
        "/inbound",
        status_code=status.HTTP_202_ACCEPTED,
        summary="Receive a robot message",
        description="Accept a DingTalk robot callback payload for asynchronous relaying",
    )
    async def receive(payload: dict[str, Any] = Body(...)) -> dict[str, bool]:  # noqa: B008
        logger.debug(
            "Inbound payload received",
            extra={"msg_id": payload.get("msgId"), "backlog": relay.scheduler.backlog},
        )
        relay.submit(payload)
        return {"accepted": True}

    return router
