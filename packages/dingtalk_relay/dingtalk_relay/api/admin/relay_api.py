"""Control surface REST API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST

from dingtalk_relay.application.models import ControlResult, DeliveryResult, SendMessageRequest
from dingtalk_relay.application.services import ControlService
from dingtalk_relay.infrastructure.logging import get_logger
from dingtalk_relay.infrastructure.monitoring import RelayMetrics

logger = get_logger(__name__)

# Control error codes that map to something other than 500.
_ERROR_STATUS = {
    "VALIDATION_ERROR": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "NO_CALLBACK_BOUND": status.HTTP_404_NOT_FOUND,
    "DELIVERY_FAILED": status.HTTP_502_BAD_GATEWAY,
}


def _result_response(result: ControlResult | DeliveryResult) -> JSONResponse:
    if result.success:
        code = status.HTTP_200_OK
    else:
        error_code = result.error.code if result.error else ""
        code = _ERROR_STATUS.get(error_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
    return JSONResponse(status_code=code, content=result.model_dump(mode="json"))


def create_control_router(control: ControlService) -> APIRouter:
    """Create the control surface router.

    Args:
        control: Control service instance

    Returns:
        Configured FastAPI router
    """
    router = APIRouter(
        prefix="/api/v1/admin",
        tags=["Relay Control"],
        responses={
            404: {"description": "No callback bound to the conversation"},
            500: {"description": "Internal server error"},
        },
    )

    @router.post(  # type: ignore[misc]
        "/messages",
        response_model=DeliveryResult,
        summary="Send a message to a conversation",
        description="Push text into a conversation through its bound delivery callback",
    )
    async def send_message(request: SendMessageRequest) -> JSONResponse:
        """Deliver a message through the conversation's callback.

        Args:
            request: Target conversation and message content

        Returns:
            JSON response with the DeliveryResult
        """
        logger.info(
            "Control send requested",
            extra={
                "conversation_id": request.conversation_id,
                "content_length": len(request.content),
            },
        )
        result = await control.send_message(request.conversation_id, request.content)
        return _result_response(result)

    @router.get(  # type: ignore[misc]
        "/stats",
        response_model=ControlResult,
        summary="Get relay statistics",
        description="Session, dedup, callback, queue and performance statistics",
    )
    async def get_stats() -> JSONResponse:
        return _result_response(control.get_stats())

    @router.get(  # type: ignore[misc]
        "/conversations",
        response_model=ControlResult,
        summary="List known conversations",
        description="Conversations with a backend session and whether they have a valid callback",
    )
    async def list_conversations() -> JSONResponse:
        return _result_response(control.list_conversations())

    @router.get(  # type: ignore[misc]
        "/performance",
        response_model=ControlResult,
        summary="Get performance statistics",
    )
    async def get_performance() -> JSONResponse:
        return _result_response(control.get_performance())

    return router


def create_admin_router(control: ControlService, metrics: RelayMetrics | None = None) -> APIRouter:
    """Create the complete admin router with all sub-routers.

    Args:
        control: Control service instance
        metrics: Metrics recorder; the /metrics endpoint is only mounted when given

    Returns:
        Configured FastAPI router with all admin endpoints
    """
    admin_router = APIRouter()
    admin_router.include_router(create_control_router(control))

    if metrics is not None:

        @admin_router.get(  # type: ignore[misc]
            "/metrics",
            summary="Prometheus metrics",
            include_in_schema=False,
        )
        async def export_metrics() -> Response:
            return Response(content=metrics.export(), media_type=CONTENT_TYPE_LATEST)

    return admin_router
