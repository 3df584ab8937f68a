"""Domain-specific exceptions for the DingTalk relay.

This module defines the exception hierarchy for the relay pipeline,
following clean architecture principles where domain exceptions are
independent of infrastructure concerns.
"""

from typing import Any


class RelayError(Exception):
    """Base exception for all relay errors."""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize the exception.

        Args:
            message: Human-readable error message
            error_code: Machine-readable error code for programmatic handling
            details: Additional error context
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}


class DomainError(RelayError):
    """Base class for domain-layer errors."""

    pass


class ValidationError(DomainError):
    """Raised when domain validation fails."""

    def __init__(self, message: str, field: str | None = None, **kwargs: Any) -> None:
        """
        Initialize validation error.

        Args:
            message: Validation error message
            field: Field that failed validation
            **kwargs: Additional error details
        """
        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        super().__init__(message, error_code="VALIDATION_ERROR", details=details)


class MalformedInboundError(DomainError):
    """Raised when an inbound event cannot be parsed.

    Contained at the orchestration boundary; never reaches the inbound source.
    """

    def __init__(self, reason: str, **kwargs: Any) -> None:
        """
        Initialize malformed inbound error.

        Args:
            reason: Why the event could not be parsed
            **kwargs: Additional error details
        """
        details = {"reason": reason, **kwargs.pop("details", {})}
        super().__init__(
            f"Malformed inbound event: {reason}",
            error_code="MALFORMED_INBOUND",
            details=details,
        )


class NoCallbackBoundError(DomainError):
    """Raised by the control surface when a conversation has no valid callback.

    Inside the relay pipeline the same situation is a normal terminal state
    and is never raised.
    """

    def __init__(self, conversation_id: str, **kwargs: Any) -> None:
        """
        Initialize no callback bound error.

        Args:
            conversation_id: Conversation without a valid delivery target
            **kwargs: Additional error details
        """
        message = (
            f"No valid delivery target for conversation '{conversation_id}'; "
            "a message from this conversation must arrive first"
        )
        details = {"conversation_id": conversation_id, **kwargs.pop("details", {})}
        super().__init__(message, error_code="NO_CALLBACK_BOUND", details=details)


class ApplicationError(RelayError):
    """Base class for application-layer errors."""

    pass


class BackendError(ApplicationError):
    """Raised when an AI backend call fails."""

    def __init__(self, operation: str, reason: str | None = None, **kwargs: Any) -> None:
        """
        Initialize backend error.

        Args:
            operation: Backend operation that failed (create_session, send_prompt)
            reason: Failure reason
            **kwargs: Additional error details
        """
        message = f"AI backend operation '{operation}' failed"
        if reason:
            message += f": {reason}"
        details = {
            "operation": operation,
            "reason": reason,
            **kwargs.pop("details", {}),
        }
        super().__init__(message, error_code="BACKEND_ERROR", details=details)


class InfrastructureError(RelayError):
    """Base class for infrastructure-layer errors."""

    pass


class TransientDeliveryError(InfrastructureError):
    """Raised when the delivery transport fails to post a payload."""

    def __init__(self, target: str, reason: str | None = None, **kwargs: Any) -> None:
        """
        Initialize transient delivery error.

        Args:
            target: Delivery target locator
            reason: Failure reason
            **kwargs: Additional error details
        """
        message = "Delivery to callback target failed"
        if reason:
            message += f": {reason}"
        details = {
            "target": target,
            "reason": reason,
            **kwargs.pop("details", {}),
        }
        super().__init__(message, error_code="DELIVERY_FAILED", details=details)


class ConfigurationError(InfrastructureError):
    """Raised when configuration is invalid or missing."""

    def __init__(self, config_key: str, reason: str, **kwargs: Any) -> None:
        """
        Initialize configuration error.

        Args:
            config_key: Configuration key that has issues
            reason: Reason for configuration error
            **kwargs: Additional error details
        """
        message = f"Configuration error for '{config_key}': {reason}"
        details = {
            "config_key": config_key,
            "reason": reason,
            **kwargs.pop("details", {}),
        }
        super().__init__(message, error_code="CONFIGURATION_ERROR", details=details)
