"""Tests for the relay exception hierarchy."""

import pytest
from dingtalk_relay.domain.exceptions import (
    ApplicationError,
    BackendError,
    ConfigurationError,
    DomainError,
    InfrastructureError,
    MalformedInboundError,
    NoCallbackBoundError,
    RelayError,
    TransientDeliveryError,
    ValidationError,
)


class TestRelayError:
    """Test the base exception."""

    def test_defaults(self) -> None:
        error = RelayError("something broke")
        assert str(error) == "something broke"
        assert error.message == "something broke"
        assert error.error_code == "RelayError"
        assert error.details == {}

    def test_custom_code_and_details(self) -> None:
        error = RelayError("x", error_code="X", details={"k": 1})
        assert error.error_code == "X"
        assert error.details == {"k": 1}


class TestHierarchy:
    """Test error codes and layering."""

    @pytest.mark.parametrize(
        ("error", "base", "code"),
        [
            (ValidationError("bad", field="content"), DomainError, "VALIDATION_ERROR"),
            (MalformedInboundError("no msgId"), DomainError, "MALFORMED_INBOUND"),
            (NoCallbackBoundError("c1"), DomainError, "NO_CALLBACK_BOUND"),
            (BackendError("send_prompt", "timeout"), ApplicationError, "BACKEND_ERROR"),
            (TransientDeliveryError("https://hook", "503"), InfrastructureError, "DELIVERY_FAILED"),
            (
                ConfigurationError("backend.base_url", "missing"),
                InfrastructureError,
                "CONFIGURATION_ERROR",
            ),
        ],
    )
    def test_codes(self, error: RelayError, base: type[RelayError], code: str) -> None:
        assert isinstance(error, base)
        assert isinstance(error, RelayError)
        assert error.error_code == code

    def test_validation_field_in_details(self) -> None:
        error = ValidationError("bad", field="content", details={"length": 0})
        assert error.details == {"length": 0, "field": "content"}

    def test_backend_error_details(self) -> None:
        error = BackendError("send_prompt", "timeout", details={"session_id": "ses_1"})
        assert error.message == "AI backend operation 'send_prompt' failed: timeout"
        assert error.details == {
            "operation": "send_prompt",
            "reason": "timeout",
            "session_id": "ses_1",
        }

    def test_no_callback_details(self) -> None:
        error = NoCallbackBoundError("c1")
        assert error.details == {"conversation_id": "c1"}
        assert "c1" in error.message

    def test_malformed_inbound_message(self) -> None:
        error = MalformedInboundError("no msgId")
        assert error.message == "Malformed inbound event: no msgId"
        assert error.details == {"reason": "no msgId"}
