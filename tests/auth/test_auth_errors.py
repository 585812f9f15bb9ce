from __future__ import annotations

from oauth_context.auth.errors import (
    ArgumentError,
    AuthErrorCategory,
    AuthErrorCode,
    CacheAmbiguityError,
    ServiceError,
    TransportError,
    UiFailure,
)


def test_codes_are_stored_as_plain_strings() -> None:
    error = UiFailure("cancelled", code=AuthErrorCode.AUTHENTICATION_CANCELED)
    assert error.code == "authentication_canceled"
    assert error.category is AuthErrorCategory.UI
    assert str(error) == "authentication_canceled: cancelled"


def test_user_declined_only_for_cancellation() -> None:
    assert UiFailure("x", code=AuthErrorCode.AUTHENTICATION_CANCELED).user_declined
    assert not UiFailure("x", code=AuthErrorCode.AUTHENTICATION_UI_FAILED).user_declined
    assert not TransportError().user_declined


def test_service_error_keeps_wire_code_and_status() -> None:
    error = ServiceError(
        "AADSTS70008: expired",
        code="invalid_grant",
        description="AADSTS70008: expired",
        status_code=400,
        correlation_id="abc",
    )
    assert error.code == "invalid_grant"
    assert error.status_code == 400
    assert error.correlation_id == "abc"
    assert not error.is_retriable
    assert error.recovery_suggestion is not None


def test_retriable_classification() -> None:
    assert TransportError().is_retriable
    assert ServiceError("boom", status_code=503).is_retriable
    assert ServiceError("busy", code="temporarily_unavailable").is_retriable
    assert not ArgumentError("bad").is_retriable


def test_argument_error_records_parameter() -> None:
    error = ArgumentError("resource cannot be empty", parameter="resource")
    assert error.parameter == "resource"
    assert error.code == "invalid_argument"


def test_cache_ambiguity_error_defaults() -> None:
    error = CacheAmbiguityError()
    assert error.code == AuthErrorCode.MULTIPLE_MATCHING_TOKENS_DETECTED.value
    assert error.category is AuthErrorCategory.CACHE
