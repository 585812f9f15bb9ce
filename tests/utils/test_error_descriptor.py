from __future__ import annotations

import asyncio
import errno
import socket

import httpx

from oauth_context.auth.errors import (
    AuthErrorCode,
    CacheAmbiguityError,
    ServiceError,
    TransportError,
    UiFailure,
)
from oauth_context.utils.call_state import CancellationError
from oauth_context.utils.errors import ErrorSeverity, describe_exception


def test_cancellation_is_informational() -> None:
    descriptor = describe_exception(CancellationError("window closed"))
    assert descriptor.severity is ErrorSeverity.INFO
    assert descriptor.detail == "window closed"


def test_user_cancelled_sign_in_is_declined() -> None:
    descriptor = describe_exception(
        UiFailure("User canceled authentication", code=AuthErrorCode.AUTHENTICATION_CANCELED)
    )
    assert descriptor.user_declined
    assert descriptor.severity is ErrorSeverity.INFO
    assert descriptor.headline == "Sign-in was cancelled."


def test_service_error_includes_description_and_suggestion() -> None:
    descriptor = describe_exception(
        ServiceError("Refresh failed", code="invalid_grant", description="AADSTS70008", status_code=400)
    )
    assert descriptor.headline == "The identity provider rejected the request."
    assert "invalid_grant" in descriptor.detail
    assert "AADSTS70008" in descriptor.detail
    assert descriptor.suggestion == "The grant is no longer valid. Sign in again."
    assert not descriptor.transient


def test_server_failure_is_transient() -> None:
    descriptor = describe_exception(ServiceError("Bad gateway", status_code=502))
    assert descriptor.transient
    assert descriptor.severity is ErrorSeverity.WARNING


def test_auth_error_found_in_cause_chain() -> None:
    try:
        try:
            raise TransportError("connection reset")
        except TransportError as inner:
            raise RuntimeError("wrapper") from inner
    except RuntimeError as exc:
        descriptor = describe_exception(exc)

    assert descriptor.headline == "Network issue contacting the identity provider."
    assert descriptor.transient


def test_cache_ambiguity_suggests_user_identifier() -> None:
    descriptor = describe_exception(CacheAmbiguityError())
    assert descriptor.suggestion == "Several accounts are cached; pass a user identifier."


def test_httpx_timeout_is_transient() -> None:
    descriptor = describe_exception(httpx.ReadTimeout("slow"))
    assert descriptor.transient
    assert descriptor.headline == "Timed out contacting the identity provider."


def test_asyncio_timeout_is_transient() -> None:
    descriptor = describe_exception(asyncio.TimeoutError())
    assert descriptor.transient


def test_dns_failure_is_described() -> None:
    descriptor = describe_exception(socket.gaierror(socket.EAI_NONAME, "Name or service not known"))
    assert descriptor.headline == "DNS lookup failed while contacting the identity provider."


def test_network_errno_is_described() -> None:
    descriptor = describe_exception(OSError(errno.ECONNREFUSED, "Connection refused"))
    assert descriptor.headline == "Network connection issue encountered."
    assert descriptor.transient


def test_unknown_error_falls_back_to_generic() -> None:
    descriptor = describe_exception(ValueError("unexpected"))
    assert descriptor.headline == "Authentication failed."
    assert descriptor.detail == "ValueError: unexpected"
    assert descriptor.severity is ErrorSeverity.ERROR
