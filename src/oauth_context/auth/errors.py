from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class AuthErrorCategory(str, Enum):
    ARGUMENT = "argument"
    SERVICE = "service"
    TRANSPORT = "transport"
    UI = "ui"
    CONFIGURATION = "configuration"
    CACHE = "cache"
    UNKNOWN = "unknown"


class AuthErrorCode(str, Enum):
    """Error codes raised by the library itself (wire codes pass through as-is)."""

    INVALID_ARGUMENT = "invalid_argument"
    INVALID_AUTHORITY = "invalid_authority"
    INVALID_CHALLENGE_FORMAT = "invalid_challenge_format"
    UNAUTHORIZED_RESPONSE_EXPECTED = "unauthorized_response_expected"
    UNAUTHORIZED_HTTP_STATUS_CODE_EXPECTED = "unauthorized_http_status_code_expected"
    MISSING_AUTHENTICATE_HEADER = "missing_authenticate_header"

    SERVICE_RETURNED_ERROR = "service_returned_error"
    INVALID_TOKEN_RESPONSE = "invalid_token_response"
    INVALID_ID_TOKEN = "invalid_id_token"
    STATE_MISMATCH = "state_mismatch"
    INVALID_AUTHORIZATION_RESPONSE = "invalid_authorization_response"
    USER_MISMATCH = "user_mismatch"

    TRANSPORT_FAILURE = "transport_failure"

    AUTHENTICATION_CANCELED = "authentication_canceled"
    AUTHORIZATION_HTTP_ERROR = "authorization_http_error"
    UNKNOWN_AUTHORIZATION_ERROR = "unknown_authorization_error"
    AUTHENTICATION_UI_FAILED = "authentication_ui_failed"
    USER_INTERACTION_REQUIRED = "user_interaction_required"
    FAILED_TO_ACQUIRE_TOKEN_SILENTLY = "failed_to_acquire_token_silently"

    CERTIFICATE_KEY_SIZE_TOO_SMALL = "certificate_key_size_too_small"
    REDIRECT_URI_UNSUPPORTED_WITH_PROMPT_BEHAVIOR_NEVER = (
        "redirect_uri_unsupported_with_prompt_behavior_never"
    )
    SIGNING_PROVIDER_UNAVAILABLE = "signing_provider_unavailable"
    INVALID_CERTIFICATE = "invalid_certificate"

    MULTIPLE_MATCHING_TOKENS_DETECTED = "multiple_matching_tokens_detected"


def _code_value(code: AuthErrorCode | str | None) -> str | None:
    if isinstance(code, AuthErrorCode):
        return code.value
    return code


@dataclass(slots=True, eq=False)
class AuthError(Exception):
    message: str
    category: AuthErrorCategory = AuthErrorCategory.UNKNOWN
    code: str | None = None
    description: str | None = None
    status_code: int | None = None
    correlation_id: str | None = None
    inner_error: Exception | None = None

    def __str__(self) -> str:  # pragma: no cover - trivial
        if self.code:
            return f"{self.code}: {self.message}"
        return self.message

    @property
    def user_declined(self) -> bool:
        return self.code == AuthErrorCode.AUTHENTICATION_CANCELED.value

    @property
    def recovery_suggestion(self) -> str | None:
        if self.user_declined:
            return "Sign-in was cancelled. Start it again when ready."
        if self.code == AuthErrorCode.USER_INTERACTION_REQUIRED.value:
            return "Interactive sign-in is required; retry with prompting allowed."
        if self.code == AuthErrorCode.FAILED_TO_ACQUIRE_TOKEN_SILENTLY.value:
            return "No usable cached token; acquire a token interactively."
        if self.code == "invalid_grant":
            return "The grant is no longer valid. Sign in again."
        if self.category is AuthErrorCategory.TRANSPORT:
            return "Check your network connection and try again."
        if self.category is AuthErrorCategory.CACHE:
            return "Several accounts are cached; pass a user identifier."
        if self.category is AuthErrorCategory.CONFIGURATION:
            return "Review the client registration and credential configuration."
        if self.category is AuthErrorCategory.UI:
            return "The sign-in window could not complete. Try again."
        return None

    @property
    def is_retriable(self) -> bool:
        if self.category is AuthErrorCategory.TRANSPORT:
            return True
        if self.status_code and 500 <= self.status_code <= 599:
            return True
        return self.code in {
            "temporarily_unavailable",
            AuthErrorCode.AUTHORIZATION_HTTP_ERROR.value,
        }


class ArgumentError(AuthError):
    def __init__(
        self,
        message: str,
        *,
        code: AuthErrorCode | str = AuthErrorCode.INVALID_ARGUMENT,
        parameter: str | None = None,
    ) -> None:
        super().__init__(
            message=message,
            category=AuthErrorCategory.ARGUMENT,
            code=_code_value(code),
        )
        self.parameter = parameter


class ServiceError(AuthError):
    """The server answered with an error; ``code`` carries the wire error code."""

    def __init__(
        self,
        message: str,
        *,
        code: AuthErrorCode | str = AuthErrorCode.SERVICE_RETURNED_ERROR,
        description: str | None = None,
        status_code: int | None = None,
        correlation_id: str | None = None,
        inner_error: Exception | None = None,
    ) -> None:
        super().__init__(
            message=message,
            category=AuthErrorCategory.SERVICE,
            code=_code_value(code),
            description=description,
            status_code=status_code,
            correlation_id=correlation_id,
            inner_error=inner_error,
        )


class TransportError(AuthError):
    """No response was received from the server."""

    def __init__(
        self,
        message: str = "No response received from the server",
        *,
        correlation_id: str | None = None,
        inner_error: Exception | None = None,
    ) -> None:
        super().__init__(
            message=message,
            category=AuthErrorCategory.TRANSPORT,
            code=AuthErrorCode.TRANSPORT_FAILURE.value,
            correlation_id=correlation_id,
            inner_error=inner_error,
        )


class UiFailure(AuthError):
    def __init__(
        self,
        message: str,
        *,
        code: AuthErrorCode | str,
        description: str | None = None,
        correlation_id: str | None = None,
        inner_error: Exception | None = None,
    ) -> None:
        super().__init__(
            message=message,
            category=AuthErrorCategory.UI,
            code=_code_value(code),
            description=description,
            correlation_id=correlation_id,
            inner_error=inner_error,
        )


class ConfigurationError(AuthError):
    def __init__(
        self,
        message: str,
        *,
        code: AuthErrorCode | str,
        inner_error: Exception | None = None,
    ) -> None:
        super().__init__(
            message=message,
            category=AuthErrorCategory.CONFIGURATION,
            code=_code_value(code),
            inner_error=inner_error,
        )


class CacheAmbiguityError(AuthError):
    def __init__(
        self,
        message: str = "Multiple tokens for different users match the request",
    ) -> None:
        super().__init__(
            message=message,
            category=AuthErrorCategory.CACHE,
            code=AuthErrorCode.MULTIPLE_MATCHING_TOKENS_DETECTED.value,
        )


__all__ = [
    "ArgumentError",
    "AuthError",
    "AuthErrorCategory",
    "AuthErrorCode",
    "CacheAmbiguityError",
    "ConfigurationError",
    "ServiceError",
    "TransportError",
    "UiFailure",
]
