from __future__ import annotations

import asyncio
import errno
import socket
from dataclasses import dataclass
from enum import Enum

import httpx

from oauth_context.auth.errors import AuthError, AuthErrorCategory
from oauth_context.utils.call_state import CancellationError


class ErrorSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(slots=True)
class ErrorDescriptor:
    """Host-facing summary of a failed token acquisition."""

    headline: str
    detail: str
    severity: ErrorSeverity = ErrorSeverity.ERROR
    transient: bool = False
    suggestion: str | None = None
    user_declined: bool = False


_NETWORK_ERRNOS = {
    errno.EHOSTUNREACH,
    errno.ENETDOWN,
    errno.ENETUNREACH,
    errno.ECONNREFUSED,
    errno.ECONNRESET,
    errno.ETIMEDOUT,
}


def describe_exception(error: BaseException) -> ErrorDescriptor:
    descriptor = ErrorDescriptor(
        headline="Authentication failed.",
        detail=f"{type(error).__name__}: {error}",
    )

    if isinstance(error, CancellationError):
        descriptor.headline = "Token acquisition was cancelled."
        descriptor.detail = error.reason or "Cancelled by the caller"
        descriptor.severity = ErrorSeverity.INFO
        return descriptor

    auth_error = _locate_auth_error(error)
    if auth_error is not None:
        descriptor.headline = _auth_headline(auth_error)
        descriptor.detail = str(auth_error)
        if auth_error.description and auth_error.description != auth_error.message:
            descriptor.detail = f"{descriptor.detail} ({auth_error.description})"
        descriptor.suggestion = auth_error.recovery_suggestion
        descriptor.transient = auth_error.is_retriable
        descriptor.user_declined = auth_error.user_declined
        if auth_error.user_declined:
            descriptor.severity = ErrorSeverity.INFO
        elif auth_error.is_retriable:
            descriptor.severity = ErrorSeverity.WARNING
        return descriptor

    root = _unwrap_error(error)

    if isinstance(root, httpx.TimeoutException):
        descriptor.headline = "Timed out contacting the identity provider."
        descriptor.detail = f"{type(root).__name__}: {root}"
        descriptor.severity = ErrorSeverity.WARNING
        descriptor.transient = True
        descriptor.suggestion = "Check your network connection and retry shortly."
        return descriptor

    if isinstance(root, asyncio.TimeoutError):
        descriptor.headline = "Operation timed out before the identity provider responded."
        descriptor.detail = "asyncio.TimeoutError: Operation timed out"
        descriptor.severity = ErrorSeverity.WARNING
        descriptor.transient = True
        descriptor.suggestion = "Retry the request after verifying connectivity."
        return descriptor

    if isinstance(root, socket.gaierror):
        descriptor.headline = "DNS lookup failed while contacting the identity provider."
        descriptor.detail = f"socket.gaierror: {root}"
        descriptor.severity = ErrorSeverity.WARNING
        descriptor.transient = True
        descriptor.suggestion = "Verify internet connectivity or DNS configuration."
        return descriptor

    if isinstance(root, OSError) and getattr(root, "errno", None) in _NETWORK_ERRNOS:
        descriptor.headline = "Network connection issue encountered."
        descriptor.detail = f"OSError[{root.errno}]: {root.strerror}"
        descriptor.severity = ErrorSeverity.WARNING
        descriptor.transient = True
        descriptor.suggestion = "Retry once your connection is stable."
        return descriptor

    return descriptor


def _locate_auth_error(error: BaseException) -> AuthError | None:
    current: BaseException | None = error
    visited: set[int] = set()
    while current is not None and id(current) not in visited:
        visited.add(id(current))
        if isinstance(current, AuthError):
            return current
        current = current.__cause__ or current.__context__
    return None


def _unwrap_error(error: BaseException) -> BaseException:
    current = error
    visited: set[int] = set()
    while True:
        visited.add(id(current))
        inner: BaseException | None = current.__cause__ or current.__context__
        if inner is None or id(inner) in visited:
            return current
        current = inner


def _auth_headline(error: AuthError) -> str:
    if error.user_declined:
        return "Sign-in was cancelled."
    match error.category:
        case AuthErrorCategory.SERVICE:
            return "The identity provider rejected the request."
        case AuthErrorCategory.TRANSPORT:
            return "Network issue contacting the identity provider."
        case AuthErrorCategory.UI:
            return "Interactive sign-in did not complete."
        case AuthErrorCategory.CONFIGURATION:
            return "The client configuration is not usable."
        case AuthErrorCategory.CACHE:
            return "Several cached accounts match the request."
        case AuthErrorCategory.ARGUMENT:
            return "Invalid authentication request."
        case _:
            return "Authentication failed."


__all__ = [
    "ErrorDescriptor",
    "ErrorSeverity",
    "describe_exception",
]
