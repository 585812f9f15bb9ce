"""Token endpoint response validation."""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, ValidationError

from oauth_context.auth.errors import AuthErrorCode, ServiceError
from oauth_context.transport.client import HttpResponse
from oauth_context.utils import get_logger


logger = get_logger(__name__)


class TokenResponse(BaseModel):
    """Wire shape of a token endpoint answer (success or error)."""

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    access_token: str | None = None
    token_type: str = "Bearer"
    expires_in: int | str | None = None
    expires_on: int | str | None = None
    refresh_token: str | None = None
    resource: str | None = None
    id_token: str | None = None
    error: str | None = None
    error_description: str | None = None
    correlation_id: str | None = None


@dataclass(slots=True, frozen=True)
class ValidatedTokenResponse:
    access_token: str
    access_token_type: str
    expires_on: datetime
    refresh_token: str | None = None
    resource: str | None = None
    id_token: str | None = None
    id_token_claims: Mapping[str, Any] | None = None

    @property
    def tenant_id(self) -> str | None:
        if not self.id_token_claims:
            return None
        tenant = self.id_token_claims.get("tid")
        return tenant if isinstance(tenant, str) and tenant else None


def _invalid_response(reason: str, *, status_code: int, correlation_id: str | None) -> ServiceError:
    logger.error("Invalid token response", reason=reason, status_code=status_code)
    return ServiceError(
        f"The token endpoint returned an invalid response: {reason}",
        code=AuthErrorCode.INVALID_TOKEN_RESPONSE,
        status_code=status_code,
        correlation_id=correlation_id,
    )


def _b64url_json(segment: str) -> dict[str, Any]:
    padding = "=" * (-len(segment) % 4)
    decoded = base64.urlsafe_b64decode(segment + padding)
    value = json.loads(decoded)
    if not isinstance(value, dict):
        raise ValueError("segment is not a JSON object")
    return value


def parse_id_token(id_token: str) -> dict[str, Any]:
    """Decode the claims of an id token without verifying its signature."""

    parts = id_token.split(".")
    if len(parts) != 3:
        raise ServiceError(
            f"id_token must have three segments, got {len(parts)}",
            code=AuthErrorCode.INVALID_ID_TOKEN,
        )
    try:
        _b64url_json(parts[0])
        return _b64url_json(parts[1])
    except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
        raise ServiceError(
            "id_token segments are not base64url encoded JSON",
            code=AuthErrorCode.INVALID_ID_TOKEN,
            inner_error=exc,
        ) from exc


def _parse_int(value: int | str | None) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        return int(value.strip())
    except ValueError:
        return None


def _expiry(model: TokenResponse, now: datetime) -> datetime | None:
    try:
        if model.expires_in is not None:
            seconds = _parse_int(model.expires_in)
            if seconds is None or seconds < 0:
                return None
            return now + timedelta(seconds=seconds)
        if model.expires_on is not None:
            epoch = _parse_int(model.expires_on)
            if epoch is None or epoch < 0:
                return None
            return datetime.fromtimestamp(epoch, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None
    return None


def validate_token_response(
    response: HttpResponse,
    *,
    now: datetime,
    correlation_id: str | None = None,
) -> ValidatedTokenResponse:
    """Turn a raw token endpoint answer into a validated response or raise."""

    status = response.status_code
    try:
        payload = response.json()
    except (ValueError, UnicodeDecodeError):
        payload = None

    if not isinstance(payload, dict):
        if not response.is_success:
            logger.error("Token endpoint returned a non-JSON error", status_code=status)
            raise ServiceError(
                f"The token endpoint returned HTTP {status}",
                status_code=status,
                correlation_id=correlation_id,
            )
        raise _invalid_response("body is not a JSON object", status_code=status, correlation_id=correlation_id)

    try:
        model = TokenResponse.model_validate(payload)
    except ValidationError as exc:
        if not response.is_success:
            raise ServiceError(
                f"The token endpoint returned HTTP {status}",
                status_code=status,
                correlation_id=correlation_id,
                inner_error=exc,
            ) from exc
        raise _invalid_response(
            f"{exc.error_count()} malformed field(s)",
            status_code=status,
            correlation_id=correlation_id,
        ) from exc

    if model.error:
        logger.error(
            "Token endpoint returned an error",
            error=model.error,
            status_code=status,
            server_correlation_id=model.correlation_id,
        )
        raise ServiceError(
            model.error_description or model.error,
            code=model.error,
            description=model.error_description,
            status_code=status,
            correlation_id=model.correlation_id or correlation_id,
        )
    if not response.is_success:
        raise ServiceError(
            f"The token endpoint returned HTTP {status}",
            status_code=status,
            correlation_id=correlation_id,
        )

    if not model.access_token:
        raise _invalid_response("access_token is missing", status_code=status, correlation_id=correlation_id)

    expires_on = _expiry(model, now)
    if expires_on is None:
        raise _invalid_response(
            "expiry is missing, negative or not a usable integer",
            status_code=status,
            correlation_id=correlation_id,
        )

    claims: dict[str, Any] | None = None
    if model.id_token:
        try:
            claims = parse_id_token(model.id_token)
        except ServiceError as exc:
            exc.status_code = status
            exc.correlation_id = correlation_id
            logger.error("Invalid id_token in token response", error=exc.message)
            raise

    return ValidatedTokenResponse(
        access_token=model.access_token,
        access_token_type=model.token_type or "Bearer",
        expires_on=expires_on,
        refresh_token=model.refresh_token,
        resource=model.resource,
        id_token=model.id_token,
        id_token_claims=claims,
    )


__all__ = [
    "TokenResponse",
    "ValidatedTokenResponse",
    "parse_id_token",
    "validate_token_response",
]
