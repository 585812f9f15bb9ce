"""Parse ``WWW-Authenticate: Bearer`` challenges into authentication parameters."""

from __future__ import annotations

from typing import Final
from urllib.parse import urlsplit

from oauth_context.auth.errors import ArgumentError, AuthErrorCode
from oauth_context.auth.types import AuthenticationParameters
from oauth_context.transport.client import HttpClient, HttpResponse
from oauth_context.utils import get_logger


logger = get_logger(__name__)

AUTHENTICATE_HEADER: Final[str] = "WWW-Authenticate"
BEARER: Final[str] = "bearer"
AUTHORITY_KEY: Final[str] = "authorization_uri"
RESOURCE_KEY: Final[str] = "resource_id"


def _invalid_format(header: str, reason: str) -> ArgumentError:
    logger.error("Invalid authenticate header", reason=reason, header=header)
    return ArgumentError(
        f"Invalid WWW-Authenticate header format ({reason})",
        code=AuthErrorCode.INVALID_CHALLENGE_FORMAT,
        parameter="authenticate_header",
    )


def _split_outside_quotes(text: str, separator: str) -> list[str]:
    segments: list[str] = []
    current: list[str] = []
    in_quotes = False
    for char in text:
        if char == '"':
            in_quotes = not in_quotes
            current.append(char)
        elif char == separator and not in_quotes:
            segments.append("".join(current))
            current = []
        else:
            current.append(char)
    if in_quotes:
        raise ValueError("unterminated quoted value")
    segments.append("".join(current))
    return segments


def parse_key_value_list(text: str, separator: str = ",") -> dict[str, str]:
    """Tokenise ``key=value`` pairs, honouring double-quoted values.

    Keys are lower-cased; surrounding quotes are removed from values. Empty
    segments are skipped, a segment without ``=`` raises ``ValueError``.
    """

    items: dict[str, str] = {}
    for segment in _split_outside_quotes(text, separator):
        segment = segment.strip()
        if not segment:
            continue
        key, sep, value = segment.partition("=")
        key = key.strip().lower()
        if not sep or not key:
            raise ValueError(f"malformed parameter {segment!r}")
        value = value.strip()
        if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
            value = value[1:-1]
        items[key] = value
    return items


def parse_authenticate_header(authenticate_header: str | None) -> AuthenticationParameters:
    if authenticate_header is None or not authenticate_header.strip():
        raise ArgumentError(
            "authenticate_header cannot be empty", parameter="authenticate_header"
        )

    header = authenticate_header.strip()
    # Rejects "Bearer", "Bearer " and "BearerXYZ ..." alike.
    if (
        not header.lower().startswith(BEARER)
        or len(header) < len(BEARER) + 2
        or not header[len(BEARER)].isspace()
    ):
        raise _invalid_format(header, "expected the Bearer scheme")

    try:
        items = parse_key_value_list(header[len(BEARER) :].strip())
    except ValueError as exc:
        raise _invalid_format(header, str(exc)) from exc

    return AuthenticationParameters(
        authority=items.get(AUTHORITY_KEY) or None,
        resource=items.get(RESOURCE_KEY) or None,
    )


def parameters_from_unauthorized_response(
    response: HttpResponse,
) -> AuthenticationParameters:
    if response.status_code != 401:
        logger.error(
            "Unauthorized status expected", status_code=response.status_code
        )
        raise ArgumentError(
            f"Unauthorized HTTP status code (401) expected, got {response.status_code}",
            code=AuthErrorCode.UNAUTHORIZED_HTTP_STATUS_CODE_EXPECTED,
            parameter="response",
        )
    header = response.header(AUTHENTICATE_HEADER)
    if header is None:
        logger.error("Unauthorized response lacks an authenticate header")
        raise ArgumentError(
            f"The unauthorized response has no {AUTHENTICATE_HEADER} header",
            code=AuthErrorCode.MISSING_AUTHENTICATE_HEADER,
            parameter="response",
        )
    return parse_authenticate_header(header)


async def discover(
    resource_url: str, http_client: HttpClient
) -> AuthenticationParameters:
    """Probe ``resource_url`` expecting a 401 Bearer challenge."""

    if not resource_url or not urlsplit(resource_url).scheme:
        raise ArgumentError(
            "resource_url must be an absolute URL", parameter="resource_url"
        )

    response = await http_client.send("GET", resource_url)
    if response.status_code < 400:
        logger.error(
            "Resource answered without a challenge",
            url=resource_url,
            status_code=response.status_code,
        )
        raise ArgumentError(
            f"Unauthorized response expected from {resource_url}, "
            f"got {response.status_code}",
            code=AuthErrorCode.UNAUTHORIZED_RESPONSE_EXPECTED,
            parameter="resource_url",
        )

    parameters = parameters_from_unauthorized_response(response)
    logger.info(
        "Discovered authentication parameters",
        url=resource_url,
        authority=parameters.authority,
        resource=parameters.resource,
    )
    return parameters


__all__ = [
    "AUTHENTICATE_HEADER",
    "discover",
    "parameters_from_unauthorized_response",
    "parse_authenticate_header",
    "parse_key_value_list",
]
