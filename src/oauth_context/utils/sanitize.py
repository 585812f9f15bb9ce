from __future__ import annotations

from typing import Any, Final, Mapping

SENSITIVE_FIELDS: Final[frozenset[str]] = frozenset(
    {
        "access_token",
        "refresh_token",
        "id_token",
        "client_secret",
        "client_assertion",
        "assertion",
        "code",
        "password",
        "authorization",
    }
)

_CONTROL_CHARS: Final[frozenset[str]] = frozenset(
    chr(code) for code in range(0x00, 0x20) if chr(code) not in {"\t", "\n"}
)

_VISIBLE_PREFIX = 4


def sanitize_log_message(value: str) -> str:
    """Normalise log messages by stripping control characters and CR sequences."""

    normalised = value.replace("\r\n", "\n").replace("\r", "\n")
    return "".join(ch for ch in normalised if ch not in _CONTROL_CHARS)


def redact_secret(value: object) -> str:
    """Mask a credential, keeping a short prefix for correlation in logs."""

    if value is None:
        return "<none>"
    text = str(value)
    if len(text) <= _VISIBLE_PREFIX * 2:
        return "***"
    return f"{text[:_VISIBLE_PREFIX]}***({len(text)})"


def redact_mapping(values: Mapping[str, Any]) -> dict[str, Any]:
    """Return a copy of ``values`` with sensitive keys masked."""

    redacted: dict[str, Any] = {}
    for key, value in values.items():
        if key.lower() in SENSITIVE_FIELDS:
            redacted[key] = redact_secret(value)
        elif isinstance(value, Mapping):
            redacted[key] = redact_mapping(value)
        else:
            redacted[key] = value
    return redacted


__all__ = [
    "SENSITIVE_FIELDS",
    "redact_mapping",
    "redact_secret",
    "sanitize_log_message",
]
