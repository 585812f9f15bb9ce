"""Authentication type definitions."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Mapping

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PromptBehavior(str, Enum):
    """How the interactive step may engage the user."""

    AUTO = "auto"
    """Serve from cache or refresh when possible, prompt otherwise."""

    ALWAYS = "always"
    """Skip the cache and always show the sign-in UI."""

    NEVER = "never"
    """Never show UI; fail with ``user_interaction_required`` instead."""


class UserIdentifierType(str, Enum):
    UNIQUE_ID = "unique_id"
    OPTIONAL_DISPLAYABLE_ID = "optional_displayable_id"
    REQUIRED_DISPLAYABLE_ID = "required_displayable_id"


@dataclass(slots=True, frozen=True)
class UserIdentifier:
    """Selects a cached user. ``None`` in its place means "any user"."""

    id: str
    kind: UserIdentifierType = UserIdentifierType.OPTIONAL_DISPLAYABLE_ID

    @classmethod
    def unique(cls, unique_id: str) -> "UserIdentifier":
        return cls(unique_id, UserIdentifierType.UNIQUE_ID)

    @classmethod
    def displayable(cls, displayable_id: str, *, required: bool = False) -> "UserIdentifier":
        kind = (
            UserIdentifierType.REQUIRED_DISPLAYABLE_ID
            if required
            else UserIdentifierType.OPTIONAL_DISPLAYABLE_ID
        )
        return cls(displayable_id, kind)

    @property
    def is_displayable(self) -> bool:
        return self.kind is not UserIdentifierType.UNIQUE_ID

    def matches(self, unique_id: str | None, displayable_id: str | None) -> bool:
        if self.kind is UserIdentifierType.UNIQUE_ID:
            return unique_id is not None and unique_id == self.id
        return displayable_id is not None and displayable_id.lower() == self.id.lower()


@dataclass(slots=True, frozen=True)
class UserInfo:
    unique_id: str | None = None
    displayable_id: str | None = None
    given_name: str | None = None
    family_name: str | None = None
    identity_provider: str | None = None

    @classmethod
    def from_claims(cls, claims: Mapping[str, Any]) -> "UserInfo":
        """Build user details from id-token claims (``oid``/``sub``, ``upn``/``email``)."""

        def _text(*names: str) -> str | None:
            for name in names:
                value = claims.get(name)
                if isinstance(value, str) and value:
                    return value
            return None

        return cls(
            unique_id=_text("oid", "sub"),
            displayable_id=_text("upn", "email", "preferred_username"),
            given_name=_text("given_name"),
            family_name=_text("family_name"),
            identity_provider=_text("idp", "iss"),
        )


@dataclass(slots=True, frozen=True)
class AuthenticationParameters:
    """Authority/resource pair advertised by a resource server challenge."""

    authority: str | None = None
    resource: str | None = None


@dataclass(slots=True, frozen=True)
class AuthenticationResult:
    access_token: str
    access_token_type: str
    expires_on: datetime
    resource: str
    authority: str
    refresh_token: str | None = None
    tenant_id: str | None = None
    user_info: UserInfo | None = None
    id_token: str | None = None
    is_multiple_resource_refresh_token: bool = False
    from_cache: bool = False

    @property
    def user_id(self) -> str | None:
        if self.user_info is None:
            return None
        return self.user_info.unique_id or self.user_info.displayable_id

    def expires_within(self, seconds: float, *, now: datetime | None = None) -> bool:
        current = now or utc_now()
        return (self.expires_on - current).total_seconds() <= seconds

    def create_authorization_header(self) -> str:
        return f"{self.access_token_type} {self.access_token}"


__all__ = [
    "AuthenticationParameters",
    "AuthenticationResult",
    "Clock",
    "PromptBehavior",
    "UserIdentifier",
    "UserIdentifierType",
    "UserInfo",
    "utc_now",
]
