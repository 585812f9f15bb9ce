from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import urlsplit

from oauth_context.auth.errors import ArgumentError, AuthErrorCode
from oauth_context.config.settings import COMMON_TENANT


AUTHORIZE_PATH = "oauth2/authorize"
TOKEN_PATH = "oauth2/token"


def normalize_authority(value: str) -> str:
    """Canonical comparison form: lower-cased, no trailing slash."""

    return value.strip().rstrip("/").lower()


@dataclass(slots=True, frozen=True)
class Authority:
    """A parsed identity-provider authority ``https://<host>/<tenant>``."""

    instance: str
    tenant: str

    @classmethod
    def parse(cls, value: str) -> "Authority":
        if not value or not value.strip():
            raise ArgumentError(
                "Authority cannot be empty",
                code=AuthErrorCode.INVALID_AUTHORITY,
                parameter="authority",
            )
        parts = urlsplit(value.strip())
        if parts.scheme.lower() != "https" or not parts.netloc:
            raise ArgumentError(
                f"Authority must be an absolute https URL: {value}",
                code=AuthErrorCode.INVALID_AUTHORITY,
                parameter="authority",
            )
        if parts.query or parts.fragment:
            raise ArgumentError(
                f"Authority must not carry a query or fragment: {value}",
                code=AuthErrorCode.INVALID_AUTHORITY,
                parameter="authority",
            )
        segments = [segment for segment in parts.path.split("/") if segment]
        if not segments:
            raise ArgumentError(
                f"Authority must include a tenant segment: {value}",
                code=AuthErrorCode.INVALID_AUTHORITY,
                parameter="authority",
            )
        return cls(instance=f"https://{parts.netloc.lower()}", tenant=segments[0])

    @property
    def url(self) -> str:
        return f"{self.instance}/{self.tenant}"

    @property
    def is_common(self) -> bool:
        return self.tenant.lower() == COMMON_TENANT

    @property
    def authorize_endpoint(self) -> str:
        return f"{self.url}/{AUTHORIZE_PATH}"

    @property
    def token_endpoint(self) -> str:
        return f"{self.url}/{TOKEN_PATH}"

    def with_tenant(self, tenant: str) -> "Authority":
        return Authority(instance=self.instance, tenant=tenant)

    def __str__(self) -> str:
        return self.url


__all__ = ["Authority", "normalize_authority"]
