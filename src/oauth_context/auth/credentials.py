from __future__ import annotations

import base64
import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import ClassVar, TypeAlias

from oauth_context.auth.errors import ArgumentError
from oauth_context.config.settings import DEFAULT_MIN_KEY_SIZE_IN_BITS
from oauth_context.crypto.signer import CryptoSigner


JWT_BEARER_ASSERTION_TYPE = "urn:ietf:params:oauth:client-assertion-type:jwt-bearer"
ASSERTION_LIFETIME_SECONDS = 600


@dataclass(slots=True, frozen=True)
class ClientCredential:
    """Confidential client identified by a shared secret."""

    client_id: str
    client_secret: str = field(repr=False)

    def __post_init__(self) -> None:
        if not self.client_id:
            raise ArgumentError("client_id cannot be empty", parameter="client_id")
        if not self.client_secret:
            raise ArgumentError(
                "client_secret cannot be empty", parameter="client_secret"
            )


@dataclass(slots=True, frozen=True)
class ClientAssertion:
    """Pre-built assertion supplied by the caller."""

    client_id: str
    assertion: str = field(repr=False)
    assertion_type: str = JWT_BEARER_ASSERTION_TYPE

    def __post_init__(self) -> None:
        if not self.client_id:
            raise ArgumentError("client_id cannot be empty", parameter="client_id")
        if not self.assertion:
            raise ArgumentError("assertion cannot be empty", parameter="assertion")


@dataclass(slots=True, frozen=True)
class ClientAssertionCertificate:
    """Certificate (PKCS#12 or PEM bundle) used to sign client assertions."""

    MIN_KEY_SIZE_IN_BITS: ClassVar[int] = DEFAULT_MIN_KEY_SIZE_IN_BITS

    client_id: str
    certificate: bytes = field(repr=False)
    password: str | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if not self.client_id:
            raise ArgumentError("client_id cannot be empty", parameter="client_id")
        if not self.certificate:
            raise ArgumentError(
                "certificate cannot be empty", parameter="certificate"
            )

    @classmethod
    def from_file(
        cls, client_id: str, path: Path, password: str | None = None
    ) -> "ClientAssertionCertificate":
        return cls(client_id=client_id, certificate=path.read_bytes(), password=password)


Credential: TypeAlias = ClientCredential | ClientAssertion | ClientAssertionCertificate


def _b64url_json(payload: dict[str, object]) -> str:
    encoded = json.dumps(payload, separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(encoded).decode("ascii").rstrip("=")


def build_client_assertion(
    certificate: ClientAssertionCertificate,
    *,
    audience: str,
    signer: CryptoSigner,
    now: datetime,
) -> str:
    """Return a signed JWT asserting ``certificate.client_id`` to ``audience``."""

    # Key size is enforced before any hashing or encoding.
    signer.validate(certificate)

    not_before = int(now.timestamp())
    header = {
        "alg": signer.algorithm_for(certificate),
        "typ": "JWT",
        "x5t": signer.thumbprint(certificate),
    }
    claims = {
        "aud": audience,
        "iss": certificate.client_id,
        "sub": certificate.client_id,
        "jti": str(uuid.uuid4()),
        "nbf": not_before,
        "exp": not_before + ASSERTION_LIFETIME_SECONDS,
    }
    signing_input = f"{_b64url_json(header)}.{_b64url_json(claims)}"
    signature = signer.sign(signing_input, certificate)
    encoded_signature = base64.urlsafe_b64encode(signature).decode("ascii").rstrip("=")
    return f"{signing_input}.{encoded_signature}"


def credential_form_fields(
    credential: Credential | None,
    *,
    audience: str,
    signer: CryptoSigner,
    now: datetime,
) -> dict[str, str]:
    """Token-endpoint form fields authenticating ``credential``."""

    if credential is None:
        return {}
    if isinstance(credential, ClientCredential):
        return {"client_secret": credential.client_secret}
    if isinstance(credential, ClientAssertion):
        return {
            "client_assertion_type": credential.assertion_type,
            "client_assertion": credential.assertion,
        }
    return {
        "client_assertion_type": JWT_BEARER_ASSERTION_TYPE,
        "client_assertion": build_client_assertion(
            credential, audience=audience, signer=signer, now=now
        ),
    }


__all__ = [
    "ASSERTION_LIFETIME_SECONDS",
    "ClientAssertion",
    "ClientAssertionCertificate",
    "ClientCredential",
    "Credential",
    "JWT_BEARER_ASSERTION_TYPE",
    "build_client_assertion",
    "credential_form_fields",
]
