"""Certificate-backed hashing and signing for client assertions.

Key material is loaded for a single call inside :meth:`CryptoSigner._key_scope`
and dropped on every exit path; nothing is cached between calls.
"""

from __future__ import annotations

import base64
import hashlib
import re
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Final, Protocol

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa
from cryptography.hazmat.primitives.asymmetric.utils import decode_dss_signature
from cryptography.hazmat.primitives.serialization import pkcs12

from oauth_context.auth.errors import AuthErrorCode, ConfigurationError
from oauth_context.config.settings import DEFAULT_MIN_KEY_SIZE_IN_BITS
from oauth_context.utils import get_logger


logger = get_logger(__name__)

_PEM_BLOCK: Final[re.Pattern[bytes]] = re.compile(
    rb"-----BEGIN ([A-Z0-9 ]+)-----.+?-----END \1-----",
    flags=re.DOTALL,
)


class CertificateSource(Protocol):
    """Anything exposing raw certificate bytes and the password protecting them."""

    @property
    def certificate(self) -> bytes: ...

    @property
    def password(self) -> str | None: ...


def _sign_rsa_sha256(key: Any, data: bytes) -> bytes:
    return key.sign(data, padding.PKCS1v15(), hashes.SHA256())


def _sign_ecdsa_sha256(key: Any, data: bytes) -> bytes:
    # JWS expects the raw r||s form rather than DER.
    der = key.sign(data, ec.ECDSA(hashes.SHA256()))
    r, s = decode_dss_signature(der)
    size = (key.curve.key_size + 7) // 8
    return r.to_bytes(size, "big") + s.to_bytes(size, "big")


@dataclass(slots=True, frozen=True)
class SigningProvider:
    name: str
    algorithm: str
    key_type: type
    sign: Callable[[Any, bytes], bytes]
    # JWS ties each ECDSA algorithm to one curve (ES256 is P-256 only).
    curve: type[ec.EllipticCurve] | None = None

    def supports(self, key: object) -> bool:
        if not isinstance(key, self.key_type):
            return False
        if self.curve is None:
            return True
        return isinstance(getattr(key, "curve", None), self.curve)


DEFAULT_SIGNING_PROVIDERS: tuple[SigningProvider, ...] = (
    SigningProvider("rsa-pkcs1v15-sha256", "RS256", rsa.RSAPrivateKey, _sign_rsa_sha256),
    SigningProvider(
        "ecdsa-p256-sha256",
        "ES256",
        ec.EllipticCurvePrivateKey,
        _sign_ecdsa_sha256,
        curve=ec.SECP256R1,
    ),
)


@dataclass(slots=True)
class _KeyMaterial:
    private_key: Any
    certificate: x509.Certificate

    def release(self) -> None:
        # Only the private key is secret; the certificate is public data.
        self.private_key = None


def _password_bytes(password: str | None) -> bytes | None:
    return password.encode("utf-8") if password else None


_Loaded = tuple[Any, x509.Certificate | None]


def _load_pkcs12(data: bytes, password: str | None) -> _Loaded:
    key, certificate, _additional = pkcs12.load_key_and_certificates(
        data, _password_bytes(password)
    )
    return key, certificate


def _load_pem_bundle(data: bytes, password: str | None) -> _Loaded:
    key: Any = None
    certificate: x509.Certificate | None = None
    for match in _PEM_BLOCK.finditer(data):
        label = match.group(1)
        block = match.group(0)
        if label.endswith(b"CERTIFICATE") and certificate is None:
            certificate = x509.load_pem_x509_certificate(block)
        elif label.endswith(b"PRIVATE KEY") and key is None:
            key = serialization.load_pem_private_key(block, _password_bytes(password))
    return key, certificate


def _load_key_material(data: bytes, password: str | None) -> _KeyMaterial:
    if not data:
        raise ConfigurationError(
            "Certificate data is empty", code=AuthErrorCode.INVALID_CERTIFICATE
        )
    loader = _load_pem_bundle if b"-----BEGIN" in data else _load_pkcs12
    try:
        key, certificate = loader(data, password)
    except (ValueError, TypeError) as exc:
        raise ConfigurationError(
            f"Unable to read certificate material: {exc}",
            code=AuthErrorCode.INVALID_CERTIFICATE,
            inner_error=exc,
        ) from exc
    if key is None or certificate is None:
        raise ConfigurationError(
            "Certificate material must contain both a certificate and its private key",
            code=AuthErrorCode.INVALID_CERTIFICATE,
        )
    return _KeyMaterial(private_key=key, certificate=certificate)


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _describe_key(key: object) -> str:
    curve = getattr(key, "curve", None)
    if curve is not None:
        return f"{type(key).__name__} ({curve.name})"
    return type(key).__name__


class CryptoSigner:
    """Hashes payloads and signs them with a certificate's private key."""

    def __init__(
        self,
        *,
        min_key_size_in_bits: int = DEFAULT_MIN_KEY_SIZE_IN_BITS,
        providers: tuple[SigningProvider, ...] = DEFAULT_SIGNING_PROVIDERS,
    ) -> None:
        self._min_key_size = min_key_size_in_bits
        self._providers = providers

    @property
    def min_key_size_in_bits(self) -> int:
        return self._min_key_size

    @staticmethod
    def hash(data: str | bytes) -> str:
        """SHA-256 of the UTF-8 encoded input, returned as standard base64."""

        raw = data.encode("utf-8") if isinstance(data, str) else data
        return base64.b64encode(hashlib.sha256(raw).digest()).decode("ascii")

    def validate(self, certificate: CertificateSource) -> None:
        """Fail fast when the certificate key is below the minimum size."""

        with self._key_scope(certificate) as material:
            self._check_key_size(material)

    def sign(self, message: str | bytes, certificate: CertificateSource) -> bytes:
        payload = message.encode("utf-8") if isinstance(message, str) else message
        with self._key_scope(certificate) as material:
            self._check_key_size(material)
            provider = self._provider_for(material.private_key)
            logger.debug("Signing payload", provider=provider.name, size=len(payload))
            return provider.sign(material.private_key, payload)

    def thumbprint(self, certificate: CertificateSource) -> str:
        """Base64url SHA-1 hash of the DER certificate (the ``x5t`` value)."""

        with self._key_scope(certificate) as material:
            return _b64url(material.certificate.fingerprint(hashes.SHA1()))

    def algorithm_for(self, certificate: CertificateSource) -> str:
        with self._key_scope(certificate) as material:
            return self._provider_for(material.private_key).algorithm

    # ----------------------------------------------------------------- Helpers

    @contextmanager
    def _key_scope(self, certificate: CertificateSource) -> Iterator[_KeyMaterial]:
        material = _load_key_material(certificate.certificate, certificate.password)
        try:
            yield material
        finally:
            material.release()

    def _check_key_size(self, material: _KeyMaterial) -> None:
        public_key = material.certificate.public_key()
        # The minimum applies to RSA moduli; curve sizes are not comparable.
        if not isinstance(public_key, rsa.RSAPublicKey):
            return
        key_size = public_key.key_size
        if key_size < self._min_key_size:
            logger.error(
                "Certificate key below minimum size",
                key_size=key_size,
                minimum=self._min_key_size,
            )
            raise ConfigurationError(
                f"The certificate key size must be at least {self._min_key_size} bits "
                f"(found {key_size})",
                code=AuthErrorCode.CERTIFICATE_KEY_SIZE_TOO_SMALL,
            )

    def _provider_for(self, key: object) -> SigningProvider:
        for provider in self._providers:
            if provider.supports(key):
                return provider
        raise ConfigurationError(
            f"No SHA-256 signing provider supports {_describe_key(key)} keys",
            code=AuthErrorCode.SIGNING_PROVIDER_UNAVAILABLE,
        )


__all__ = [
    "CertificateSource",
    "CryptoSigner",
    "DEFAULT_SIGNING_PROVIDERS",
    "SigningProvider",
]
