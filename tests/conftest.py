from __future__ import annotations

import os
from collections.abc import Iterator
from dataclasses import dataclass

import pytest
from cryptography.hazmat.primitives.asymmetric import ec, rsa

from oauth_context.auth.credentials import ClientAssertionCertificate
from oauth_context.config.settings import ENV_PREFIX
from oauth_context.utils import LoggingOptions, configure_logging

from tests.factories import CLIENT_ID, FakeClock, make_pem_bundle, make_pkcs12


configure_logging(LoggingOptions(level="WARNING", file_logging=False))

CERTIFICATE_PASSWORD = "pytest-password"


@dataclass(slots=True, frozen=True)
class CertificateMaterial:
    private_key: object
    data: bytes
    password: str | None

    def credential(self, client_id: str = CLIENT_ID) -> ClientAssertionCertificate:
        return ClientAssertionCertificate(client_id, self.data, self.password)


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Keep host OAUTH_CONTEXT_* variables out of the tests."""

    for name in list(os.environ):
        if name.startswith(ENV_PREFIX):
            monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(scope="session")
def rsa_certificate() -> CertificateMaterial:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return CertificateMaterial(key, make_pkcs12(key, CERTIFICATE_PASSWORD), CERTIFICATE_PASSWORD)


@pytest.fixture(scope="session")
def small_rsa_certificate() -> CertificateMaterial:
    key = rsa.generate_private_key(public_exponent=65537, key_size=1024)
    return CertificateMaterial(key, make_pkcs12(key), None)


@pytest.fixture(scope="session")
def ec_certificate() -> CertificateMaterial:
    key = ec.generate_private_key(ec.SECP256R1())
    return CertificateMaterial(key, make_pem_bundle(key), None)
