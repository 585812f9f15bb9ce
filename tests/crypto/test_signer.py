from __future__ import annotations

import base64

import pytest
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, padding
from cryptography.hazmat.primitives.serialization import pkcs12

from oauth_context.auth.credentials import ClientAssertionCertificate
from oauth_context.auth.errors import ConfigurationError
from oauth_context.crypto.signer import CryptoSigner

from tests.factories import CLIENT_ID, make_pem_bundle


def test_hash_is_base64_sha256() -> None:
    assert CryptoSigner.hash("abc") == "ungWv48Bz+pBQUDeXa4iI7ADYaOWF3qctBD/YfIAFa0="
    assert CryptoSigner.hash(b"abc") == CryptoSigner.hash("abc")


def test_rsa_signature_verifies(rsa_certificate) -> None:
    signer = CryptoSigner()
    credential = rsa_certificate.credential()

    signature = signer.sign("payload", credential)

    rsa_certificate.private_key.public_key().verify(
        signature, b"payload", padding.PKCS1v15(), hashes.SHA256()
    )
    assert signer.algorithm_for(credential) == "RS256"


def test_ec_pem_bundle_signs_with_raw_signature(ec_certificate) -> None:
    signer = CryptoSigner()
    credential = ec_certificate.credential()

    signature = signer.sign(b"payload", credential)

    assert len(signature) == 64
    assert signer.algorithm_for(credential) == "ES256"


@pytest.mark.parametrize("curve", [ec.SECP384R1(), ec.SECP521R1()])
def test_ec_key_outside_p256_is_not_signed_as_es256(curve: ec.EllipticCurve) -> None:
    key = ec.generate_private_key(curve)
    credential = ClientAssertionCertificate(CLIENT_ID, make_pem_bundle(key))
    signer = CryptoSigner()

    with pytest.raises(ConfigurationError) as excinfo:
        signer.algorithm_for(credential)
    assert excinfo.value.code == "signing_provider_unavailable"
    assert curve.name in excinfo.value.message

    with pytest.raises(ConfigurationError):
        signer.sign(b"payload", credential)


def test_small_key_is_rejected(small_rsa_certificate) -> None:
    with pytest.raises(ConfigurationError) as excinfo:
        CryptoSigner().sign("payload", small_rsa_certificate.credential())
    assert excinfo.value.code == "certificate_key_size_too_small"


def test_configured_minimum_can_be_lowered(small_rsa_certificate) -> None:
    signer = CryptoSigner(min_key_size_in_bits=1024)
    assert signer.sign("payload", small_rsa_certificate.credential())


def test_missing_provider_is_reported(rsa_certificate) -> None:
    with pytest.raises(ConfigurationError) as excinfo:
        CryptoSigner(providers=()).sign("payload", rsa_certificate.credential())
    assert excinfo.value.code == "signing_provider_unavailable"


def test_thumbprint_is_base64url_sha1(rsa_certificate) -> None:
    _key, certificate, _ = pkcs12.load_key_and_certificates(
        rsa_certificate.data, rsa_certificate.password.encode("utf-8")
    )
    expected = (
        base64.urlsafe_b64encode(certificate.fingerprint(hashes.SHA1()))
        .decode("ascii")
        .rstrip("=")
    )
    assert CryptoSigner().thumbprint(rsa_certificate.credential()) == expected


def test_wrong_password_is_invalid_certificate(rsa_certificate) -> None:
    credential = ClientAssertionCertificate(CLIENT_ID, rsa_certificate.data, "wrong")
    with pytest.raises(ConfigurationError) as excinfo:
        CryptoSigner().sign("payload", credential)
    assert excinfo.value.code == "invalid_certificate"


def test_garbage_is_invalid_certificate() -> None:
    credential = ClientAssertionCertificate(CLIENT_ID, b"not a certificate")
    with pytest.raises(ConfigurationError) as excinfo:
        CryptoSigner().validate(credential)
    assert excinfo.value.code == "invalid_certificate"
