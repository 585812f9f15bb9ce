"""Certificate signing used for confidential-client assertions."""

from .signer import (
    CertificateSource,
    CryptoSigner,
    DEFAULT_SIGNING_PROVIDERS,
    SigningProvider,
)

__all__ = [
    "CertificateSource",
    "CryptoSigner",
    "DEFAULT_SIGNING_PROVIDERS",
    "SigningProvider",
]
