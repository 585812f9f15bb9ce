"""OAuth2 / OpenID Connect token acquisition with a strict token cache."""

from .auth import (
    ArgumentError,
    AuthError,
    AuthErrorCategory,
    AuthErrorCode,
    AuthenticationContext,
    AuthenticationParameters,
    AuthenticationResult,
    CacheAmbiguityError,
    ClientAssertion,
    ClientAssertionCertificate,
    ClientCredential,
    ConfigurationError,
    PromptBehavior,
    ServiceError,
    TransportError,
    UiFailure,
    UserIdentifier,
    UserIdentifierType,
    UserInfo,
)
from .cache import (
    FileTokenCachePersistence,
    KeyringTokenCachePersistence,
    TokenCache,
)
from .crypto import CryptoSigner
from .transport import HttpxClient
from .ui import AuthorizationResult, AuthorizationStatus, BrokerAuthorizationGateway
from .utils import CallState

__version__ = "0.1.0"

__all__ = [
    "ArgumentError",
    "AuthError",
    "AuthErrorCategory",
    "AuthErrorCode",
    "AuthenticationContext",
    "AuthenticationParameters",
    "AuthenticationResult",
    "AuthorizationResult",
    "AuthorizationStatus",
    "BrokerAuthorizationGateway",
    "CacheAmbiguityError",
    "CallState",
    "ClientAssertion",
    "ClientAssertionCertificate",
    "ClientCredential",
    "ConfigurationError",
    "CryptoSigner",
    "FileTokenCachePersistence",
    "HttpxClient",
    "KeyringTokenCachePersistence",
    "PromptBehavior",
    "ServiceError",
    "TokenCache",
    "TransportError",
    "UiFailure",
    "UserIdentifier",
    "UserIdentifierType",
    "UserInfo",
    "__version__",
]
