"""Token acquisition: context, token requests, challenges and credentials."""

from .errors import (
    ArgumentError,
    AuthError,
    AuthErrorCategory,
    AuthErrorCode,
    CacheAmbiguityError,
    ConfigurationError,
    ServiceError,
    TransportError,
    UiFailure,
)
from .types import (
    AuthenticationParameters,
    AuthenticationResult,
    PromptBehavior,
    UserIdentifier,
    UserIdentifierType,
    UserInfo,
)
from .authority import Authority
from .credentials import (
    ClientAssertion,
    ClientAssertionCertificate,
    ClientCredential,
    build_client_assertion,
)
from .challenge import discover, parameters_from_unauthorized_response, parse_authenticate_header
from .token_response import validate_token_response
from .token_request import TokenRequestEngine
from .context import AuthenticationContext

__all__ = [
    "ArgumentError",
    "AuthError",
    "AuthErrorCategory",
    "AuthErrorCode",
    "AuthenticationContext",
    "AuthenticationParameters",
    "AuthenticationResult",
    "Authority",
    "CacheAmbiguityError",
    "ClientAssertion",
    "ClientAssertionCertificate",
    "ClientCredential",
    "ConfigurationError",
    "PromptBehavior",
    "ServiceError",
    "TokenRequestEngine",
    "TransportError",
    "UiFailure",
    "UserIdentifier",
    "UserIdentifierType",
    "UserInfo",
    "build_client_assertion",
    "discover",
    "parameters_from_unauthorized_response",
    "parse_authenticate_header",
    "validate_token_response",
]
