"""Authorization UI contract and broker-backed gateway."""

from .gateway import (
    AuthorizationBroker,
    AuthorizationResponse,
    AuthorizationResult,
    AuthorizationSession,
    AuthorizationStatus,
    AuthorizationUI,
    BrokerAuthorizationGateway,
    BrokerOptions,
    BrokerResponse,
    BrokerUnavailableError,
    SessionState,
)

__all__ = [
    "AuthorizationBroker",
    "AuthorizationResponse",
    "AuthorizationResult",
    "AuthorizationSession",
    "AuthorizationStatus",
    "AuthorizationUI",
    "BrokerAuthorizationGateway",
    "BrokerOptions",
    "BrokerResponse",
    "BrokerUnavailableError",
    "SessionState",
]
