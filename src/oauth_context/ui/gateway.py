"""Interactive authorization step and the broker-backed gateway."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol
from urllib.parse import parse_qs, urlsplit

from oauth_context.auth.errors import AuthErrorCode, ConfigurationError, UiFailure
from oauth_context.auth.types import PromptBehavior
from oauth_context.utils import CallState, get_logger


logger = get_logger(__name__)

APP_CALLBACK_SCHEME = "ms-app"
SSO_PLACEHOLDER_URI = "https://sso"


class AuthorizationStatus(str, Enum):
    SUCCESS = "success"
    ERROR_HTTP = "error_http"
    USER_CANCEL = "user_cancel"
    UNKNOWN_ERROR = "unknown_error"


@dataclass(slots=True, frozen=True)
class AuthorizationResponse:
    """Parameters carried back on the redirect URI."""

    code: str | None = None
    state: str | None = None
    error: str | None = None
    error_description: str | None = None


@dataclass(slots=True, frozen=True)
class AuthorizationResult:
    status: AuthorizationStatus
    response_data: str | None = None
    error_detail: str | None = None

    @classmethod
    def success(cls, response_data: str) -> "AuthorizationResult":
        return cls(AuthorizationStatus.SUCCESS, response_data=response_data)

    @classmethod
    def error_http(cls, error_detail: object) -> "AuthorizationResult":
        return cls(AuthorizationStatus.ERROR_HTTP, error_detail=str(error_detail))

    @classmethod
    def user_cancel(cls) -> "AuthorizationResult":
        return cls(AuthorizationStatus.USER_CANCEL)

    @classmethod
    def unknown_error(cls) -> "AuthorizationResult":
        return cls(AuthorizationStatus.UNKNOWN_ERROR)

    def authorization_response(self) -> AuthorizationResponse:
        """Parse ``code``/``state``/``error`` from the redirect query or fragment."""

        if not self.response_data:
            return AuthorizationResponse()
        parts = urlsplit(self.response_data)
        raw = parts.query or parts.fragment
        if not raw and "=" in self.response_data and "://" not in self.response_data:
            raw = self.response_data.lstrip("?#")
        values = parse_qs(raw, keep_blank_values=False)

        def _first(name: str) -> str | None:
            found = values.get(name)
            return found[0] if found else None

        return AuthorizationResponse(
            code=_first("code"),
            state=_first("state"),
            error=_first("error"),
            error_description=_first("error_description"),
        )


class SessionState(str, Enum):
    NOT_STARTED = "not_started"
    PENDING = "pending"
    SUCCESS = "success"
    ERROR_HTTP = "error_http"
    USER_CANCEL = "user_cancel"
    UNKNOWN_ERROR = "unknown_error"


_TERMINAL_STATES = {
    AuthorizationStatus.SUCCESS: SessionState.SUCCESS,
    AuthorizationStatus.ERROR_HTTP: SessionState.ERROR_HTTP,
    AuthorizationStatus.USER_CANCEL: SessionState.USER_CANCEL,
    AuthorizationStatus.UNKNOWN_ERROR: SessionState.UNKNOWN_ERROR,
}


class AuthorizationSession:
    """One authorization attempt; produces exactly one result."""

    __slots__ = ("_state", "_result")

    def __init__(self) -> None:
        self._state = SessionState.NOT_STARTED
        self._result: AuthorizationResult | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def result(self) -> AuthorizationResult | None:
        return self._result

    @property
    def is_finished(self) -> bool:
        return self._result is not None

    def start(self) -> None:
        if self._state is not SessionState.NOT_STARTED:
            raise RuntimeError(f"Cannot start an authorization session in state {self._state.value}")
        self._state = SessionState.PENDING

    def complete(self, result: AuthorizationResult) -> AuthorizationResult:
        if self._state is not SessionState.PENDING:
            raise RuntimeError(
                f"Cannot complete an authorization session in state {self._state.value}"
            )
        self._state = _TERMINAL_STATES[result.status]
        self._result = result
        return result


class AuthorizationUI(Protocol):
    """Host-provided interactive step returning the redirect outcome."""

    async def acquire_authorization(
        self,
        authorization_uri: str,
        redirect_uri: str,
        prompt_behavior: PromptBehavior,
        call_state: CallState,
    ) -> AuthorizationResult: ...


@dataclass(slots=True, frozen=True)
class BrokerOptions:
    silent: bool = False
    corporate_network: bool = False


@dataclass(slots=True, frozen=True)
class BrokerResponse:
    status: AuthorizationStatus
    response_data: str | None = None
    error_detail: object | None = None


class BrokerUnavailableError(RuntimeError):
    """The platform authentication broker component is missing."""


class AuthorizationBroker(Protocol):
    """Platform web authentication broker."""

    async def authenticate(
        self,
        options: BrokerOptions,
        authorization_uri: str,
        redirect_uri: str | None,
    ) -> BrokerResponse: ...


class BrokerAuthorizationGateway:
    """:class:`AuthorizationUI` backed by an :class:`AuthorizationBroker`.

    Redirect URIs equal to the SSO placeholder select single sign-on mode, in
    which the broker chooses the callback itself. Silent (``NEVER``) requests
    are only possible in SSO mode or with an app-callback redirect URI.
    """

    def __init__(
        self,
        broker: AuthorizationBroker,
        *,
        app_callback_scheme: str = APP_CALLBACK_SCHEME,
        sso_placeholder_uri: str = SSO_PLACEHOLDER_URI,
        use_corporate_network: bool = False,
    ) -> None:
        self._broker = broker
        self._app_callback_scheme = app_callback_scheme.lower()
        self._sso_placeholder_uri = sso_placeholder_uri
        self._use_corporate_network = use_corporate_network

    def _is_app_callback(self, redirect_uri: str) -> bool:
        return urlsplit(redirect_uri).scheme.lower() == self._app_callback_scheme

    async def acquire_authorization(
        self,
        authorization_uri: str,
        redirect_uri: str,
        prompt_behavior: PromptBehavior,
        call_state: CallState,
    ) -> AuthorizationResult:
        sso_mode = redirect_uri == self._sso_placeholder_uri
        app_callback = not sso_mode and self._is_app_callback(redirect_uri)
        silent = prompt_behavior is PromptBehavior.NEVER

        if silent and not sso_mode and not app_callback:
            logger.error(
                "Redirect URI cannot be used without prompting",
                redirect_uri=redirect_uri,
            )
            raise ConfigurationError(
                "PromptBehavior.NEVER requires the SSO placeholder or an "
                f"{self._app_callback_scheme}: redirect URI",
                code=AuthErrorCode.REDIRECT_URI_UNSUPPORTED_WITH_PROMPT_BEHAVIOR_NEVER,
            )

        options = BrokerOptions(
            silent=silent,
            corporate_network=self._use_corporate_network and (sso_mode or app_callback),
        )
        session = AuthorizationSession()
        call_state.raise_if_cancelled()
        session.start()
        logger.debug(
            "Invoking authorization broker",
            sso_mode=sso_mode,
            silent=options.silent,
            corporate_network=options.corporate_network,
        )

        try:
            response = await self._broker.authenticate(
                options,
                authorization_uri,
                None if sso_mode else redirect_uri,
            )
        except (BrokerUnavailableError, FileNotFoundError) as exc:
            logger.error("Authorization broker unavailable", error=str(exc))
            raise UiFailure(
                "The authentication UI could not be started",
                code=AuthErrorCode.AUTHENTICATION_UI_FAILED,
                correlation_id=call_state.correlation_id,
                inner_error=exc,
            ) from exc
        except Exception as exc:
            code = (
                AuthErrorCode.USER_INTERACTION_REQUIRED
                if silent
                else AuthErrorCode.AUTHENTICATION_UI_FAILED
            )
            logger.error("Authorization broker failed", error=str(exc), error_code=code.value)
            raise UiFailure(
                "The authorization broker failed",
                code=code,
                correlation_id=call_state.correlation_id,
                inner_error=exc,
            ) from exc

        return session.complete(self._to_result(response))

    @staticmethod
    def _to_result(response: BrokerResponse) -> AuthorizationResult:
        if response.status is AuthorizationStatus.SUCCESS:
            return AuthorizationResult.success(response.response_data or "")
        if response.status is AuthorizationStatus.ERROR_HTTP:
            return AuthorizationResult.error_http(response.error_detail)
        if response.status is AuthorizationStatus.USER_CANCEL:
            return AuthorizationResult.user_cancel()
        return AuthorizationResult.unknown_error()


__all__ = [
    "APP_CALLBACK_SCHEME",
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
    "SSO_PLACEHOLDER_URI",
    "SessionState",
]
