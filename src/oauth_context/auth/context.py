from __future__ import annotations

import secrets
from typing import Any, Mapping
from urllib.parse import urlencode

from oauth_context.auth.authority import Authority, normalize_authority
from oauth_context.auth.challenge import discover
from oauth_context.auth.credentials import Credential
from oauth_context.auth.errors import (
    ArgumentError,
    AuthErrorCode,
    ServiceError,
    TransportError,
    UiFailure,
)
from oauth_context.auth.token_request import TokenRequestEngine
from oauth_context.auth.types import (
    AuthenticationParameters,
    AuthenticationResult,
    Clock,
    PromptBehavior,
    UserIdentifier,
    UserIdentifierType,
    utc_now,
)
from oauth_context.cache.persistence import (
    CachePersistenceBinding,
    FileTokenCachePersistence,
    TokenCachePersistence,
)
from oauth_context.cache.token_cache import TokenCache, TokenCacheItem, TokenCacheQuery
from oauth_context.config.settings import DEFAULT_EXPIRATION_MARGIN_SECONDS, Settings
from oauth_context.crypto.signer import CryptoSigner
from oauth_context.transport.client import HttpClient
from oauth_context.ui.gateway import AuthorizationStatus, AuthorizationUI
from oauth_context.utils import CallState, get_logger


logger = get_logger(__name__)


def _require(**values: object) -> None:
    for name, value in values.items():
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ArgumentError(f"{name} cannot be empty", parameter=name)


class AuthenticationContext:
    """Entry point for acquiring tokens from one authority.

    Collaborators are injected: the HTTP client, the token cache, an optional
    persistence hook and the clock. The cache is consulted first; expired
    entries are refreshed when a refresh token is available; the
    authorization UI is only invoked when neither yields a token.
    """

    def __init__(
        self,
        authority: str,
        http_client: HttpClient,
        *,
        token_cache: TokenCache | None = None,
        signer: CryptoSigner | None = None,
        persistence: TokenCachePersistence | None = None,
        clock: Clock = utc_now,
        expiration_margin: float = DEFAULT_EXPIRATION_MARGIN_SECONDS,
    ) -> None:
        self._authority = Authority.parse(authority)
        self._http = http_client
        self._cache = token_cache if token_cache is not None else TokenCache()
        self._binding = (
            CachePersistenceBinding(self._cache, persistence)
            if persistence is not None
            else None
        )
        self._clock = clock
        self._expiration_margin = expiration_margin
        self._engine = TokenRequestEngine(
            http_client,
            self._cache,
            signer=signer or CryptoSigner(),
            persistence=self._binding,
            clock=clock,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        http_client: HttpClient,
        *,
        persist: bool = True,
        **kwargs: Any,
    ) -> "AuthenticationContext":
        kwargs.setdefault("expiration_margin", settings.expiration_margin_seconds)
        kwargs.setdefault(
            "signer", CryptoSigner(min_key_size_in_bits=settings.min_key_size_in_bits)
        )
        if persist:
            kwargs.setdefault(
                "persistence", FileTokenCachePersistence(settings.token_cache_path)
            )
        return cls(settings.derive_authority(), http_client, **kwargs)

    @classmethod
    async def from_resource_url(
        cls,
        resource_url: str,
        http_client: HttpClient,
        **kwargs: Any,
    ) -> tuple["AuthenticationContext", AuthenticationParameters]:
        """Discover the authority from a resource's 401 challenge."""

        parameters = await discover(resource_url, http_client)
        if not parameters.authority:
            raise ArgumentError(
                f"The challenge from {resource_url} does not name an authority",
                code=AuthErrorCode.INVALID_AUTHORITY,
                parameter="resource_url",
            )
        return cls(parameters.authority, http_client, **kwargs), parameters

    @property
    def authority(self) -> str:
        return self._authority.url

    @property
    def token_cache(self) -> TokenCache:
        return self._cache

    @property
    def persistence(self) -> CachePersistenceBinding | None:
        return self._binding

    # ------------------------------------------------------------- Public API

    async def acquire_token(
        self,
        resource: str,
        client_id: str,
        redirect_uri: str,
        ui: AuthorizationUI,
        prompt_behavior: PromptBehavior = PromptBehavior.AUTO,
        *,
        user_id: UserIdentifier | None = None,
        extra_query_parameters: Mapping[str, str] | None = None,
        call_state: CallState | None = None,
    ) -> AuthenticationResult:
        _require(resource=resource, client_id=client_id, redirect_uri=redirect_uri, ui=ui)
        state = CallState.ensure(call_state)
        with state.bound(resource=resource):
            await self._ensure_loaded()
            authority = self._resolve_authority()

            if prompt_behavior is not PromptBehavior.ALWAYS:
                cached = await self._from_cache_or_refresh(
                    authority,
                    resource,
                    client_id,
                    user_id,
                    state,
                    surface_refresh_errors=prompt_behavior is PromptBehavior.NEVER,
                )
                if cached is not None:
                    return cached

            state.raise_if_cancelled()
            code = await self._acquire_authorization_code(
                ui,
                authority,
                resource=resource,
                client_id=client_id,
                redirect_uri=redirect_uri,
                prompt_behavior=prompt_behavior,
                user_id=user_id,
                extra_query_parameters=extra_query_parameters,
                call_state=state,
            )
            state.raise_if_cancelled()
            result = await self._engine.exchange_authorization_code(
                code,
                redirect_uri,
                resource,
                authority=authority,
                client_id=client_id,
                call_state=state,
            )
            self._verify_user(result, user_id, state)
            return result

    async def acquire_token_silent(
        self,
        resource: str,
        client_id: str,
        user_id: UserIdentifier | None = None,
        *,
        call_state: CallState | None = None,
    ) -> AuthenticationResult:
        _require(resource=resource, client_id=client_id)
        state = CallState.ensure(call_state)
        with state.bound(resource=resource):
            await self._ensure_loaded()
            authority = self._resolve_authority()
            try:
                result = await self._from_cache_or_refresh(
                    authority,
                    resource,
                    client_id,
                    user_id,
                    state,
                    surface_refresh_errors=True,
                )
            except ServiceError as exc:
                raise UiFailure(
                    "The cached refresh token could not be redeemed",
                    code=AuthErrorCode.FAILED_TO_ACQUIRE_TOKEN_SILENTLY,
                    correlation_id=state.correlation_id,
                    inner_error=exc,
                ) from exc
            if result is None:
                logger.info("No cached token usable without interaction")
                raise UiFailure(
                    "Failed to acquire a token silently; call acquire_token instead",
                    code=AuthErrorCode.FAILED_TO_ACQUIRE_TOKEN_SILENTLY,
                    correlation_id=state.correlation_id,
                )
            return result

    async def acquire_token_by_authorization_code(
        self,
        authorization_code: str,
        redirect_uri: str,
        credential: Credential,
        resource: str | None = None,
        *,
        call_state: CallState | None = None,
    ) -> AuthenticationResult:
        _require(
            authorization_code=authorization_code,
            redirect_uri=redirect_uri,
            credential=credential,
        )
        state = CallState.ensure(call_state)
        with state.bound():
            await self._ensure_loaded()
            return await self._engine.exchange_authorization_code(
                authorization_code,
                redirect_uri,
                resource,
                authority=self._resolve_authority(),
                client_id=credential.client_id,
                credential=credential,
                call_state=state,
            )

    async def acquire_token_by_refresh_token(
        self,
        refresh_token: str,
        client_id: str,
        resource: str | None = None,
        credential: Credential | None = None,
        *,
        call_state: CallState | None = None,
    ) -> AuthenticationResult:
        _require(refresh_token=refresh_token, client_id=client_id)
        state = CallState.ensure(call_state)
        with state.bound():
            await self._ensure_loaded()
            return await self._engine.exchange_refresh_token(
                refresh_token,
                resource,
                authority=self._resolve_authority(),
                client_id=client_id,
                credential=credential,
                call_state=state,
            )

    async def acquire_token_for_client(
        self,
        resource: str,
        credential: Credential,
        *,
        call_state: CallState | None = None,
    ) -> AuthenticationResult:
        _require(resource=resource, credential=credential)
        state = CallState.ensure(call_state)
        with state.bound(resource=resource):
            await self._ensure_loaded()
            authority = self._resolve_authority()
            item = self._cache.lookup_item(
                TokenCacheQuery(
                    authority=authority.url,
                    resource=resource,
                    client_id=credential.client_id,
                    app_only=True,
                )
            )
            if item is not None and not item.entry.is_expired(
                self._clock(), margin_seconds=self._expiration_margin
            ):
                logger.info("Serving application token from cache")
                return item.entry.to_result(item.key, from_cache=True)
            return await self._engine.exchange_client_credentials(
                resource,
                authority=authority,
                client_id=credential.client_id,
                credential=credential,
                call_state=state,
            )

    # ----------------------------------------------------------------- Helpers

    async def _ensure_loaded(self) -> None:
        if self._binding is not None:
            await self._binding.load()

    def _resolve_authority(self) -> Authority:
        if not self._authority.is_common:
            return self._authority
        items = self._cache.read_items()
        if not items:
            return self._authority
        tenants = {normalize_authority(item.authority) for item in items}
        if len(tenants) > 1:
            logger.warning(
                "Several tenants cached; using the first cached authority",
                tenants=len(tenants),
            )
        return Authority.parse(items[0].authority)

    async def _from_cache_or_refresh(
        self,
        authority: Authority,
        resource: str,
        client_id: str,
        user_id: UserIdentifier | None,
        call_state: CallState,
        *,
        surface_refresh_errors: bool,
    ) -> AuthenticationResult | None:
        item = self._cache.lookup_item(
            TokenCacheQuery(
                authority=authority.url,
                resource=resource,
                client_id=client_id,
                user=user_id,
            )
        )
        if item is not None and not item.entry.is_expired(
            self._clock(), margin_seconds=self._expiration_margin
        ):
            logger.info("Serving token from cache", expires_on=item.expires_on.isoformat())
            return item.entry.to_result(item.key, from_cache=True)

        source: TokenCacheItem | None = item if item and item.entry.refresh_token else None
        if source is None:
            source = self._cache.find_multiple_resource_token(
                authority.url, client_id, user_id
            )
        if source is None or not source.entry.refresh_token:
            return None

        call_state.raise_if_cancelled()
        logger.info(
            "Refreshing token",
            multiple_resource=source.key.is_multiple_resource_refresh_token,
            expired=item is not None,
        )
        try:
            return await self._engine.exchange_refresh_token(
                source.entry.refresh_token,
                resource,
                authority=source.authority,
                client_id=client_id,
                user_info=source.user_info,
                replaces=item.key if item is not None else None,
                call_state=call_state,
            )
        except (ServiceError, TransportError) as exc:
            if surface_refresh_errors:
                raise
            logger.warning(
                "Token refresh failed; falling back to interactive sign-in",
                error_code=exc.code,
            )
            return None

    def _authorization_uri(
        self,
        authority: Authority,
        *,
        resource: str,
        client_id: str,
        redirect_uri: str,
        prompt_behavior: PromptBehavior,
        user_id: UserIdentifier | None,
        extra_query_parameters: Mapping[str, str] | None,
        state: str,
        call_state: CallState,
    ) -> str:
        params: dict[str, str] = {
            "response_type": "code",
            "client_id": client_id,
            "redirect_uri": redirect_uri,
            "resource": resource,
            "state": state,
            "client-request-id": call_state.correlation_id,
        }
        if user_id is not None and user_id.is_displayable:
            params["login_hint"] = user_id.id
        if prompt_behavior is PromptBehavior.ALWAYS:
            params["prompt"] = "login"
        elif prompt_behavior is PromptBehavior.NEVER:
            params["prompt"] = "none"
        for name, value in (extra_query_parameters or {}).items():
            if name in params:
                raise ArgumentError(
                    f"Duplicate query parameter '{name}' in extra_query_parameters",
                    parameter="extra_query_parameters",
                )
            params[name] = value
        return f"{authority.authorize_endpoint}?{urlencode(params)}"

    async def _acquire_authorization_code(
        self,
        ui: AuthorizationUI,
        authority: Authority,
        *,
        resource: str,
        client_id: str,
        redirect_uri: str,
        prompt_behavior: PromptBehavior,
        user_id: UserIdentifier | None,
        extra_query_parameters: Mapping[str, str] | None,
        call_state: CallState,
    ) -> str:
        expected_state = secrets.token_urlsafe(16)
        uri = self._authorization_uri(
            authority,
            resource=resource,
            client_id=client_id,
            redirect_uri=redirect_uri,
            prompt_behavior=prompt_behavior,
            user_id=user_id,
            extra_query_parameters=extra_query_parameters,
            state=expected_state,
            call_state=call_state,
        )
        logger.info("Requesting authorization", prompt=prompt_behavior.value)
        result = await ui.acquire_authorization(
            uri, redirect_uri, prompt_behavior, call_state
        )

        if result.status is AuthorizationStatus.USER_CANCEL:
            logger.info("User cancelled authorization")
            raise UiFailure(
                "User canceled authentication",
                code=AuthErrorCode.AUTHENTICATION_CANCELED,
                correlation_id=call_state.correlation_id,
            )
        if result.status is AuthorizationStatus.ERROR_HTTP:
            logger.error("Authorization page failed", detail=result.error_detail)
            raise UiFailure(
                "The authorization server page could not be loaded",
                code=AuthErrorCode.AUTHORIZATION_HTTP_ERROR,
                description=result.error_detail,
                correlation_id=call_state.correlation_id,
            )
        if result.status is not AuthorizationStatus.SUCCESS:
            logger.error("Authorization ended with an unknown error")
            raise UiFailure(
                "Unknown error during authorization",
                code=AuthErrorCode.UNKNOWN_AUTHORIZATION_ERROR,
                correlation_id=call_state.correlation_id,
            )

        response = result.authorization_response()
        if response.error:
            logger.error("Authorization server returned an error", error=response.error)
            raise ServiceError(
                response.error_description or response.error,
                code=response.error,
                description=response.error_description,
                correlation_id=call_state.correlation_id,
            )
        if response.state != expected_state:
            logger.error("Authorization response state mismatch")
            raise ServiceError(
                "The state returned by the authorization server does not match the request",
                code=AuthErrorCode.STATE_MISMATCH,
                correlation_id=call_state.correlation_id,
            )
        if not response.code:
            raise ServiceError(
                "The authorization response carries no code",
                code=AuthErrorCode.INVALID_AUTHORIZATION_RESPONSE,
                correlation_id=call_state.correlation_id,
            )
        return response.code

    @staticmethod
    def _verify_user(
        result: AuthenticationResult,
        user_id: UserIdentifier | None,
        call_state: CallState,
    ) -> None:
        if user_id is None or user_id.kind is not UserIdentifierType.REQUIRED_DISPLAYABLE_ID:
            return
        returned = result.user_info.displayable_id if result.user_info else None
        if returned is None or returned.lower() != user_id.id.lower():
            logger.error("Signed-in user differs from the required user")
            raise ServiceError(
                f"User '{returned}' signed in, but '{user_id.id}' was required",
                code=AuthErrorCode.USER_MISMATCH,
                correlation_id=call_state.correlation_id,
            )


__all__ = ["AuthenticationContext"]
