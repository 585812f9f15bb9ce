"""Redeem grants at the token endpoint and write results through the cache."""

from __future__ import annotations

from typing import Mapping
from urllib.parse import urlencode

from oauth_context.auth.authority import Authority
from oauth_context.auth.credentials import Credential, credential_form_fields
from oauth_context.auth.errors import ArgumentError, TransportError
from oauth_context.auth.token_response import validate_token_response
from oauth_context.auth.types import AuthenticationResult, Clock, UserInfo, utc_now
from oauth_context.cache.persistence import CachePersistenceBinding
from oauth_context.cache.token_cache import TokenCache, TokenCacheEntry, TokenCacheKey
from oauth_context.crypto.signer import CryptoSigner
from oauth_context.transport.client import HttpClient
from oauth_context.utils import CallState, get_logger


logger = get_logger(__name__)

GRANT_AUTHORIZATION_CODE = "authorization_code"
GRANT_REFRESH_TOKEN = "refresh_token"
GRANT_CLIENT_CREDENTIALS = "client_credentials"

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


def _as_authority(value: Authority | str) -> Authority:
    return value if isinstance(value, Authority) else Authority.parse(value)


def _require(**values: object) -> None:
    for name, value in values.items():
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ArgumentError(f"{name} cannot be empty", parameter=name)


class TokenRequestEngine:
    """Exchanges codes, refresh tokens and client credentials for tokens.

    Every successful exchange is stored in the token cache (and flushed to the
    persistence binding, when one is configured) before it is returned.
    """

    def __init__(
        self,
        http_client: HttpClient,
        token_cache: TokenCache,
        *,
        signer: CryptoSigner | None = None,
        persistence: CachePersistenceBinding | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._http = http_client
        self._cache = token_cache
        self._signer = signer or CryptoSigner()
        self._persistence = persistence
        self._clock = clock

    async def exchange_authorization_code(
        self,
        code: str,
        redirect_uri: str,
        resource: str | None,
        *,
        authority: Authority | str,
        client_id: str,
        credential: Credential | None = None,
        call_state: CallState | None = None,
    ) -> AuthenticationResult:
        _require(code=code, redirect_uri=redirect_uri, client_id=client_id)
        return await self._redeem(
            GRANT_AUTHORIZATION_CODE,
            {"code": code, "redirect_uri": redirect_uri},
            resource=resource,
            authority=_as_authority(authority),
            client_id=client_id,
            credential=credential,
            call_state=CallState.ensure(call_state),
        )

    async def exchange_refresh_token(
        self,
        refresh_token: str,
        resource: str | None,
        *,
        authority: Authority | str,
        client_id: str,
        credential: Credential | None = None,
        user_info: UserInfo | None = None,
        replaces: TokenCacheKey | None = None,
        call_state: CallState | None = None,
    ) -> AuthenticationResult:
        """Redeem ``refresh_token``; the result supersedes the ``replaces`` slot."""

        _require(refresh_token=refresh_token, client_id=client_id)
        return await self._redeem(
            GRANT_REFRESH_TOKEN,
            {"refresh_token": refresh_token},
            resource=resource,
            authority=_as_authority(authority),
            client_id=client_id,
            credential=credential,
            call_state=CallState.ensure(call_state),
            user_info=user_info,
            previous_refresh_token=refresh_token,
            replaces=replaces,
        )

    async def exchange_client_credentials(
        self,
        resource: str,
        *,
        authority: Authority | str,
        client_id: str,
        credential: Credential,
        call_state: CallState | None = None,
    ) -> AuthenticationResult:
        _require(resource=resource, client_id=client_id, credential=credential)
        return await self._redeem(
            GRANT_CLIENT_CREDENTIALS,
            {},
            resource=resource,
            authority=_as_authority(authority),
            client_id=client_id,
            credential=credential,
            call_state=CallState.ensure(call_state),
        )

    # ----------------------------------------------------------------- Helpers

    async def _redeem(
        self,
        grant_type: str,
        grant_fields: Mapping[str, str],
        *,
        resource: str | None,
        authority: Authority,
        client_id: str,
        credential: Credential | None,
        call_state: CallState,
        user_info: UserInfo | None = None,
        previous_refresh_token: str | None = None,
        replaces: TokenCacheKey | None = None,
    ) -> AuthenticationResult:
        call_state.raise_if_cancelled()
        if self._persistence is not None:
            await self._persistence.load()

        now = self._clock()
        endpoint = authority.token_endpoint
        form: dict[str, str] = {"grant_type": grant_type, "client_id": client_id}
        form.update(grant_fields)
        if resource:
            form["resource"] = resource
        form.update(
            credential_form_fields(
                credential, audience=endpoint, signer=self._signer, now=now
            )
        )
        headers = {
            "Accept": "application/json",
            "Content-Type": FORM_CONTENT_TYPE,
            "client-request-id": call_state.correlation_id,
            "return-client-request-id": "true",
        }

        call_state.raise_if_cancelled()
        logger.debug(
            "Sending token request",
            grant_type=grant_type,
            endpoint=endpoint,
            resource=resource,
        )
        try:
            response = await self._http.send(
                "POST",
                endpoint,
                headers=headers,
                body=urlencode(form).encode("utf-8"),
            )
        except TransportError as exc:
            exc.correlation_id = exc.correlation_id or call_state.correlation_id
            logger.error("Token request failed without response", endpoint=endpoint)
            raise

        validated = validate_token_response(
            response, now=now, correlation_id=call_state.correlation_id
        )

        refresh_token = validated.refresh_token or previous_refresh_token
        if validated.id_token_claims:
            user = UserInfo.from_claims(validated.id_token_claims)
        else:
            user = user_info

        result_authority = authority
        if authority.is_common and validated.tenant_id:
            result_authority = authority.with_tenant(validated.tenant_id)

        key = TokenCacheKey(
            authority=result_authority.url,
            resource=resource or validated.resource or client_id,
            client_id=client_id,
            unique_id=user.unique_id if user else None,
            displayable_id=user.displayable_id if user else None,
            is_multiple_resource_refresh_token=bool(
                refresh_token and validated.resource
            ),
        )
        entry = TokenCacheEntry(
            access_token=validated.access_token,
            access_token_type=validated.access_token_type,
            expires_on=validated.expires_on,
            refresh_token=refresh_token,
            id_token=validated.id_token,
            id_token_claims=validated.id_token_claims,
            user_info=user,
        )
        self._cache.store(key, entry, replaces=replaces)
        if self._persistence is not None:
            await self._persistence.flush()

        logger.info(
            "Token acquired",
            grant_type=grant_type,
            authority=key.authority,
            resource=key.resource,
            expires_on=entry.expires_on.isoformat(),
            multiple_resource=key.is_multiple_resource_refresh_token,
        )
        return entry.to_result(key, from_cache=False)


__all__ = [
    "GRANT_AUTHORIZATION_CODE",
    "GRANT_CLIENT_CREDENTIALS",
    "GRANT_REFRESH_TOKEN",
    "TokenRequestEngine",
]
