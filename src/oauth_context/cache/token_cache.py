"""In-memory token cache with strict lookup rules.

Entries are keyed by authority, resource, client id, user and the
multi-resource refresh token flag. A lookup never relaxes the authority,
resource or client constraints, and only relaxes the user constraint when the
caller passes no user identifier at all. The cache never expires entries on
its own; expiry is evaluated by the caller at lookup time.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Mapping, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from oauth_context.auth.authority import normalize_authority
from oauth_context.auth.errors import ArgumentError, CacheAmbiguityError
from oauth_context.auth.types import AuthenticationResult, UserIdentifier, UserInfo
from oauth_context.utils import get_logger


logger = get_logger(__name__)

CACHE_FORMAT_VERSION = 1


def _fold(value: str | None) -> str | None:
    return value.lower() if value is not None else None


@dataclass(slots=True, frozen=True, eq=False)
class TokenCacheKey:
    authority: str
    resource: str
    client_id: str
    unique_id: str | None = None
    displayable_id: str | None = None
    is_multiple_resource_refresh_token: bool = False

    def _identity(self) -> tuple[object, ...]:
        return (
            normalize_authority(self.authority),
            self.resource.lower(),
            self.client_id.lower(),
            self.unique_id,
            _fold(self.displayable_id),
            self.is_multiple_resource_refresh_token,
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TokenCacheKey):
            return NotImplemented
        return self._identity() == other._identity()

    def __hash__(self) -> int:
        return hash(self._identity())

    @property
    def has_user(self) -> bool:
        return self.unique_id is not None or self.displayable_id is not None

    @property
    def user_key(self) -> tuple[str | None, str | None]:
        return (self.unique_id, _fold(self.displayable_id))

    def matches_user(self, user: UserIdentifier | None) -> bool:
        if user is None:
            return True
        return user.matches(self.unique_id, self.displayable_id)

    def matches_scope(self, authority: str, client_id: str) -> bool:
        return (
            normalize_authority(self.authority) == normalize_authority(authority)
            and self.client_id.lower() == client_id.lower()
        )


@dataclass(slots=True, frozen=True)
class TokenCacheEntry:
    access_token: str
    expires_on: datetime
    access_token_type: str = "Bearer"
    refresh_token: str | None = None
    id_token: str | None = None
    id_token_claims: Mapping[str, Any] | None = None
    user_info: UserInfo | None = None

    @property
    def tenant_id(self) -> str | None:
        if not self.id_token_claims:
            return None
        tenant = self.id_token_claims.get("tid")
        return tenant if isinstance(tenant, str) else None

    def is_expired(self, now: datetime, *, margin_seconds: float = 0) -> bool:
        return self.expires_on <= now + timedelta(seconds=margin_seconds)

    def to_result(self, key: TokenCacheKey, *, from_cache: bool) -> AuthenticationResult:
        return AuthenticationResult(
            access_token=self.access_token,
            access_token_type=self.access_token_type,
            expires_on=self.expires_on,
            resource=key.resource,
            authority=key.authority,
            refresh_token=self.refresh_token,
            tenant_id=self.tenant_id,
            user_info=self.user_info,
            id_token=self.id_token,
            is_multiple_resource_refresh_token=key.is_multiple_resource_refresh_token,
            from_cache=from_cache,
        )


@dataclass(slots=True, frozen=True)
class TokenCacheItem:
    """Read-only view over one cache record."""

    key: TokenCacheKey
    entry: TokenCacheEntry

    @property
    def authority(self) -> str:
        return self.key.authority

    @property
    def resource(self) -> str:
        return self.key.resource

    @property
    def client_id(self) -> str:
        return self.key.client_id

    @property
    def unique_id(self) -> str | None:
        return self.key.unique_id

    @property
    def displayable_id(self) -> str | None:
        return self.key.displayable_id

    @property
    def user_info(self) -> UserInfo | None:
        if self.entry.user_info is not None:
            return self.entry.user_info
        if not self.key.has_user:
            return None
        return UserInfo(
            unique_id=self.key.unique_id, displayable_id=self.key.displayable_id
        )

    @property
    def tenant_id(self) -> str | None:
        return self.entry.tenant_id

    @property
    def expires_on(self) -> datetime:
        return self.entry.expires_on


@dataclass(slots=True, frozen=True)
class TokenCacheQuery:
    """Lookup predicate. ``user=None`` means any user; ``app_only`` means no user."""

    authority: str
    resource: str
    client_id: str
    user: UserIdentifier | None = None
    app_only: bool = False

    def matches(self, key: TokenCacheKey) -> bool:
        if not key.matches_scope(self.authority, self.client_id):
            return False
        if key.resource.lower() != self.resource.lower():
            return False
        if self.app_only:
            return not key.has_user
        return key.matches_user(self.user)


class _UserInfoModel(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    unique_id: str | None = None
    displayable_id: str | None = None
    given_name: str | None = None
    family_name: str | None = None
    identity_provider: str | None = None


class _CachedTokenModel(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    authority: str
    resource: str
    client_id: str
    unique_id: str | None = None
    displayable_id: str | None = None
    is_multiple_resource_refresh_token: bool = False
    access_token: str
    access_token_type: str = "Bearer"
    refresh_token: str | None = None
    expires_on: datetime
    id_token: str | None = None
    id_token_claims: dict[str, Any] | None = None
    user_info: _UserInfoModel | None = None

    @field_validator("expires_on")
    @classmethod
    def _ensure_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @classmethod
    def from_item(cls, key: TokenCacheKey, entry: TokenCacheEntry) -> "_CachedTokenModel":
        return cls(
            authority=key.authority,
            resource=key.resource,
            client_id=key.client_id,
            unique_id=key.unique_id,
            displayable_id=key.displayable_id,
            is_multiple_resource_refresh_token=key.is_multiple_resource_refresh_token,
            access_token=entry.access_token,
            access_token_type=entry.access_token_type,
            refresh_token=entry.refresh_token,
            expires_on=entry.expires_on,
            id_token=entry.id_token,
            id_token_claims=dict(entry.id_token_claims) if entry.id_token_claims else None,
            user_info=(
                _UserInfoModel.model_validate(entry.user_info, from_attributes=True)
                if entry.user_info
                else None
            ),
        )

    def to_item(self) -> tuple[TokenCacheKey, TokenCacheEntry]:
        key = TokenCacheKey(
            authority=self.authority,
            resource=self.resource,
            client_id=self.client_id,
            unique_id=self.unique_id,
            displayable_id=self.displayable_id,
            is_multiple_resource_refresh_token=self.is_multiple_resource_refresh_token,
        )
        entry = TokenCacheEntry(
            access_token=self.access_token,
            access_token_type=self.access_token_type,
            refresh_token=self.refresh_token,
            expires_on=self.expires_on,
            id_token=self.id_token,
            id_token_claims=self.id_token_claims,
            user_info=UserInfo(**self.user_info.model_dump()) if self.user_info else None,
        )
        return key, entry


class _CacheBlobModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    version: int = CACHE_FORMAT_VERSION
    items: list[_CachedTokenModel] = Field(default_factory=list)


@dataclass(slots=True)
class TokenCache:
    """Thread-safe mapping of cache keys to token entries."""

    _items: dict[TokenCacheKey, TokenCacheEntry] = field(default_factory=dict)
    _lock: threading.RLock = field(default_factory=threading.RLock)
    _has_state_changed: bool = False

    @property
    def count(self) -> int:
        with self._lock:
            return len(self._items)

    @property
    def has_state_changed(self) -> bool:
        return self._has_state_changed

    def mark_persisted(self) -> None:
        with self._lock:
            self._has_state_changed = False

    # ------------------------------------------------------------------ Lookup

    def lookup(self, query: TokenCacheQuery) -> TokenCacheEntry | None:
        item = self.lookup_item(query)
        return item.entry if item is not None else None

    def lookup_item(self, query: TokenCacheQuery) -> TokenCacheItem | None:
        with self._lock:
            candidates = [
                TokenCacheItem(key, entry)
                for key, entry in self._items.items()
                if query.matches(key)
            ]
        return self._select(candidates, query.user)

    def find_multiple_resource_token(
        self,
        authority: str,
        client_id: str,
        user: UserIdentifier | None = None,
    ) -> TokenCacheItem | None:
        """Any multi-resource refresh token usable for another resource."""

        with self._lock:
            candidates = [
                TokenCacheItem(key, entry)
                for key, entry in self._items.items()
                if key.is_multiple_resource_refresh_token
                and entry.refresh_token
                and key.has_user
                and key.matches_scope(authority, client_id)
                and key.matches_user(user)
            ]
        return self._select(candidates, user)

    def read_items(self) -> Sequence[TokenCacheItem]:
        with self._lock:
            return [TokenCacheItem(key, entry) for key, entry in self._items.items()]

    # ------------------------------------------------------------------ Writes

    def store(
        self,
        key: TokenCacheKey,
        entry: TokenCacheEntry,
        *,
        replaces: TokenCacheKey | None = None,
    ) -> None:
        """Store ``entry``; ``replaces`` names a slot the entry supersedes."""

        with self._lock:
            superseded = False
            if replaces is not None and replaces != key:
                superseded = self._items.pop(replaces, None) is not None
            replaced = superseded or key in self._items
            self._items[key] = entry
            self._has_state_changed = True
        logger.debug(
            "Stored token in cache",
            authority=key.authority,
            resource=key.resource,
            replaced=replaced,
            superseded=superseded,
            multiple_resource=key.is_multiple_resource_refresh_token,
        )

    def delete_item(self, key: TokenCacheKey) -> bool:
        with self._lock:
            removed = self._items.pop(key, None) is not None
            if removed:
                self._has_state_changed = True
        return removed

    def clear(self) -> None:
        with self._lock:
            count = len(self._items)
            self._items.clear()
            self._has_state_changed = True
        logger.info("Cleared token cache", items=count)

    # ----------------------------------------------------------- Serialisation

    def serialize(self) -> str:
        with self._lock:
            blob = _CacheBlobModel(
                items=[
                    _CachedTokenModel.from_item(key, entry)
                    for key, entry in self._items.items()
                ]
            )
        return blob.model_dump_json()

    def deserialize(self, blob: str | bytes | None) -> None:
        """Replace the cache content with a blob produced by :meth:`serialize`."""

        if not blob:
            with self._lock:
                self._items.clear()
                self._has_state_changed = False
            return
        try:
            model = _CacheBlobModel.model_validate_json(blob)
        except ValidationError as exc:
            raise ArgumentError(
                f"Token cache blob is not readable: {exc.error_count()} error(s)",
                parameter="blob",
            ) from exc
        restored = dict(record.to_item() for record in model.items)
        with self._lock:
            self._items = restored
            self._has_state_changed = False
        logger.debug("Loaded token cache", items=len(restored))

    # ----------------------------------------------------------------- Helpers

    @staticmethod
    def _select(
        candidates: Iterable[TokenCacheItem],
        user: UserIdentifier | None,
    ) -> TokenCacheItem | None:
        matches = list(candidates)
        if not matches:
            return None
        users = {item.key.user_key for item in matches}
        if len(users) > 1:
            logger.warning(
                "Multiple users match token cache lookup",
                users=len(users),
                hinted=user is not None,
            )
            raise CacheAmbiguityError(
                "Multiple tokens for different users match the request; "
                "pass a user identifier to choose one",
            )
        return max(matches, key=lambda item: item.entry.expires_on)


__all__ = [
    "CACHE_FORMAT_VERSION",
    "TokenCache",
    "TokenCacheEntry",
    "TokenCacheItem",
    "TokenCacheKey",
    "TokenCacheQuery",
]
