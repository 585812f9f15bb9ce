"""Token cache and its persistence hooks."""

from .persistence import (
    CachePersistenceBinding,
    FileTokenCachePersistence,
    KeyringTokenCachePersistence,
    TokenCachePersistence,
)
from .secret_store import InsecureKeyringError, SecretStore
from .token_cache import (
    TokenCache,
    TokenCacheEntry,
    TokenCacheItem,
    TokenCacheKey,
    TokenCacheQuery,
)

__all__ = [
    "CachePersistenceBinding",
    "FileTokenCachePersistence",
    "InsecureKeyringError",
    "KeyringTokenCachePersistence",
    "SecretStore",
    "TokenCache",
    "TokenCacheEntry",
    "TokenCacheItem",
    "TokenCacheKey",
    "TokenCacheQuery",
    "TokenCachePersistence",
]
