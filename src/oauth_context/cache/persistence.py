"""Durable storage for serialized token caches."""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Protocol

from oauth_context.auth.errors import ArgumentError
from oauth_context.cache.secret_store import SecretStore
from oauth_context.cache.token_cache import TokenCache
from oauth_context.config.settings import TOKEN_CACHE_NAME, cache_dir
from oauth_context.utils import get_logger


logger = get_logger(__name__)

KEYRING_CACHE_KEY = "token_cache"


class TokenCachePersistence(Protocol):
    """Blocking load/save/clear hooks for one serialized cache blob."""

    def load(self) -> str | None: ...

    def save(self, blob: str) -> None: ...

    def clear(self) -> None: ...


class FileTokenCachePersistence:
    """Stores the cache blob in a single file under the user cache directory."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or cache_dir() / TOKEN_CACHE_NAME

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> str | None:
        if not self._path.exists():
            return None
        return self._path.read_text(encoding="utf-8")

    def save(self, blob: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(blob, encoding="utf-8")
        os.replace(tmp_path, self._path)

    def clear(self) -> None:
        """Overwrite the file with random bytes before unlinking it."""

        if not self._path.exists():
            return
        try:
            size = self._path.stat().st_size
            if size > 0:
                with self._path.open("r+b") as handle:
                    handle.write(os.urandom(size))
                    handle.flush()
                    os.fsync(handle.fileno())
            self._path.unlink()
            logger.info("Wiped token cache file", path=str(self._path))
        except OSError as exc:  # pragma: no cover - filesystem race condition
            logger.warning(
                "Failed to securely delete token cache",
                path=str(self._path),
                error=str(exc),
            )


class KeyringTokenCachePersistence:
    """Stores the cache blob in the OS keyring."""

    def __init__(
        self,
        secret_store: SecretStore | None = None,
        *,
        key: str = KEYRING_CACHE_KEY,
    ) -> None:
        self._secret_store = secret_store or SecretStore()
        self._key = key

    def load(self) -> str | None:
        return self._secret_store.get_secret(self._key)

    def save(self, blob: str) -> None:
        self._secret_store.set_secret(self._key, blob)

    def clear(self) -> None:
        self._secret_store.delete_secret(self._key)


class CachePersistenceBinding:
    """Couples a :class:`TokenCache` to a persistence hook.

    The blob is loaded lazily before the first cache access and written back
    whenever the cache reports a state change. Blocking I/O runs in a worker
    thread so the event loop is never stalled.
    """

    def __init__(self, cache: TokenCache, persistence: TokenCachePersistence) -> None:
        self._cache = cache
        self._persistence = persistence
        self._loaded = False
        self._lock = asyncio.Lock()

    @property
    def cache(self) -> TokenCache:
        return self._cache

    @property
    def persistence(self) -> TokenCachePersistence:
        return self._persistence

    async def load(self) -> None:
        async with self._lock:
            if self._loaded:
                return
            blob = await asyncio.to_thread(self._persistence.load)
            try:
                self._cache.deserialize(blob)
            except ArgumentError as exc:
                logger.warning("Discarding unreadable token cache", error=exc.message)
                self._cache.deserialize(None)
            self._loaded = True

    async def flush(self) -> bool:
        """Persist pending changes; returns ``True`` when a write happened."""

        async with self._lock:
            if not self._cache.has_state_changed:
                return False
            blob = self._cache.serialize()
            await asyncio.to_thread(self._persistence.save, blob)
            self._cache.mark_persisted()
            logger.debug("Persisted token cache", items=self._cache.count)
            return True

    async def clear(self) -> None:
        async with self._lock:
            self._cache.clear()
            await asyncio.to_thread(self._persistence.clear)
            self._cache.mark_persisted()
            self._loaded = True


__all__ = [
    "CachePersistenceBinding",
    "FileTokenCachePersistence",
    "KEYRING_CACHE_KEY",
    "KeyringTokenCachePersistence",
    "TokenCachePersistence",
]
