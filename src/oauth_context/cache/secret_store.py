from __future__ import annotations

import os
from typing import Final

import keyring
from keyring.backend import KeyringBackend
from keyring.errors import PasswordDeleteError

from oauth_context.config.settings import APP_NAME
from oauth_context.utils import get_logger


logger = get_logger(__name__)

_ALLOW_INSECURE_ENV: Final[str] = "OAUTH_CONTEXT_ALLOW_INSECURE_KEYRING"
_INSECURE_MARKERS: Final[tuple[str, ...]] = (
    "plaintext",
    "unencrypted",
    "insecure",
    "simplekeyring",
)
_INSECURE_MODULES: Final[tuple[str, ...]] = (
    "keyring.backends.file",
    "keyrings.alt.file",
    "keyring.backends.null",
    "keyring.backends.fail",
)

# Windows Credential Manager caps a blob at 2560 bytes, stored as UTF-16.
WINDOWS_MAX_SECRET_LENGTH: Final[int] = 1280
_CHUNK_MARKER: Final[str] = "oauth-context-chunks:"


class InsecureKeyringError(RuntimeError):
    """Raised when the active keyring backend cannot keep tokens encrypted."""


def _describe_backend(backend: KeyringBackend) -> str:
    return f"{backend.__class__.__module__}.{backend.__class__.__name__}"


def _is_secure_backend(backend: KeyringBackend) -> bool:
    declared = getattr(backend, "secure_storage", None)
    if isinstance(declared, bool):
        return declared

    module = backend.__class__.__module__
    if module.startswith("keyring.backends.chainer"):
        children = getattr(backend, "backends", ())
        return bool(children) and all(_is_secure_backend(child) for child in children)
    if module.startswith(_INSECURE_MODULES):
        return False
    name = backend.__class__.__name__.lower()
    return not any(marker in name for marker in _INSECURE_MARKERS)


def _default_max_length(backend: KeyringBackend) -> int | None:
    if backend.__class__.__module__.startswith("keyring.backends.Windows"):
        return WINDOWS_MAX_SECRET_LENGTH
    return None


def _allow_insecure_setting(flag: bool | None) -> bool:
    if flag is not None:
        return flag
    env = os.getenv(_ALLOW_INSECURE_ENV)
    if env is None:
        return False
    return env.strip().lower() in {"1", "true", "yes", "on"}


class SecretStore:
    """OS keyring slot holding serialized token caches.

    Values longer than ``max_secret_length`` are split across numbered
    entries (``<key>.0``, ``<key>.1``, ...) and ``<key>`` holds a chunk
    manifest, so a cache blob fits backends with small per-entry limits.
    """

    def __init__(
        self,
        service_name: str = APP_NAME,
        *,
        backend: KeyringBackend | None = None,
        allow_insecure: bool | None = None,
        max_secret_length: int | None = None,
    ) -> None:
        self._service_name = service_name
        self._backend = backend or keyring.get_keyring()
        self._max_length = (
            max_secret_length
            if max_secret_length is not None
            else _default_max_length(self._backend)
        )
        self._enforce_backend_security(allow_insecure)
        logger.debug(
            "Keyring backend selected",
            backend=_describe_backend(self._backend),
            service=service_name,
            max_secret_length=self._max_length,
        )

    @property
    def service_name(self) -> str:
        return self._service_name

    def get_secret(self, key: str) -> str | None:
        value = self._backend.get_password(self._service_name, key)
        count = self._chunk_count(value)
        if count is None:
            return value
        parts: list[str] = []
        for index in range(count):
            part = self._backend.get_password(self._service_name, f"{key}.{index}")
            if part is None:
                logger.warning("Keyring secret is missing a chunk", key=key, chunk=index)
                return None
            parts.append(part)
        return "".join(parts)

    def set_secret(self, key: str, value: str) -> None:
        previous = self._chunk_count(self._backend.get_password(self._service_name, key)) or 0
        if self._max_length is None or len(value) <= self._max_length:
            self._backend.set_password(self._service_name, key, value)
            self._delete_chunks(key, start=0, stop=previous)
            return

        size = self._max_length
        chunks = [value[offset : offset + size] for offset in range(0, len(value), size)]
        for index, chunk in enumerate(chunks):
            self._backend.set_password(self._service_name, f"{key}.{index}", chunk)
        self._backend.set_password(self._service_name, key, f"{_CHUNK_MARKER}{len(chunks)}")
        self._delete_chunks(key, start=len(chunks), stop=previous)
        logger.debug("Stored keyring secret in chunks", key=key, chunks=len(chunks))

    def delete_secret(self, key: str) -> None:
        count = self._chunk_count(self._backend.get_password(self._service_name, key)) or 0
        self._delete_chunks(key, start=0, stop=count)
        try:
            self._backend.delete_password(self._service_name, key)
        except PasswordDeleteError:
            logger.debug("No keyring entry to delete", key=key)

    @staticmethod
    def _chunk_count(value: str | None) -> int | None:
        if value is None or not value.startswith(_CHUNK_MARKER):
            return None
        try:
            return int(value[len(_CHUNK_MARKER) :])
        except ValueError:
            return None

    def _delete_chunks(self, key: str, *, start: int, stop: int) -> None:
        for index in range(start, stop):
            try:
                self._backend.delete_password(self._service_name, f"{key}.{index}")
            except PasswordDeleteError:
                logger.debug("Keyring chunk already gone", key=key, chunk=index)

    def _enforce_backend_security(self, allow_insecure: bool | None) -> None:
        descriptor = _describe_backend(self._backend)
        if _is_secure_backend(self._backend):
            return
        if _allow_insecure_setting(allow_insecure):
            logger.warning(
                "Storing tokens in an insecure keyring backend",
                backend=descriptor,
                env=_ALLOW_INSECURE_ENV,
            )
            return
        raise InsecureKeyringError(
            f"Keyring backend {descriptor} does not provide encrypted storage. "
            f"Set {_ALLOW_INSECURE_ENV}=1 to accept it anyway."
        )


__all__ = ["InsecureKeyringError", "SecretStore", "WINDOWS_MAX_SECRET_LENGTH"]
