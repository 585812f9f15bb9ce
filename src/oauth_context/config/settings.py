from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv
from platformdirs import user_cache_dir, user_config_dir

APP_NAME = "OAuthContext"
ENV_PREFIX = "OAUTH_CONTEXT_"
ENV_FILE_NAME = "settings.env"
TOKEN_CACHE_NAME = "token_cache.json"

COMMON_TENANT = "common"
DEFAULT_INSTANCE = "https://login.microsoftonline.com"
DEFAULT_EXPIRATION_MARGIN_SECONDS = 300
DEFAULT_MIN_KEY_SIZE_IN_BITS = 2048
DEFAULT_HTTP_TIMEOUT_SECONDS = 30.0
DEFAULT_HTTP_RETRIES = 1


def _config_dir() -> Path:
    path = Path(user_config_dir(APP_NAME, roaming=True))
    path.mkdir(parents=True, exist_ok=True)
    return path


def _cache_dir() -> Path:
    path = Path(user_cache_dir(APP_NAME))
    path.mkdir(parents=True, exist_ok=True)
    return path


def config_dir() -> Path:
    return _config_dir()


def cache_dir() -> Path:
    return _cache_dir()


def log_dir() -> Path:
    path = cache_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


def _env_file_path(explicit: Path | None) -> Path:
    if explicit is not None:
        return explicit
    return _config_dir() / ENV_FILE_NAME


@dataclass(slots=True)
class Settings:
    """Identity provider and client registration data for an authentication context.

    Public (native) clients only need ``client_id`` and ``redirect_uri``;
    confidential clients additionally supply a credential at call time.
    """

    tenant_id: str | None = None
    client_id: str | None = None
    redirect_uri: str | None = None
    authority: str | None = None
    resource: str | None = None
    token_cache_path: Path = field(
        default_factory=lambda: _cache_dir() / TOKEN_CACHE_NAME
    )
    expiration_margin_seconds: int = DEFAULT_EXPIRATION_MARGIN_SECONDS
    min_key_size_in_bits: int = DEFAULT_MIN_KEY_SIZE_IN_BITS
    http_timeout_seconds: float = DEFAULT_HTTP_TIMEOUT_SECONDS
    http_retries: int = DEFAULT_HTTP_RETRIES

    @property
    def is_configured(self) -> bool:
        """True when a client identifier and some authority source are set."""
        return bool(self.client_id and (self.authority or self.tenant_id))

    def derive_authority(self) -> str:
        """Return configured authority, defaulting to the common tenant."""
        if self.authority:
            return self.authority
        tenant = self.tenant_id or COMMON_TENANT
        return f"{DEFAULT_INSTANCE}/{tenant}"


class SettingsManager:
    """Load and persist settings with environment overrides."""

    def __init__(self, env_file: Path | None = None) -> None:
        self._env_file = _env_file_path(env_file)

    @property
    def env_file(self) -> Path:
        return self._env_file

    def load(self) -> Settings:
        """Load settings from environment, falling back to persisted file."""
        load_dotenv(self._env_file, override=False)

        settings = Settings(
            tenant_id=self._get_env("TENANT_ID"),
            client_id=self._get_env("CLIENT_ID"),
            redirect_uri=self._get_env("REDIRECT_URI"),
            authority=self._get_env("AUTHORITY"),
            resource=self._get_env("RESOURCE"),
        )

        token_cache_override = self._get_env("TOKEN_CACHE_PATH")
        if token_cache_override:
            settings.token_cache_path = Path(token_cache_override).expanduser()

        margin = self._get_int("EXPIRATION_MARGIN_SECONDS")
        if margin is not None:
            settings.expiration_margin_seconds = margin
        key_size = self._get_int("MIN_KEY_SIZE_IN_BITS")
        if key_size is not None:
            settings.min_key_size_in_bits = key_size
        retries = self._get_int("HTTP_RETRIES")
        if retries is not None:
            settings.http_retries = retries
        timeout = self._get_env("HTTP_TIMEOUT_SECONDS")
        if timeout:
            try:
                settings.http_timeout_seconds = float(timeout)
            except ValueError:
                pass

        return settings

    def save(self, settings: Settings) -> None:
        """Persist core configuration fields to the managed env file."""
        self._env_file.parent.mkdir(parents=True, exist_ok=True)
        content = [
            f"{ENV_PREFIX}TENANT_ID={settings.tenant_id or ''}",
            f"{ENV_PREFIX}CLIENT_ID={settings.client_id or ''}",
            f"{ENV_PREFIX}REDIRECT_URI={settings.redirect_uri or ''}",
            f"{ENV_PREFIX}AUTHORITY={settings.authority or ''}",
            f"{ENV_PREFIX}RESOURCE={settings.resource or ''}",
            f"{ENV_PREFIX}TOKEN_CACHE_PATH={settings.token_cache_path}",
            f"{ENV_PREFIX}EXPIRATION_MARGIN_SECONDS={settings.expiration_margin_seconds}",
            f"{ENV_PREFIX}MIN_KEY_SIZE_IN_BITS={settings.min_key_size_in_bits}",
            f"{ENV_PREFIX}HTTP_TIMEOUT_SECONDS={settings.http_timeout_seconds}",
            f"{ENV_PREFIX}HTTP_RETRIES={settings.http_retries}",
        ]
        self._env_file.write_text("\n".join(content) + "\n", encoding="utf-8")

    def _get_env(self, name: str) -> str | None:
        return os.getenv(f"{ENV_PREFIX}{name}") or None

    def _get_int(self, name: str) -> int | None:
        raw = self._get_env(name)
        if raw is None:
            return None
        try:
            return int(raw.strip())
        except ValueError:
            return None


__all__ = [
    "APP_NAME",
    "COMMON_TENANT",
    "DEFAULT_MIN_KEY_SIZE_IN_BITS",
    "Settings",
    "SettingsManager",
    "cache_dir",
    "config_dir",
    "log_dir",
]
