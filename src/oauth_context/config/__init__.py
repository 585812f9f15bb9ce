"""Configuration helpers for the authentication context."""

from .settings import (
    APP_NAME,
    COMMON_TENANT,
    DEFAULT_MIN_KEY_SIZE_IN_BITS,
    Settings,
    SettingsManager,
)

__all__ = [
    "APP_NAME",
    "COMMON_TENANT",
    "DEFAULT_MIN_KEY_SIZE_IN_BITS",
    "Settings",
    "SettingsManager",
]
