"""Shared utility helpers for the authentication context."""

from .call_state import CallState, CancellationError
from .logging import LoggingOptions, configure_logging, get_logger, log_file_path
from .sanitize import redact_mapping, redact_secret, sanitize_log_message

__all__ = [
    "CallState",
    "CancellationError",
    "LoggingOptions",
    "configure_logging",
    "get_logger",
    "log_file_path",
    "redact_mapping",
    "redact_secret",
    "sanitize_log_message",
]
