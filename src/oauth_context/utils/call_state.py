from __future__ import annotations

import asyncio
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Callable

import structlog


class CancellationError(asyncio.CancelledError):
    """Raised when a call observed a cancellation request between steps."""

    def __init__(self, reason: str | None = None) -> None:
        super().__init__(reason)
        self.reason = reason


class CallState:
    """Correlation handle threaded through one logical token acquisition.

    Cancellation is advisory: requesting it makes the next checkpoint raise
    :class:`CancellationError` but never interrupts an in-flight request.
    """

    __slots__ = ("_correlation_id", "_cancelled", "_reason", "_callbacks")

    def __init__(self, correlation_id: str | None = None) -> None:
        self._correlation_id = correlation_id or str(uuid.uuid4())
        self._cancelled = False
        self._reason: str | None = None
        self._callbacks: list[Callable[["CallState"], None]] = []

    @classmethod
    def ensure(cls, call_state: "CallState | None") -> "CallState":
        return call_state if call_state is not None else cls()

    @property
    def correlation_id(self) -> str:
        return self._correlation_id

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, *, reason: str | None = None) -> bool:
        if self._cancelled:
            return False
        self._cancelled = True
        self._reason = reason
        for callback in list(self._callbacks):
            callback(self)
        return True

    def on_cancel(self, callback: Callable[["CallState"], None]) -> Callable[[], None]:
        if self._cancelled:
            callback(self)
            return lambda: None

        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise CancellationError(self._reason)

    @contextmanager
    def bound(self, **extra: object) -> Iterator["CallState"]:
        """Bind the correlation id (and extras) into structlog context vars."""

        with structlog.contextvars.bound_contextvars(
            correlation_id=self._correlation_id, **extra
        ):
            yield self

    def __repr__(self) -> str:
        return (
            f"CallState(correlation_id={self._correlation_id!r}, "
            f"cancelled={self._cancelled})"
        )


__all__ = ["CallState", "CancellationError"]
