from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Protocol

import httpx

from oauth_context.auth.errors import TransportError
from oauth_context.config.settings import Settings
from oauth_context.transport.retry import RetryPolicy
from oauth_context.utils import get_logger


logger = get_logger(__name__)

DEFAULT_USER_AGENT = "oauth-context-python"


@dataclass(slots=True, frozen=True)
class HttpResponse:
    """Raw answer from a server; error statuses are data, not exceptions."""

    status_code: int
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""

    def header(self, name: str) -> str | None:
        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return None

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        return json.loads(self.body)

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300


class HttpClient(Protocol):
    """Collaborator contract for sending one HTTP request.

    Implementations return every response they receive, whatever its status,
    and raise :class:`TransportError` only when no response arrived.
    """

    async def send(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        body: bytes | None = None,
    ) -> HttpResponse: ...


@dataclass(slots=True)
class HttpTelemetryEvent:
    method: str
    url: str
    status_code: int | None
    duration_ms: float
    retries: int
    success: bool


class HttpxClient:
    """Default :class:`HttpClient` backed by ``httpx.AsyncClient``."""

    def __init__(
        self,
        *,
        timeout: float = 30.0,
        user_agent: str = DEFAULT_USER_AGENT,
        retry_policy: RetryPolicy | None = None,
        telemetry_callback: Callable[[HttpTelemetryEvent], None] | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._retry_policy = retry_policy or RetryPolicy()
        self._telemetry_callback = telemetry_callback
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            headers={"User-Agent": user_agent},
            follow_redirects=False,
        )

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> "HttpxClient":
        return cls(
            timeout=settings.http_timeout_seconds,
            retry_policy=RetryPolicy(max_retries=settings.http_retries),
            **kwargs,
        )

    async def send(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        body: bytes | None = None,
    ) -> HttpResponse:
        attempt = 1
        start = time.perf_counter()

        while True:
            try:
                response = await self._client.request(
                    method,
                    url,
                    headers=dict(headers or {}),
                    content=body,
                )
            except httpx.RequestError as exc:
                if self._retry_policy.should_retry_error(attempt=attempt, error=exc):
                    delay = self._retry_policy.calculate_retry_delay(attempt=attempt)
                    await asyncio.sleep(delay)
                    attempt += 1
                    continue
                self._publish_telemetry(
                    method,
                    url,
                    duration=time.perf_counter() - start,
                    status_code=None,
                    success=False,
                    retries=attempt - 1,
                )
                logger.warning(
                    "No response from server",
                    method=method,
                    url=url,
                    error=str(exc),
                )
                raise TransportError(
                    f"Network error communicating with {url}: {exc}",
                    inner_error=exc,
                ) from exc

            if self._retry_policy.should_retry_status(
                attempt=attempt, status_code=response.status_code
            ):
                delay = self._retry_policy.calculate_retry_delay(
                    attempt=attempt,
                    retry_after_header=response.headers.get("Retry-After"),
                )
                await asyncio.sleep(delay)
                attempt += 1
                continue

            self._publish_telemetry(
                method,
                url,
                duration=time.perf_counter() - start,
                status_code=response.status_code,
                success=response.is_success,
                retries=attempt - 1,
            )
            return HttpResponse(
                status_code=response.status_code,
                headers={key: response.headers[key] for key in response.headers.keys()},
                body=response.content,
            )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpxClient":
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()

    def _publish_telemetry(
        self,
        method: str,
        url: str,
        *,
        duration: float,
        status_code: int | None,
        success: bool,
        retries: int,
    ) -> None:
        if not self._telemetry_callback:
            return
        event = HttpTelemetryEvent(
            method=method,
            url=url,
            status_code=status_code,
            duration_ms=duration * 1000,
            retries=max(retries, 0),
            success=success,
        )
        try:
            self._telemetry_callback(event)
        except Exception:  # pragma: no cover - telemetry shouldn't break requests
            logger.warning("Telemetry callback raised an exception", exc_info=True)


__all__ = ["HttpClient", "HttpResponse", "HttpTelemetryEvent", "HttpxClient"]
