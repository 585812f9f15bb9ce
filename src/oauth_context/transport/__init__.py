"""HTTP collaborator contract and its httpx implementation."""

from .client import HttpClient, HttpResponse, HttpTelemetryEvent, HttpxClient
from .retry import RetryPolicy

__all__ = [
    "HttpClient",
    "HttpResponse",
    "HttpTelemetryEvent",
    "HttpxClient",
    "RetryPolicy",
]
