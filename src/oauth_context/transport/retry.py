from __future__ import annotations

import random
from dataclasses import dataclass

import httpx

from oauth_context.utils import get_logger


_logger = get_logger(__name__)


@dataclass(slots=True)
class RetryPolicy:
    """Retry schedule for token-endpoint and discovery requests.

    Only transient conditions are retried: timeouts, connection failures and
    5xx answers. A 4xx answer is always returned to the caller untouched.
    """

    max_retries: int = 1
    base_retry_delay: float = 0.5
    max_retry_delay: float = 8.0

    def should_retry_error(self, *, attempt: int, error: Exception) -> bool:
        if attempt > self.max_retries:
            _logger.warning("Maximum retries exceeded", attempt=attempt)
            return False
        return isinstance(error, (httpx.TimeoutException, httpx.NetworkError))

    def should_retry_status(self, *, attempt: int, status_code: int) -> bool:
        if attempt > self.max_retries:
            return False
        return 500 <= status_code <= 599

    def calculate_retry_delay(
        self,
        *,
        attempt: int,
        retry_after_header: str | None = None,
    ) -> float:
        if retry_after_header:
            try:
                header_delay = float(retry_after_header)
                _logger.info("Using Retry-After header", delay=header_delay)
                return min(header_delay, self.max_retry_delay)
            except ValueError:
                _logger.debug("Invalid Retry-After header", header=retry_after_header)

        exponential = self.base_retry_delay * (2 ** max(0, attempt - 1))
        jitter = exponential * random.uniform(0.8, 1.2)
        delay: float = min(jitter, self.max_retry_delay)
        _logger.info("Calculated retry delay", delay=delay, attempt=attempt)
        return delay


__all__ = ["RetryPolicy"]
