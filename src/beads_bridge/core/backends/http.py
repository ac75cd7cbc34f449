"""
Retrying HTTP requests for REST backends.

Server errors and transport failures back off exponentially with jitter.
A 4xx response comes straight back so the backend can turn it into a
NotFoundError, AuthenticationError or RateLimitError.
"""

import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryConfig:
    """
    Backoff schedule for one request.

    Retry ``n`` (0-indexed) waits ``base_delay * multiplier**n`` seconds,
    spread by up to ``jitter_ratio`` in either direction when ``jitter`` is on.
    """

    max_retries: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0
    jitter: bool = True
    jitter_ratio: float = 0.2

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError(f"max_retries cannot be negative (got {self.max_retries})")
        if self.base_delay <= 0:
            raise ValueError(f"base_delay must be greater than zero (got {self.base_delay})")
        if self.multiplier < 1.0:
            raise ValueError(f"multiplier below 1.0 would shrink delays (got {self.multiplier})")
        if not 0.0 <= self.jitter_ratio <= 1.0:
            raise ValueError(f"jitter_ratio outside [0, 1] (got {self.jitter_ratio})")

    def calculate_delay(self, attempt: int) -> float:
        delay = self.base_delay * self.multiplier**attempt
        if not self.jitter:
            return delay
        spread = delay * self.jitter_ratio
        return max(0.0, random.uniform(delay - spread, delay + spread))


def is_retryable_status(status_code: int) -> bool:
    """Only 5xx responses are retried; 429 is reported, not retried."""
    return status_code // 100 == 5


def is_retryable_error(exception: Exception) -> bool:
    """True for transport failures and 5xx status errors."""
    if isinstance(exception, httpx.HTTPStatusError):
        return is_retryable_status(exception.response.status_code)
    return isinstance(exception, httpx.HTTPError)


def send_with_retry(
    client: httpx.Client,
    method: str,
    url: str,
    *,
    retry: RetryConfig | None = None,
    sleep: Callable[[float], None] = time.sleep,
    **kwargs: Any,
) -> httpx.Response:
    """
    Send ``method url`` through ``client``, retrying transient failures.

    Once retries run out, a 5xx response is returned as-is and a transport
    error is re-raised. Extra keyword arguments go to ``client.request``.
    ``sleep`` is injectable so tests don't wait.
    """
    config = retry or RetryConfig()
    attempt = 0

    while True:
        last_attempt = attempt >= config.max_retries
        try:
            response = client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            if last_attempt or not is_retryable_error(e):
                if last_attempt:
                    logger.warning(
                        "%s %s failed after %d attempt(s): %s", method, url, attempt + 1, e
                    )
                raise
            reason = str(e)
        else:
            if last_attempt or not is_retryable_status(response.status_code):
                return response
            reason = f"HTTP {response.status_code}"

        delay = config.calculate_delay(attempt)
        logger.info(
            "%s %s: %s; retrying in %.2fs (%d/%d)",
            method,
            url,
            reason,
            delay,
            attempt + 1,
            config.max_retries,
        )
        sleep(delay)
        attempt += 1
