"""
Retry strategy for fetch-layer requests.

Provides:
- RetryConfig: backoff configuration
- is_retryable_error: transient-error classification
- is_rate_limit_response: 403/429 detection
- with_retry: async wrapper with exponential backoff

Rate-limit responses are deliberately NOT retried here: retrying them only
burns quota. They surface to the caller, which records them in the
RefreshGate.

Usage:
    from collectors.retry_strategy import with_retry, RetryConfig

    async def fetch():
        response = await client.get(url)
        response.raise_for_status()
        return response.json()

    data = await with_retry(fetch, RetryConfig(max_retries=3))
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

import httpx

logger = logging.getLogger(__name__)

T = TypeVar("T")

RATE_LIMIT_STATUSES = frozenset({403, 429})


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_retries: int = 3
    backoff_base: float = 2.0  # wait = base ** attempt
    backoff_max: float = 30.0
    jitter: bool = True  # ±25%

    def get_wait_seconds(self, attempt: int) -> float:
        """Wait before retry number `attempt` (0-indexed)."""
        wait = min(self.backoff_base ** attempt, self.backoff_max)
        if self.jitter:
            wait *= 0.75 + (random.random() * 0.5)
        return wait


def is_rate_limit_response(response: httpx.Response) -> bool:
    return response.status_code in RATE_LIMIT_STATUSES


def is_retryable_error(error: BaseException) -> bool:
    """
    Retryable: network errors, timeouts, HTTP 5xx.
    Not retryable: 4xx (including 403/429 rate limits), decode and programming errors.
    """
    if isinstance(error, (httpx.TransportError, ConnectionError, TimeoutError, asyncio.TimeoutError)):
        return True

    if isinstance(error, httpx.HTTPStatusError):
        return 500 <= error.response.status_code < 600

    return False


async def with_retry(
    func: Callable[[], Awaitable[T]],
    config: RetryConfig,
    should_retry: Callable[[BaseException], bool] = is_retryable_error,
) -> T:
    """
    Await func() with retries on transient errors.

    Raises:
        The last exception once retries are exhausted, or immediately for
        non-retryable errors.
    """
    last_error: Optional[BaseException] = None

    for attempt in range(config.max_retries + 1):
        try:
            return await func()
        except Exception as e:
            if not should_retry(e):
                raise

            last_error = e
            if attempt >= config.max_retries:
                logger.error(f"All {config.max_retries} retries exhausted. Last error: {e}")
                raise

            wait_time = config.get_wait_seconds(attempt)
            logger.warning(
                f"Attempt {attempt + 1}/{config.max_retries + 1} failed: {e}. "
                f"Retrying in {wait_time:.2f}s..."
            )
            await asyncio.sleep(wait_time)

    raise RuntimeError(f"Unexpected state in with_retry: {last_error}")
