"""
Proactive per-API rate limiting for the fetch layer.

Token bucket per upstream API, shared by every fetcher that names the same
API. This only spreads requests out; hard rate-limit responses (403/429)
are handled by the RefreshGate, not here.

Usage:
    from utils.rate_limiter import get_rate_limiter

    limiter = get_rate_limiter("github")
    await limiter.acquire()
    response = await client.get(url)

Limits:
    - github: 60/hour unauthenticated (5000/hour with a token)
    - raw_content, store_feed: unlimited (CDN-backed)
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Dict, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ApiLimit:
    rate: Optional[int]  # requests per period, None = unlimited
    period: int = 1  # seconds


API_LIMITS: Dict[str, ApiLimit] = {
    "github": ApiLimit(rate=60, period=3600),
    "github_authenticated": ApiLimit(rate=5000, period=3600),
    "raw_content": ApiLimit(rate=None),
    "store_feed": ApiLimit(rate=None),
}


class AsyncRateLimiter:
    """
    Token bucket limiter. Callers wait in acquire() when the bucket is empty.

    Args:
        rate: Maximum requests per period (None = unlimited)
        period: Time period in seconds
    """

    def __init__(self, rate: Optional[int] = None, period: int = 1):
        if rate is not None and rate <= 0:
            raise ValueError("rate must be positive or None")
        self.rate = rate
        self.period = period
        self._lock = asyncio.Lock()
        self._tokens: float = float(rate) if rate else float("inf")
        self._last_refill: Optional[float] = None

    @property
    def unlimited(self) -> bool:
        return self.rate is None

    async def acquire(self) -> None:
        if self.rate is None:
            return

        async with self._lock:
            now = time.monotonic()
            if self._last_refill is None:
                self._last_refill = now

            refill = (now - self._last_refill) * (self.rate / self.period)
            self._tokens = min(float(self.rate), self._tokens + refill)
            self._last_refill = now

            if self._tokens < 1:
                wait_time = (1 - self._tokens) * (self.period / self.rate)
                logger.debug(f"Rate limit: waiting {wait_time:.2f}s")
                await asyncio.sleep(wait_time)
                self._tokens = 1
                self._last_refill = time.monotonic()

            self._tokens -= 1


class RateLimiterPool:
    """Creates limiters on demand, one per API name."""

    def __init__(self, limits: Optional[Dict[str, ApiLimit]] = None):
        self.limits = limits if limits is not None else API_LIMITS
        self._limiters: Dict[str, AsyncRateLimiter] = {}

    def get(self, api_name: str) -> AsyncRateLimiter:
        if api_name not in self._limiters:
            limit = self.limits.get(api_name, ApiLimit(rate=None))
            self._limiters[api_name] = AsyncRateLimiter(rate=limit.rate, period=limit.period)
            if limit.rate:
                logger.info(
                    f"Created rate limiter for {api_name}: "
                    f"{limit.rate} requests per {limit.period}s"
                )
        return self._limiters[api_name]

    def reset(self) -> None:
        """Forget all limiters (for testing)."""
        self._limiters.clear()


_global_pool = RateLimiterPool()


def get_rate_limiter(api_name: str) -> AsyncRateLimiter:
    return _global_pool.get(api_name)


def reset_limiters() -> None:
    _global_pool.reset()
