"""
Base Fetcher for store-updates sources.

Provides common functionality for all fetchers:
- Async context manager owning an httpx.AsyncClient
- Retry with exponential backoff on transient errors
- Per-API proactive rate limiting
- "Not found" semantics: get_json()/get_text() return None on any failure
- Rate-limit detection (403/429) surfaced as RateLimitExceeded on request

Fetchers inherit from BaseFetcher and add source-specific parsing.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

import httpx

from collectors.retry_strategy import RetryConfig, is_rate_limit_response, with_retry
from utils.rate_limiter import AsyncRateLimiter, get_rate_limiter

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RateLimitExceeded(Exception):
    """Upstream answered 403/429."""

    def __init__(self, url: str, status_code: int, reset_epoch_seconds: Optional[int] = None):
        self.url = url
        self.status_code = status_code
        self.reset_epoch_seconds = reset_epoch_seconds
        super().__init__(
            f"Rate limited ({status_code}) on {url}"
            + (f", resets at {reset_epoch_seconds}" if reset_epoch_seconds else "")
        )


@dataclass
class RateLimitInfo:
    """Last X-RateLimit-* values seen on a response"""
    remaining: Optional[int] = None
    reset_epoch_seconds: Optional[int] = None

    @property
    def exhausted(self) -> bool:
        return self.remaining == 0

    @classmethod
    def from_headers(cls, headers: httpx.Headers) -> Optional[RateLimitInfo]:
        remaining = _int_header(headers, "X-RateLimit-Remaining")
        reset = _int_header(headers, "X-RateLimit-Reset")
        if remaining is None and reset is None:
            return None
        return cls(remaining=remaining, reset_epoch_seconds=reset)


def _int_header(headers: httpx.Headers, name: str) -> Optional[int]:
    value = headers.get(name)
    if value is None:
        return None
    try:
        return int(float(value))
    except ValueError:
        return None


def reset_hint_from_response(response: httpx.Response) -> Optional[int]:
    """
    Epoch seconds when a rate limit lifts.

    X-RateLimit-Reset wins; otherwise Retry-After (delta seconds) from now.
    """
    reset = _int_header(response.headers, "X-RateLimit-Reset")
    if reset:
        return reset
    retry_after = _int_header(response.headers, "Retry-After")
    if retry_after is not None:
        return int(time.time()) + retry_after
    return None


class BaseFetcher:
    """
    Base class for HTTP sources.

    Usage:
        class MyFetcher(BaseFetcher):
            async def fetch_things(self):
                return await self.get_json("https://example.com/things.json")

        async with MyFetcher(fetcher_name="things") as fetcher:
            things = await fetcher.fetch_things()
    """

    def __init__(
        self,
        fetcher_name: str = "unknown",
        api_name: Optional[str] = None,
        retry_config: Optional[RetryConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: float = 30.0,
    ):
        """
        Args:
            fetcher_name: Name used in log messages
            api_name: API name for rate limiting (e.g., "github", "raw_content")
            retry_config: Retry behavior (default: RetryConfig())
            client: Shared httpx client; not closed by this fetcher
            headers: Headers sent with every request
            timeout: Request timeout in seconds for clients this fetcher creates
        """
        self.fetcher_name = fetcher_name
        self.api_name = api_name
        self.retry_config = retry_config or RetryConfig()
        self.client = client
        self.headers = dict(headers or {})
        self.timeout = timeout
        self._owns_client = False

        if api_name:
            self._rate_limiter = get_rate_limiter(api_name)
        else:
            self._rate_limiter = AsyncRateLimiter(rate=None, period=1)

        self.last_rate_limit: Optional[RateLimitInfo] = None
        self._retry_count = 0

    async def __aenter__(self):
        if self.client is None:
            self.client = httpx.AsyncClient(timeout=self.timeout, follow_redirects=True)
            self._owns_client = True
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._owns_client and self.client is not None:
            await self.client.aclose()
            self.client = None
            self._owns_client = False

    @property
    def rate_limiter(self) -> AsyncRateLimiter:
        return self._rate_limiter

    @property
    def retry_count(self) -> int:
        return self._retry_count

    async def _fetch_with_retry(self, func: Callable[[], Awaitable[T]]) -> T:
        """Rate limit acquisition + retry with backoff around func()."""

        async def tracking_func() -> T:
            await self._rate_limiter.acquire()
            try:
                return await func()
            except Exception:
                self._retry_count += 1
                raise

        try:
            return await with_retry(tracking_func, self.retry_config)
        except Exception:
            # The final failure is not a retry
            self._retry_count = max(0, self._retry_count - 1)
            raise

    async def _send(self, url: str, params: Optional[Dict[str, Any]]) -> httpx.Response:
        if self.client is not None:
            return await self.client.get(url, params=params, headers=self.headers)
        async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
            return await client.get(url, params=params, headers=self.headers)

    async def _get(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        raise_on_rate_limit: bool = False,
    ) -> Optional[httpx.Response]:
        """
        GET with retry. Returns the 2xx response, or None on any failure.

        Raises:
            RateLimitExceeded: only when raise_on_rate_limit is set
        """

        async def do_request() -> httpx.Response:
            response = await self._send(url, params)
            info = RateLimitInfo.from_headers(response.headers)
            if info is not None:
                self.last_rate_limit = info
            if is_rate_limit_response(response):
                raise RateLimitExceeded(url, response.status_code, reset_hint_from_response(response))
            response.raise_for_status()
            return response

        try:
            return await self._fetch_with_retry(do_request)
        except RateLimitExceeded as e:
            if raise_on_rate_limit:
                raise
            logger.warning(f"{self.fetcher_name}: {e}")
            return None
        except httpx.HTTPStatusError as e:
            logger.debug(f"{self.fetcher_name}: {url} -> HTTP {e.response.status_code}")
            return None
        except Exception as e:
            logger.warning(f"{self.fetcher_name}: request to {url} failed: {e}")
            return None

    async def get_json(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        raise_on_rate_limit: bool = False,
    ) -> Optional[Any]:
        """Parsed JSON body, or None on any failure."""
        response = await self._get(url, params=params, raise_on_rate_limit=raise_on_rate_limit)
        if response is None:
            return None
        try:
            return response.json()
        except ValueError as e:
            logger.warning(f"{self.fetcher_name}: invalid JSON from {url}: {e}")
            return None

    async def get_text(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        raise_on_rate_limit: bool = False,
    ) -> Optional[str]:
        """Body text, or None on any failure."""
        response = await self._get(url, params=params, raise_on_rate_limit=raise_on_rate_limit)
        if response is None:
            return None
        return response.text
