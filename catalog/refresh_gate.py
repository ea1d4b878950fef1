"""
RefreshGate: persisted throttle for manual refreshes.

States:
    IDLE              -> refresh allowed once MIN_REFRESH_INTERVAL_MS has
                         passed since the last successful fetch
    LIMITED(until)    -> upstream signalled rate limiting; blocked until reset

Transitions:
    check_refresh_allowed()   read-only; returns None or a "Try again in ..." message
    record_fetch(hint?)       last_fetch = now; LIMITED(hint) if hint else clear limit
    record_rate_limit(hint?)  LIMITED(hint or now + 60 min)

State lives in a string key-value store so it survives restarts. Every
operation re-reads it first, since another session may have written it.
Only manual refreshes consult the gate; background fetches do not.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Protocol

logger = logging.getLogger(__name__)

LAST_FETCH_KEY = "github-last-fetch-time"
RATE_LIMIT_RESET_KEY = "github-rate-limit-reset"

MIN_REFRESH_INTERVAL_MS = 5 * 60 * 1000
DEFAULT_RATE_LIMIT_BACKOFF_MS = 60 * 60 * 1000


class StateStore(Protocol):
    async def get_item(self, key: str) -> Optional[str]:
        ...

    async def set_item(self, key: str, value: str) -> None:
        ...

    async def remove_item(self, key: str) -> None:
        ...


class GateStatus(str, Enum):
    IDLE = "idle"
    LIMITED = "limited"


@dataclass
class RefreshState:
    last_fetch_epoch_ms: int = 0
    rate_limit_reset_epoch_ms: Optional[int] = None

    def status(self, now_ms: int) -> GateStatus:
        if self.rate_limit_reset_epoch_ms and now_ms < self.rate_limit_reset_epoch_ms:
            return GateStatus.LIMITED
        return GateStatus.IDLE


def now_epoch_ms() -> int:
    return int(time.time() * 1000)


def format_time_remaining(ms: int) -> str:
    """Seconds below a minute, otherwise rounded-up minutes."""
    total_seconds = math.ceil(ms / 1000)
    if total_seconds < 60:
        return f"Try again in {total_seconds} second{'' if total_seconds == 1 else 's'}"
    minutes = math.ceil(total_seconds / 60)
    return f"Try again in {minutes} minute{'' if minutes == 1 else 's'}"


def _parse_ms(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Ignoring malformed refresh state value: {value!r}")
        return None


class RefreshGate:
    """
    Usage:
        async with kv_store("store_updates.db") as store:
            gate = RefreshGate(store)
            message = await gate.check_refresh_allowed()
            if message is None:
                ...fetch...
                await gate.record_fetch()
    """

    def __init__(
        self,
        store: StateStore,
        clock: Callable[[], int] = now_epoch_ms,
        min_interval_ms: int = MIN_REFRESH_INTERVAL_MS,
        default_backoff_ms: int = DEFAULT_RATE_LIMIT_BACKOFF_MS,
    ):
        if min_interval_ms < 0 or default_backoff_ms <= 0:
            raise ValueError("Refresh intervals must be positive")

        self.store = store
        self.clock = clock
        self.min_interval_ms = min_interval_ms
        self.default_backoff_ms = default_backoff_ms
        self.state = RefreshState()
        self._lock = asyncio.Lock()

    async def load(self) -> RefreshState:
        """Refresh the in-memory mirror from storage."""
        self.state = RefreshState(
            last_fetch_epoch_ms=_parse_ms(await self.store.get_item(LAST_FETCH_KEY)) or 0,
            rate_limit_reset_epoch_ms=_parse_ms(await self.store.get_item(RATE_LIMIT_RESET_KEY)),
        )
        return self.state

    async def status(self) -> GateStatus:
        async with self._lock:
            state = await self.load()
            return state.status(self.clock())

    async def check_refresh_allowed(self) -> Optional[str]:
        """None if a manual refresh may proceed, else a retry message."""
        async with self._lock:
            state = await self.load()
            now = self.clock()

            if state.status(now) is GateStatus.LIMITED:
                return format_time_remaining(state.rate_limit_reset_epoch_ms - now)

            since_last = now - state.last_fetch_epoch_ms
            if state.last_fetch_epoch_ms > 0 and since_last < self.min_interval_ms:
                return format_time_remaining(self.min_interval_ms - since_last)

            return None

    async def record_fetch(self, reset_epoch_seconds: Optional[int] = None) -> None:
        """Record a successful fetch, optionally arming a limit until the reset hint."""
        async with self._lock:
            await self.load()
            now = self.clock()
            await self.store.set_item(LAST_FETCH_KEY, str(now))
            self.state.last_fetch_epoch_ms = now

            if reset_epoch_seconds:
                reset_ms = reset_epoch_seconds * 1000
                await self.store.set_item(RATE_LIMIT_RESET_KEY, str(reset_ms))
                self.state.rate_limit_reset_epoch_ms = reset_ms
            else:
                await self.store.remove_item(RATE_LIMIT_RESET_KEY)
                self.state.rate_limit_reset_epoch_ms = None

    async def record_rate_limit(self, reset_epoch_seconds: Optional[int] = None) -> None:
        """Enter LIMITED until the reset hint, or for the default backoff."""
        async with self._lock:
            await self.load()
            if reset_epoch_seconds:
                reset_ms = reset_epoch_seconds * 1000
            else:
                reset_ms = self.clock() + self.default_backoff_ms

            await self.store.set_item(RATE_LIMIT_RESET_KEY, str(reset_ms))
            self.state.rate_limit_reset_epoch_ms = reset_ms
            logger.warning(f"Rate limited until epoch ms {reset_ms}")
