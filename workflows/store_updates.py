"""
Store Updates Pipeline

Runs one reconciliation pass:
  gate check -> fetch feed + PRs -> New events -> classify -> record fetch

This is where fetch-layer rate-limit responses meet the RefreshGate: a
RateLimitExceeded from either list source is recorded with its reset hint,
and the gate's retry message is returned instead of events.

Usage:
    from workflows.store_updates import StoreUpdatesPipeline, PipelineConfig

    async with StoreUpdatesPipeline(PipelineConfig.from_env()) as pipeline:
        outcome = await pipeline.refresh(manual=True)
        if outcome.blocked_message:
            print(outcome.blocked_message)
        for event in outcome.timeline:
            print(event.kind.value, event.title)
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from catalog.change_classifier import ChangeClassifier, new_item_dates
from catalog.changelog import extract_latest_section
from catalog.models import CatalogEvent
from catalog.refresh_gate import RefreshGate
from catalog.timeline import merge_timeline
from collectors.base import RateLimitExceeded
from collectors.github_pulls import DEFAULT_REPO, GitHubPullsSource
from collectors.package_info import PackageInfoFetcher
from collectors.retry_strategy import RetryConfig
from collectors.store_feed import FEED_URL, StoreFeedSource
from storage.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

RATE_LIMITED_MESSAGE = "Rate limited. Try again later"
FETCH_FAILED_MESSAGE = "Could not reach the store or GitHub. Try again later"


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass
class PipelineConfig:
    """Configuration for the store updates pipeline"""

    db_path: str = "store_updates.db"
    github_token: Optional[str] = None
    repo: str = DEFAULT_REPO
    feed_url: str = FEED_URL
    pr_page_size: int = 50
    max_retries: int = 3

    @classmethod
    def from_env(cls) -> PipelineConfig:
        """Load configuration from environment variables"""
        return cls(
            db_path=os.getenv("STORE_UPDATES_DB_PATH", "store_updates.db"),
            github_token=os.getenv("GITHUB_TOKEN") or None,
            repo=os.getenv("STORE_UPDATES_REPO", DEFAULT_REPO),
            feed_url=os.getenv("STORE_FEED_URL", FEED_URL),
            pr_page_size=int(os.getenv("STORE_UPDATES_PR_PAGE_SIZE", "50")),
            max_retries=int(os.getenv("STORE_UPDATES_MAX_RETRIES", "3")),
        )


@dataclass
class PipelineStats:
    """Counts and timing for one pass"""

    feed_entries: int = 0
    pull_requests: int = 0
    new_events: int = 0
    updated_events: int = 0
    removed_events: int = 0

    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None

    def complete(self):
        self.completed_at = datetime.now(timezone.utc)

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "inputs": {
                "feed_entries": self.feed_entries,
                "pull_requests": self.pull_requests,
            },
            "events": {
                "new": self.new_events,
                "updated": self.updated_events,
                "removed": self.removed_events,
            },
            "timing": {
                "started_at": self.started_at.isoformat(),
                "completed_at": self.completed_at.isoformat() if self.completed_at else None,
                "duration_seconds": self.duration_seconds,
            },
        }


@dataclass
class RefreshOutcome:
    """Result of a refresh. blocked_message is set when nothing was classified."""

    new: List[CatalogEvent] = field(default_factory=list)
    updated: List[CatalogEvent] = field(default_factory=list)
    removed: List[CatalogEvent] = field(default_factory=list)
    timeline: List[CatalogEvent] = field(default_factory=list)
    blocked_message: Optional[str] = None
    rate_limited: bool = False
    fetch_failed: bool = False
    stats: PipelineStats = field(default_factory=PipelineStats)

    @property
    def blocked(self) -> bool:
        return self.blocked_message is not None or self.rate_limited or self.fetch_failed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "blocked_message": self.blocked_message,
            "rate_limited": self.rate_limited,
            "fetch_failed": self.fetch_failed,
            "stats": self.stats.to_dict(),
            "timeline": [event.to_dict() for event in self.timeline],
        }


# =============================================================================
# PIPELINE
# =============================================================================

class StoreUpdatesPipeline:
    """
    Wires the fetchers, the classifier and the refresh gate together.

    Collaborators can be injected (tests, shared clients); anything not
    supplied is built from the config when the pipeline is entered.
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        feed: Optional[StoreFeedSource] = None,
        pulls: Optional[GitHubPullsSource] = None,
        packages: Optional[PackageInfoFetcher] = None,
        gate: Optional[RefreshGate] = None,
    ):
        self.config = config or PipelineConfig.from_env()
        retry_config = RetryConfig(max_retries=self.config.max_retries)

        self.feed = feed or StoreFeedSource(feed_url=self.config.feed_url, retry_config=retry_config)
        self.pulls = pulls or GitHubPullsSource(
            repo=self.config.repo,
            github_token=self.config.github_token,
            retry_config=retry_config,
        )
        self.packages = packages or PackageInfoFetcher(retry_config=retry_config)
        self.classifier = ChangeClassifier(files_source=self.pulls, metadata_source=self.packages)

        self.gate = gate
        self._store: Optional[KeyValueStore] = None

    async def __aenter__(self):
        if self.gate is None:
            self._store = KeyValueStore(self.config.db_path)
            await self._store.initialize()
            self.gate = RefreshGate(self._store)
        await self.gate.load()

        for fetcher in (self.feed, self.pulls, self.packages):
            await fetcher.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        for fetcher in (self.feed, self.pulls, self.packages):
            await fetcher.__aexit__(exc_type, exc_val, exc_tb)
        if self._store is not None:
            await self._store.close()
            self._store = None

    async def refresh(self, manual: bool = True) -> RefreshOutcome:
        """
        Run one reconciliation pass.

        Args:
            manual: Consult the RefreshGate first. Background refreshes pass False.

        Returns:
            RefreshOutcome with events, or a blocked_message
        """
        if self.gate is None:
            raise RuntimeError("Pipeline not entered. Use 'async with StoreUpdatesPipeline(...)'.")

        stats = PipelineStats()

        if manual:
            message = await self.gate.check_refresh_allowed()
            if message:
                logger.info(f"Manual refresh blocked: {message}")
                stats.complete()
                return RefreshOutcome(blocked_message=message, stats=stats)

        # Both fetches settle before a rate limit is handled
        entries, records = await asyncio.gather(
            self.feed.fetch_entries(),
            self.pulls.list_pull_requests(per_page=self.config.pr_page_size),
            return_exceptions=True,
        )
        for result in (entries, records):
            if isinstance(result, RateLimitExceeded):
                logger.warning(f"Refresh hit rate limit: {result}")
                await self.gate.record_rate_limit(result.reset_epoch_seconds)
                stats.complete()
                # A reset hint already in the past leaves the gate open
                message = await self.gate.check_refresh_allowed()
                return RefreshOutcome(
                    blocked_message=message or RATE_LIMITED_MESSAGE,
                    rate_limited=True,
                    stats=stats,
                )
            if isinstance(result, BaseException):
                raise result

        if entries is None or records is None:
            failed = [
                name
                for name, value in (("feed", entries), ("pull requests", records))
                if value is None
            ]
            logger.warning(f"Refresh aborted, could not fetch: {', '.join(failed)}")
            stats.complete()
            return RefreshOutcome(
                blocked_message=FETCH_FAILED_MESSAGE,
                fetch_failed=True,
                stats=stats,
            )

        stats.feed_entries = len(entries)
        stats.pull_requests = len(records)

        new_events = await self.classifier.build_new_events(entries)
        result = await self.classifier.classify(records, new_item_dates(new_events))

        await self.gate.record_fetch(self._reset_hint())

        stats.new_events = len(new_events)
        stats.updated_events = len(result.updated)
        stats.removed_events = len(result.removed)
        stats.complete()

        logger.info(
            f"Refresh complete: {stats.new_events} new, {stats.updated_events} updated, "
            f"{stats.removed_events} removed in {stats.duration_seconds:.2f}s"
        )

        return RefreshOutcome(
            new=new_events,
            updated=result.updated,
            removed=result.removed,
            timeline=merge_timeline(new_events, result.updated, result.removed),
            stats=stats,
        )

    def _reset_hint(self) -> Optional[int]:
        """GitHub reset epoch if the last response exhausted the quota."""
        info = self.pulls.last_rate_limit
        if info is not None and info.exhausted:
            return info.reset_epoch_seconds
        return None

    async def latest_changes(self, slug: str) -> Optional[str]:
        """Most recent changelog section for an extension, or None."""
        changelog = await self.packages.fetch_changelog(slug)
        if changelog is None:
            return None
        return extract_latest_section(changelog) or None
