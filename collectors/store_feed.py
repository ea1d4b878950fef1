"""
Store "new extensions" JSON feed source.

Feed shape (JSON Feed 1.1):
    {"items": [{"id", "url", "title", "summary", "image", "date_modified",
                "author": {"name", "url"}}]}
"""

from __future__ import annotations

import logging
from typing import List, Optional

import httpx

from catalog.models import FeedEntry
from collectors.base import BaseFetcher
from collectors.retry_strategy import RetryConfig

logger = logging.getLogger(__name__)

FEED_URL = "https://www.raycast.com/store/feed.json"


class StoreFeedSource(BaseFetcher):
    def __init__(
        self,
        feed_url: str = FEED_URL,
        retry_config: Optional[RetryConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(
            fetcher_name="store_feed",
            api_name="store_feed",
            retry_config=retry_config,
            client=client,
            headers={"Accept": "application/feed+json, application/json"},
        )
        self.feed_url = feed_url

    async def fetch_entries(self) -> Optional[List[FeedEntry]]:
        """
        Feed entries in feed order; malformed items are skipped.

        Returns:
            FeedEntries, or None when the feed could not be fetched

        Raises:
            RateLimitExceeded: on 403/429
        """
        feed = await self.get_json(self.feed_url, raise_on_rate_limit=True)
        if not isinstance(feed, dict):
            return None

        items = feed.get("items")
        if not isinstance(items, list):
            logger.warning(f"Feed has no item list: {type(items).__name__}")
            items = []

        entries = []
        skipped = 0
        for item in items:
            try:
                entry = FeedEntry.from_feed_item(item)
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                logger.debug(f"Malformed feed item: {e}")
                entry = None
            if entry is None:
                skipped += 1
                continue
            entries.append(entry)

        if skipped:
            logger.warning(f"Skipped {skipped} malformed feed items")
        logger.info(f"Fetched {len(entries)} feed entries")
        return entries
