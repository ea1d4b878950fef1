"""
Per-extension descriptor and changelog source (raw repository content).

- fetch_metadata(slug): extensions/{slug}/package.json -> ItemMetadata
- fetch_changelog(slug): extensions/{slug}/CHANGELOG.md -> text

Both return None for 404 and every other failure. A missing package.json is
meaningful: the classifier uses it to confirm an extension was removed.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from catalog.models import ItemMetadata
from catalog.urls import RAW_CONTENT_BASE, changelog_url, package_json_url
from collectors.base import BaseFetcher
from collectors.retry_strategy import RetryConfig

logger = logging.getLogger(__name__)


class PackageInfoFetcher(BaseFetcher):
    def __init__(
        self,
        raw_base: str = RAW_CONTENT_BASE,
        retry_config: Optional[RetryConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(
            fetcher_name="package_info",
            api_name="raw_content",
            retry_config=retry_config,
            client=client,
        )
        self.raw_base = raw_base.rstrip("/")

    async def fetch_metadata(self, slug: str) -> Optional[ItemMetadata]:
        pkg = await self.get_json(package_json_url(slug, self.raw_base))
        if not isinstance(pkg, dict):
            return None
        return ItemMetadata.from_package_json(slug, pkg)

    async def fetch_changelog(self, slug: str) -> Optional[str]:
        text = await self.get_text(changelog_url(slug, self.raw_base))
        if text is None:
            logger.debug(f"No changelog for {slug}")
        return text
