"""
Tests for package.json and changelog lookups.
"""

import pytest
import httpx

from collectors.package_info import PackageInfoFetcher
from collectors.retry_strategy import RetryConfig

RAW_BASE = "https://raw.example/extensions"


def make_fetcher(files):
    def handler(request):
        body = files.get(request.url.path)
        if body is None:
            return httpx.Response(404, text="404: Not Found")
        if isinstance(body, dict):
            return httpx.Response(200, json=body)
        return httpx.Response(200, text=body)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return PackageInfoFetcher(raw_base=RAW_BASE, client=client, retry_config=RetryConfig(max_retries=0))


class TestFetchMetadata:
    @pytest.mark.asyncio
    async def test_full_package(self):
        fetcher = make_fetcher({
            "/extensions/widget/package.json": {
                "name": "widget",
                "title": "Widget",
                "description": "Widgets everywhere",
                "author": "jdoe",
                "owner": "acme",
                "icon": "command-icon.png",
                "version": "2.0.0",
                "platforms": ["macOS", "Windows"],
                "categories": ["Productivity", ""],
            },
        })

        pkg = await fetcher.fetch_metadata("widget")

        assert pkg.owner == "acme"
        assert pkg.title == "Widget"
        assert pkg.description == "Widgets everywhere"
        assert pkg.platforms == ["macOS", "Windows"]
        assert pkg.categories == ["Productivity"]
        assert pkg.icon == "command-icon.png"

    @pytest.mark.asyncio
    async def test_fallbacks(self):
        fetcher = make_fetcher({"/extensions/bare/package.json": {"author": "jdoe", "name": "bare-ext"}})

        pkg = await fetcher.fetch_metadata("bare")

        assert pkg.owner == "jdoe"
        assert pkg.title == "bare-ext"
        assert pkg.platforms == ["macOS"]
        assert pkg.version == ""

    @pytest.mark.asyncio
    async def test_missing_package_is_none(self):
        assert await make_fetcher({}).fetch_metadata("gone") is None

    @pytest.mark.asyncio
    async def test_non_object_json_is_none(self):
        fetcher = make_fetcher({"/extensions/odd/package.json": "[1, 2]"})

        assert await fetcher.fetch_metadata("odd") is None


class TestFetchChangelog:
    @pytest.mark.asyncio
    async def test_text(self):
        fetcher = make_fetcher({"/extensions/widget/CHANGELOG.md": "## [1.0] - 2026-01-01\n- hi\n"})

        assert await fetcher.fetch_changelog("widget") == "## [1.0] - 2026-01-01\n- hi\n"

    @pytest.mark.asyncio
    async def test_missing_is_none(self):
        assert await make_fetcher({}).fetch_changelog("widget") is None
