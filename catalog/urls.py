"""
Store and repository URL helpers.

Store item URL:      https://www.raycast.com/{owner}/{slug}
Deep link:           raycast://extensions/{owner}/{slug}
Raw content:         https://raw.githubusercontent.com/raycast/extensions/main/extensions/{slug}/...
"""

from __future__ import annotations

from typing import Optional, Tuple

STORE_BASE_URL = "https://www.raycast.com"
DEEPLINK_BASE = "raycast://extensions"
RAW_CONTENT_BASE = "https://raw.githubusercontent.com/raycast/extensions/main/extensions"
GITHUB_EXTENSIONS_BASE = "https://github.com/raycast/extensions/blob/main/extensions"


def parse_store_url(url: str, base_url: str = STORE_BASE_URL) -> Optional[Tuple[str, str]]:
    """
    Split a store item URL into (owner, slug).

    Returns None if the URL is empty, has another prefix, or lacks a segment.
    """
    prefix = base_url.rstrip("/") + "/"
    if not url or not url.startswith(prefix):
        return None

    parts = url[len(prefix):].split("/")
    owner = parts[0]
    slug = parts[1] if len(parts) > 1 else ""
    if not owner or not slug:
        return None
    return owner, slug


def create_store_deeplink(
    url: str,
    base_url: str = STORE_BASE_URL,
    deeplink_base: str = DEEPLINK_BASE,
) -> str:
    """Store URL -> client deep link. Unparseable URLs are returned unchanged."""
    parsed = parse_store_url(url, base_url)
    if not parsed:
        return url
    owner, slug = parsed
    return f"{deeplink_base}/{owner}/{slug}"


def build_store_url(owner: str, slug: str, base_url: str = STORE_BASE_URL) -> str:
    return f"{base_url.rstrip('/')}/{owner}/{slug}"


def package_json_url(slug: str, raw_base: str = RAW_CONTENT_BASE) -> str:
    return f"{raw_base}/{slug}/package.json"


def changelog_url(slug: str, raw_base: str = RAW_CONTENT_BASE) -> str:
    return f"{raw_base}/{slug}/CHANGELOG.md"


def changelog_browser_url(slug: str) -> str:
    return f"{GITHUB_EXTENSIONS_BASE}/{slug}/CHANGELOG.md"


def icon_url(slug: str, icon_filename: str, raw_base: str = RAW_CONTENT_BASE) -> str:
    """
    Icon URL for an extension, or "" when it has no icon.

    Icons live under assets/; filenames that already include it are kept as-is.
    """
    if not icon_filename:
        return ""
    if not icon_filename.startswith("assets/"):
        icon_filename = f"assets/{icon_filename}"
    return f"{raw_base}/{slug}/{icon_filename}"
