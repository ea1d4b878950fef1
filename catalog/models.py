"""
Data model for store change tracking.

Inputs:
- FeedEntry: one "new extension" announcement from the store feed
- ChangeRecord: one closed pull request from the extensions repository
- ChangedFile: one entry of a pull request's changed-file list
- ItemMetadata: parsed package.json descriptor of an extension

Output:
- CatalogEvent: a classified change (new / updated / removed)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

DEFAULT_PLATFORM = "macOS"
DEFAULT_PLATFORMS: Tuple[str, ...] = (DEFAULT_PLATFORM,)

REMOVED_STATUS = "removed"


class EventKind(str, Enum):
    """Kind of catalog change"""
    NEW = "new"
    UPDATED = "updated"
    REMOVED = "removed"


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp (GitHub / JSON Feed style). None on failure.

    Timestamps without an offset are taken as UTC.
    """
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _first_present(*values: Optional[str]) -> Optional[str]:
    """First value that is not None ("" counts as present)."""
    for value in values:
        if value is not None:
            return value
    return None


def _text(mapping: Dict[str, Any], key: str) -> str:
    value = mapping.get(key)
    return value if isinstance(value, str) else ""


def _mapping(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


# =============================================================================
# INPUTS
# =============================================================================

@dataclass
class FeedEntry:
    """One item of the store's "new extensions" JSON feed"""
    entry_id: str
    item_url: str
    title: str
    summary: str
    image_url: str
    published_at: datetime
    author_name: str
    author_url: str

    @classmethod
    def from_feed_item(cls, item: Dict[str, Any]) -> Optional[FeedEntry]:
        """
        Build from a raw feed item.

        Returns None when the item has no id or no parseable date.
        """
        if not isinstance(item, dict):
            return None

        published_at = parse_timestamp(item.get("date_modified"))
        entry_id = item.get("id")
        if not isinstance(entry_id, (str, int)) or entry_id == "" or published_at is None:
            return None

        author = _mapping(item.get("author"))
        return cls(
            entry_id=str(entry_id),
            item_url=_text(item, "url"),
            title=_text(item, "title"),
            summary=_text(item, "summary"),
            image_url=_text(item, "image"),
            published_at=published_at,
            author_name=_text(author, "name"),
            author_url=_text(author, "url"),
        )


@dataclass
class ChangeRecord:
    """A closed pull request (merged or not)"""
    reference_id: int
    title: str
    merged_at: Optional[datetime]
    author_login: str
    author_url: str
    author_avatar: str
    labels: List[str] = field(default_factory=list)
    source_ref: str = ""

    @property
    def is_merged(self) -> bool:
        return self.merged_at is not None

    @classmethod
    def from_pull_request(cls, pr: Dict[str, Any]) -> Optional[ChangeRecord]:
        """Build from a raw pull request. None when it has no integer number."""
        if not isinstance(pr, dict):
            return None
        number = pr.get("number")
        if not isinstance(number, int) or isinstance(number, bool):
            return None

        user = _mapping(pr.get("user"))
        labels = pr.get("labels")
        return cls(
            reference_id=number,
            title=_text(pr, "title"),
            merged_at=parse_timestamp(pr.get("merged_at")),
            author_login=_text(user, "login"),
            author_url=_text(user, "html_url"),
            author_avatar=_text(user, "avatar_url"),
            labels=[
                label["name"]
                for label in (labels if isinstance(labels, list) else [])
                if isinstance(label, dict) and isinstance(label.get("name"), str)
            ],
            source_ref=_text(pr, "html_url"),
        )


@dataclass(frozen=True)
class ChangedFile:
    """One file touched by a pull request"""
    filename: str
    status: str

    @property
    def is_deleted(self) -> bool:
        return self.status == REMOVED_STATUS


@dataclass
class ItemMetadata:
    """
    Extension descriptor (package.json) with every fallback already applied.

    Fallback order per field:
        owner       -> owner, author, slug  (first non-null; "" is kept)
        title       -> title, name, slug
        name        -> name, slug
        description -> description, ""
        platforms   -> platforms, ["macOS"]
        version     -> version, ""
        categories  -> non-blank string categories, []
        icon        -> icon, ""
    """
    slug: str
    owner: str
    title: str
    name: str
    description: str = ""
    platforms: List[str] = field(default_factory=lambda: list(DEFAULT_PLATFORMS))
    version: str = ""
    categories: List[str] = field(default_factory=list)
    icon: str = ""

    @classmethod
    def from_package_json(cls, slug: str, pkg: Dict[str, Any]) -> ItemMetadata:
        def text(key: str) -> Optional[str]:
            value = pkg.get(key)
            return value if isinstance(value, str) else None

        platforms = pkg.get("platforms")
        if not isinstance(platforms, list):
            platforms = list(DEFAULT_PLATFORMS)

        categories = pkg.get("categories")
        if not isinstance(categories, list):
            categories = []

        return cls(
            slug=slug,
            owner=_first_present(text("owner"), text("author"), slug),
            title=_first_present(text("title"), text("name"), slug),
            name=_first_present(text("name"), slug),
            description=_first_present(text("description"), ""),
            platforms=[p for p in platforms if isinstance(p, str)],
            version=_first_present(text("version"), ""),
            categories=[c for c in categories if isinstance(c, str) and c.strip()],
            icon=_first_present(text("icon"), ""),
        )


# =============================================================================
# OUTPUT
# =============================================================================

@dataclass
class CatalogEvent:
    """A classified change to the extension catalog"""
    id: str
    kind: EventKind
    title: str
    summary: str
    image_url: str
    author_name: str
    author_url: str
    item_url: str
    occurred_at: datetime
    slug: Optional[str] = None
    source_ref: Optional[str] = None
    platforms: Tuple[str, ...] = DEFAULT_PLATFORMS
    version: Optional[str] = None
    categories: Optional[List[str]] = None

    def has_platform(self, platform: str) -> bool:
        wanted = platform.lower()
        return any(p.lower() == wanted for p in self.platforms)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for JSON output"""
        return {
            "id": self.id,
            "kind": self.kind.value,
            "slug": self.slug,
            "title": self.title,
            "summary": self.summary,
            "image_url": self.image_url,
            "author_name": self.author_name,
            "author_url": self.author_url,
            "item_url": self.item_url,
            "occurred_at": self.occurred_at.isoformat(),
            "source_ref": self.source_ref,
            "platforms": list(self.platforms),
            "version": self.version,
            "categories": self.categories,
        }


@dataclass
class ClassificationResult:
    """Updated and removed events from one reconciliation pass (unordered)"""
    updated: List[CatalogEvent] = field(default_factory=list)
    removed: List[CatalogEvent] = field(default_factory=list)
