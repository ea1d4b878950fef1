"""
Change Classifier: reconcile the store feed with merged pull requests.

One reconciliation pass turns:
- feed entries                     -> New events (one per entry)
- merged pull requests             -> Updated events (deduplicated by slug)
- removal-candidate pull requests  -> Removed events (confirmed by metadata 404)

Pull request flow:
    discard unmerged
      -> partition: removal candidates | the rest
      -> the rest:      title/label slug -> path fallback (fan-out)
                        -> feed-date filter + first-seen dedup (input order)
                        -> metadata lookup (fan-out) -> Updated events
      -> candidates:    removed-slug sets (fan-out) -> dedup by slug
                        -> metadata lookup (fan-out), 404 => Removed events

The update and removal branches are independent and run concurrently.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from catalog.models import (
    DEFAULT_PLATFORMS,
    CatalogEvent,
    ChangeRecord,
    ClassificationResult,
    EventKind,
    FeedEntry,
    ItemMetadata,
)
from catalog.removal_detector import is_removal_candidate, resolve_removed_slugs
from catalog.slug_resolver import resolve_slug, resolve_slug_from_changed_paths
from catalog.sources import ChangedFilesSource, MetadataSource
from catalog.urls import STORE_BASE_URL, build_store_url, icon_url, parse_store_url

logger = logging.getLogger(__name__)

REMOVED_SUMMARY = "This extension has been removed from the Raycast Store."


def slug_to_title(slug: str) -> str:
    """'my-cool-ext' -> 'My Cool Ext'"""
    return " ".join(word[:1].upper() + word[1:] for word in slug.split("-"))


def new_item_dates(events: Iterable[CatalogEvent]) -> Dict[str, datetime]:
    """slug -> publish date for the New events of a pass"""
    return {
        event.slug: event.occurred_at
        for event in events
        if event.kind is EventKind.NEW and event.slug
    }


class ChangeClassifier:
    """
    Builds classified CatalogEvents from feed entries and pull requests.

    Usage:
        classifier = ChangeClassifier(files_source=pulls, metadata_source=packages)
        new_events = await classifier.build_new_events(entries)
        result = await classifier.classify(records, new_item_dates(new_events))
    """

    def __init__(
        self,
        files_source: ChangedFilesSource,
        metadata_source: MetadataSource,
        store_base_url: str = STORE_BASE_URL,
    ):
        self.files_source = files_source
        self.metadata_source = metadata_source
        self.store_base_url = store_base_url

    # -------------------------------------------------------------------------
    # New
    # -------------------------------------------------------------------------

    async def build_new_events(self, entries: Sequence[FeedEntry]) -> List[CatalogEvent]:
        """One New event per feed entry, enriched with metadata when available."""
        slugs: List[Optional[str]] = []
        for entry in entries:
            parsed = parse_store_url(entry.item_url, self.store_base_url)
            slugs.append(parsed[1] if parsed else None)

        metadata = await asyncio.gather(*(self._lookup(slug) for slug in slugs))

        events = []
        for entry, slug, pkg in zip(entries, slugs, metadata):
            events.append(
                CatalogEvent(
                    id=entry.entry_id,
                    kind=EventKind.NEW,
                    slug=slug,
                    title=entry.title,
                    summary=entry.summary,
                    image_url=entry.image_url,
                    author_name=entry.author_name,
                    author_url=entry.author_url,
                    item_url=entry.item_url,
                    occurred_at=entry.published_at,
                    platforms=tuple(pkg.platforms) if pkg else DEFAULT_PLATFORMS,
                    version=pkg.version if pkg else None,
                    categories=pkg.categories if pkg else None,
                )
            )
        return events

    async def _lookup(self, slug: Optional[str]) -> Optional[ItemMetadata]:
        if not slug:
            return None
        return await self.metadata_source.fetch_metadata(slug)

    # -------------------------------------------------------------------------
    # Updated + Removed
    # -------------------------------------------------------------------------

    async def classify(
        self,
        records: Sequence[ChangeRecord],
        feed_dates: Optional[Mapping[str, datetime]] = None,
    ) -> ClassificationResult:
        """
        Classify pull requests into Updated and Removed events.

        Args:
            records: Pull requests in source order (most recently updated first)
            feed_dates: slug -> publish date of this pass's New events

        Returns:
            ClassificationResult with unordered per-kind lists
        """
        feed_dates = feed_dates or {}
        merged = [r for r in records if r.is_merged]

        candidates = [r for r in merged if is_removal_candidate(r)]
        regular = [r for r in merged if not is_removal_candidate(r)]

        logger.info(
            f"Classifying {len(merged)} merged PRs "
            f"({len(records) - len(merged)} unmerged skipped, "
            f"{len(candidates)} removal candidates)"
        )

        updated, removed = await asyncio.gather(
            self._classify_updates(regular, feed_dates),
            self._classify_removals(candidates),
        )

        logger.info(f"Classified {len(updated)} updated, {len(removed)} removed")
        return ClassificationResult(updated=updated, removed=removed)

    async def _classify_updates(
        self,
        records: List[ChangeRecord],
        feed_dates: Mapping[str, datetime],
    ) -> List[CatalogEvent]:
        resolved = await self._resolve_slugs(records)
        survivors = self._select_updates(resolved, feed_dates)

        metadata = await asyncio.gather(
            *(self.metadata_source.fetch_metadata(slug) for _, slug in survivors)
        )
        return [
            self._updated_event(record, slug, pkg)
            for (record, slug), pkg in zip(survivors, metadata)
        ]

    async def _resolve_slugs(
        self, records: List[ChangeRecord]
    ) -> List[Tuple[ChangeRecord, Optional[str]]]:
        """Title heuristics first, then one concurrent round of path fallbacks."""
        slugs: List[Optional[str]] = [resolve_slug(r) for r in records]

        pending = [i for i, slug in enumerate(slugs) if slug is None]
        if pending:
            fallback = await asyncio.gather(
                *(
                    resolve_slug_from_changed_paths(records[i].reference_id, self.files_source)
                    for i in pending
                )
            )
            # gather keeps argument order, so results map back by index
            for i, slug in zip(pending, fallback):
                slugs[i] = slug

        return list(zip(records, slugs))

    def _select_updates(
        self,
        resolved: List[Tuple[ChangeRecord, Optional[str]]],
        feed_dates: Mapping[str, datetime],
    ) -> List[Tuple[ChangeRecord, str]]:
        seen: set[str] = set()
        survivors: List[Tuple[ChangeRecord, str]] = []

        for record, slug in resolved:
            if not slug:
                logger.debug(f"PR #{record.reference_id}: no slug, dropped")
                continue

            published_at = feed_dates.get(slug)
            if published_at is not None and record.merged_at <= published_at:
                logger.debug(
                    f"PR #{record.reference_id}: {slug} merged before feed entry, skipped"
                )
                continue

            if slug in seen:
                logger.debug(f"PR #{record.reference_id}: {slug} already claimed")
                continue

            seen.add(slug)
            survivors.append((record, slug))

        return survivors

    def _updated_event(
        self,
        record: ChangeRecord,
        slug: str,
        pkg: Optional[ItemMetadata],
    ) -> CatalogEvent:
        owner = pkg.owner if pkg else record.author_login
        title = pkg.title if pkg else slug_to_title(slug)
        summary = (pkg.description if pkg else "") or record.title
        icon = icon_url(slug, pkg.icon) if pkg and pkg.icon else ""

        return CatalogEvent(
            id=f"pr-{record.reference_id}",
            kind=EventKind.UPDATED,
            slug=slug,
            title=title,
            summary=summary,
            image_url=icon or record.author_avatar,
            author_name=record.author_login,
            author_url=record.author_url,
            item_url=build_store_url(owner, slug, self.store_base_url),
            occurred_at=record.merged_at,
            source_ref=record.source_ref or None,
            platforms=tuple(pkg.platforms) if pkg else DEFAULT_PLATFORMS,
            version=pkg.version if pkg else None,
            categories=pkg.categories if pkg else None,
        )

    async def _classify_removals(self, candidates: List[ChangeRecord]) -> List[CatalogEvent]:
        slug_sets = await asyncio.gather(
            *(resolve_removed_slugs(r.reference_id, self.files_source) for r in candidates)
        )

        # First candidate (input order) claims each slug
        seen: set[str] = set()
        claims: List[Tuple[ChangeRecord, str]] = []
        for record, slugs in zip(candidates, slug_sets):
            for slug in slugs:
                if slug in seen:
                    continue
                seen.add(slug)
                claims.append((record, slug))

        metadata = await asyncio.gather(
            *(self.metadata_source.fetch_metadata(slug) for _, slug in claims)
        )

        removed = []
        for (record, slug), pkg in zip(claims, metadata):
            if pkg is not None:
                logger.debug(
                    f"PR #{record.reference_id}: {slug} still has a package.json, not removed"
                )
                continue
            removed.append(self._removed_event(record, slug))
        return removed

    def _removed_event(self, record: ChangeRecord, slug: str) -> CatalogEvent:
        return CatalogEvent(
            id=f"pr-{record.reference_id}-removed-{slug}",
            kind=EventKind.REMOVED,
            slug=slug,
            title=slug_to_title(slug),
            summary=REMOVED_SUMMARY,
            image_url=record.author_avatar,
            author_name=record.author_login,
            author_url=record.author_url,
            item_url=record.source_ref,
            occurred_at=record.merged_at,
            source_ref=record.source_ref or None,
        )
