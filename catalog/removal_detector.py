"""
Removal detection for pull requests.

A pull request is a removal *candidate* when it carries the housekeeping
label or its title starts with "remove"/"removed". Candidacy is confirmed
per slug from the changed files: every file under extensions/{slug}/ must be
a deletion. Partial deletions (renames, refactors) are not removals.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, List

from catalog.models import ChangedFile, ChangeRecord
from catalog.slug_resolver import slug_from_path
from catalog.sources import ChangedFilesSource

logger = logging.getLogger(__name__)

HOUSEKEEPING_LABEL = "no-review"

_REMOVAL_TITLE_RE = re.compile(r"^removed?\b", re.IGNORECASE)


def is_removal_candidate(record: ChangeRecord) -> bool:
    if HOUSEKEEPING_LABEL in record.labels:
        return True
    return bool(_REMOVAL_TITLE_RE.match(record.title))


def fully_deleted_slugs(files: Iterable[ChangedFile]) -> List[str]:
    """Slugs whose every changed file is a deletion, in first-seen order."""
    by_slug: Dict[str, List[ChangedFile]] = {}
    for changed in files:
        slug = slug_from_path(changed.filename)
        if slug:
            by_slug.setdefault(slug, []).append(changed)

    return [
        slug
        for slug, slug_files in by_slug.items()
        if slug_files and all(f.is_deleted for f in slug_files)
    ]


async def resolve_removed_slugs(
    reference_id: int,
    files_source: ChangedFilesSource,
) -> List[str]:
    """
    Slugs entirely deleted by a pull request.

    Returned as an ordered, duplicate-free list. Empty on any fetch failure.
    """
    files = await files_source.list_changed_files(reference_id)
    if not files:
        return []

    slugs = fully_deleted_slugs(files)
    if slugs:
        logger.debug(f"PR #{reference_id}: fully deleted {slugs}")
    return slugs
