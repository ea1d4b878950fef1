"""
Extension slug resolution for pull requests.

Priority order (first match wins):
1. Label "extension: Name"
2. Title prefix "Name: description" (unless the prefix is a commit verb)
3. Title prefix "[Name] description"
4. Changed file paths extensions/{slug}/... (async, plurality by file count)

Titles are written by humans and are unreliable; file paths are authoritative
because every extension lives in its own directory.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from typing import Iterable, Optional

from catalog.models import ChangedFile, ChangeRecord
from catalog.sources import ChangedFilesSource

logger = logging.getLogger(__name__)

_LABEL_RE = re.compile(r"^extension:\s*(.+)$", re.IGNORECASE)
_COLON_PREFIX_RE = re.compile(r"^([^:]+):\s")
_BRACKET_PREFIX_RE = re.compile(r"^\[([^\]]+)\]")
_COMMIT_VERB_RE = re.compile(
    r"^(fix|feat|chore|docs|ci|build|refactor|test|style|perf|revert|bump|update|add|remove|merge)",
    re.IGNORECASE,
)
EXTENSION_PATH_RE = re.compile(r"^extensions/([^/]+)/")

_whitespace_re = re.compile(r"\s+")


def normalize_slug(name: str) -> str:
    """'Foo Bar ' -> 'foo-bar'"""
    return _whitespace_re.sub("-", name.strip().lower())


def slug_from_path(filename: str) -> Optional[str]:
    match = EXTENSION_PATH_RE.match(filename)
    return match.group(1) if match else None


def resolve_slug(record: ChangeRecord) -> Optional[str]:
    """
    Resolve a slug from labels and title alone.

    Returns None when no heuristic applies; the caller should then fall back
    to resolve_slug_from_changed_paths().
    """
    for label in record.labels:
        match = _LABEL_RE.match(label)
        if match:
            return normalize_slug(match.group(1))

    title = record.title

    colon = _COLON_PREFIX_RE.match(title)
    if colon:
        name = colon.group(1).strip()
        # "fix: ..." describes the change, not the extension
        if not _COMMIT_VERB_RE.match(name):
            return normalize_slug(name)

    bracket = _BRACKET_PREFIX_RE.match(title)
    if bracket:
        return normalize_slug(bracket.group(1))

    return None


def plurality_slug(files: Iterable[ChangedFile]) -> Optional[str]:
    """
    Slug with the most changed files. Ties go to the first slug seen.
    """
    counts: Counter[str] = Counter()
    for changed in files:
        slug = slug_from_path(changed.filename)
        if slug:
            counts[slug] += 1

    best_slug: Optional[str] = None
    best_count = 0
    # Counter preserves insertion order, so strict > keeps the first on ties
    for slug, count in counts.items():
        if count > best_count:
            best_slug, best_count = slug, count
    return best_slug


async def resolve_slug_from_changed_paths(
    reference_id: int,
    files_source: ChangedFilesSource,
) -> Optional[str]:
    """Resolve a slug from the pull request's changed files. None on failure."""
    files = await files_source.list_changed_files(reference_id)
    if not files:
        return None

    slug = plurality_slug(files)
    logger.debug(f"PR #{reference_id}: path fallback resolved slug {slug!r}")
    return slug
