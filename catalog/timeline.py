"""
Ordering and filtering of classified events for display.
"""

from __future__ import annotations

from itertools import chain
from typing import Iterable, List, Union

from catalog.models import DEFAULT_PLATFORM, CatalogEvent, EventKind

ALL = "all"


def merge_timeline(*collections: Iterable[CatalogEvent]) -> List[CatalogEvent]:
    """Concatenate event collections, newest first."""
    return sorted(chain(*collections), key=lambda e: e.occurred_at, reverse=True)


def filter_by_kind(
    events: Iterable[CatalogEvent],
    kind: Union[EventKind, str] = ALL,
) -> List[CatalogEvent]:
    if kind == ALL:
        return list(events)
    kind = EventKind(kind)
    return [e for e in events if e.kind is kind]


def filter_by_platform(events: Iterable[CatalogEvent], platform: str = ALL) -> List[CatalogEvent]:
    """
    Keep events supporting a platform ("macOS", "windows", ... or "all").

    Events with no platform tags are treated as macOS-only.
    """
    if not platform or platform.lower() == ALL:
        return list(events)

    wanted = platform.lower()
    kept = []
    for event in events:
        if event.platforms:
            if event.has_platform(wanted):
                kept.append(event)
        elif wanted == DEFAULT_PLATFORM.lower():
            kept.append(event)
    return kept
