"""
Store change tracking core.

Reconciles the store's "new extensions" feed with the extensions
repository's pull requests into one classified stream of CatalogEvents:
- New: announced in the feed
- Updated: merged pull request touching an existing extension
- Removed: merged pull request deleting an extension's whole directory

Main components:
- slug_resolver / removal_detector: per-PR heuristics
- change_classifier.ChangeClassifier: reconciliation pass
- refresh_gate.RefreshGate: persisted manual-refresh throttle
- changelog.extract_latest_section: latest changelog entry
"""

from catalog.change_classifier import ChangeClassifier, new_item_dates, slug_to_title
from catalog.changelog import extract_latest_section
from catalog.models import (
    CatalogEvent,
    ChangedFile,
    ChangeRecord,
    ClassificationResult,
    EventKind,
    FeedEntry,
    ItemMetadata,
)
from catalog.refresh_gate import RefreshGate, RefreshState
from catalog.urls import create_store_deeplink, parse_store_url

__all__ = [
    "CatalogEvent",
    "ChangedFile",
    "ChangeClassifier",
    "ChangeRecord",
    "ClassificationResult",
    "EventKind",
    "FeedEntry",
    "ItemMetadata",
    "RefreshGate",
    "RefreshState",
    "create_store_deeplink",
    "extract_latest_section",
    "new_item_dates",
    "parse_store_url",
    "slug_to_title",
]

__version__ = "0.1.0"
