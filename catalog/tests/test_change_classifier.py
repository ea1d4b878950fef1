"""Tests for the Change Classifier reconciliation pass."""
import asyncio
import pytest
from datetime import datetime, timedelta, timezone

from catalog.change_classifier import (
    REMOVED_SUMMARY,
    ChangeClassifier,
    new_item_dates,
    slug_to_title,
)
from catalog.models import ChangedFile, ChangeRecord, EventKind, FeedEntry, ItemMetadata
from catalog.timeline import merge_timeline

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeFiles:
    """Changed files per PR number; unknown numbers fail (None)."""

    def __init__(self, files=None):
        self.files = files or {}
        self.calls = []

    async def list_changed_files(self, reference_id):
        self.calls.append(reference_id)
        await asyncio.sleep(0)
        return self.files.get(reference_id)


class FakeMetadata:
    """Metadata per slug; unknown slugs are "not found"."""

    def __init__(self, packages=None):
        self.packages = packages or {}
        self.calls = []

    async def fetch_metadata(self, slug):
        self.calls.append(slug)
        await asyncio.sleep(0)
        return self.packages.get(slug)


def make_pr(number, title, merged_at=T0, labels=None):
    return ChangeRecord(
        reference_id=number,
        title=title,
        merged_at=merged_at,
        author_login="octocat",
        author_url="https://github.com/octocat",
        author_avatar="https://avatars.example/octocat.png",
        labels=labels or [],
        source_ref=f"https://github.com/raycast/extensions/pull/{number}",
    )


def make_pkg(slug, **overrides):
    pkg = {"owner": "acme", "title": "Widget Pro", "description": "Widgets", "version": "1.2.0"}
    pkg.update(overrides)
    return ItemMetadata.from_package_json(slug, pkg)


def deleted(slug):
    return [ChangedFile(f"extensions/{slug}/package.json", "removed")]


class TestSlugToTitle:
    def test_capitalizes_words(self):
        assert slug_to_title("my-cool-ext") == "My Cool Ext"

    def test_single_word(self):
        assert slug_to_title("spotify") == "Spotify"


class TestUpdatedEvents:
    @pytest.mark.asyncio
    async def test_unmerged_records_discarded(self):
        classifier = ChangeClassifier(FakeFiles(), FakeMetadata())

        result = await classifier.classify([make_pr(1, "Widget: fix", merged_at=None)])

        assert result.updated == []
        assert result.removed == []

    @pytest.mark.asyncio
    async def test_updated_event_from_metadata(self):
        metadata = FakeMetadata({"widget": make_pkg("widget", icon="icon.png", platforms=["macOS", "Windows"])})
        classifier = ChangeClassifier(FakeFiles(), metadata)

        result = await classifier.classify([make_pr(10, "Widget: add command")])

        assert len(result.updated) == 1
        event = result.updated[0]
        assert event.id == "pr-10"
        assert event.kind is EventKind.UPDATED
        assert event.slug == "widget"
        assert event.title == "Widget Pro"
        assert event.summary == "Widgets"
        assert event.item_url == "https://www.raycast.com/acme/widget"
        assert event.image_url.endswith("/widget/assets/icon.png")
        assert event.author_name == "octocat"
        assert event.occurred_at == T0
        assert event.source_ref == "https://github.com/raycast/extensions/pull/10"
        assert event.platforms == ("macOS", "Windows")
        assert event.version == "1.2.0"

    @pytest.mark.asyncio
    async def test_updated_event_fallbacks_without_metadata(self):
        classifier = ChangeClassifier(FakeFiles(), FakeMetadata())

        result = await classifier.classify([make_pr(11, "Color Picker: tweak UI")])

        event = result.updated[0]
        assert event.title == "Color Picker"
        assert event.summary == "Color Picker: tweak UI"
        assert event.item_url == "https://www.raycast.com/octocat/color-picker"
        assert event.image_url == "https://avatars.example/octocat.png"
        assert event.platforms == ("macOS",)
        assert event.version is None
        assert event.categories is None

    @pytest.mark.asyncio
    async def test_first_record_wins_for_duplicate_slug(self):
        classifier = ChangeClassifier(FakeFiles(), FakeMetadata())
        records = [
            make_pr(20, "Widget: newest change", merged_at=T0),
            make_pr(19, "Widget: older change", merged_at=T0 - timedelta(days=1)),
        ]

        result = await classifier.classify(records)

        assert [e.id for e in result.updated] == ["pr-20"]

    @pytest.mark.asyncio
    async def test_path_fallback_respects_input_order(self):
        # PR 30 needs the path fallback but comes first, so it claims the slug
        files = FakeFiles({30: [ChangedFile("extensions/widget/src/a.ts", "modified")]})
        classifier = ChangeClassifier(files, FakeMetadata())
        records = [
            make_pr(30, "Improve things"),
            make_pr(29, "Widget: later in list"),
        ]

        result = await classifier.classify(records)

        assert [e.id for e in result.updated] == ["pr-30"]
        assert files.calls == [30]

    @pytest.mark.asyncio
    async def test_unresolvable_record_dropped(self):
        classifier = ChangeClassifier(FakeFiles(), FakeMetadata())

        result = await classifier.classify([make_pr(40, "Update dependencies")])

        assert result.updated == []

    @pytest.mark.asyncio
    async def test_merged_before_feed_date_is_not_an_update(self):
        classifier = ChangeClassifier(FakeFiles(), FakeMetadata())

        result = await classifier.classify(
            [make_pr(50, "Widget: initial release", merged_at=T0)],
            {"widget": T0},
        )

        assert result.updated == []

    @pytest.mark.asyncio
    async def test_merged_after_feed_date_is_an_update(self):
        classifier = ChangeClassifier(FakeFiles(), FakeMetadata())

        result = await classifier.classify(
            [make_pr(51, "Widget: follow-up", merged_at=T0 + timedelta(minutes=1))],
            {"widget": T0},
        )

        assert [e.id for e in result.updated] == ["pr-51"]

    @pytest.mark.asyncio
    async def test_feed_skipped_record_does_not_claim_slug(self):
        classifier = ChangeClassifier(FakeFiles(), FakeMetadata())
        records = [
            make_pr(60, "Widget: initial release", merged_at=T0 - timedelta(hours=1)),
            make_pr(61, "Widget: hotfix", merged_at=T0 + timedelta(hours=1)),
        ]

        result = await classifier.classify(records, {"widget": T0})

        assert [e.id for e in result.updated] == ["pr-61"]


class TestRemovedEvents:
    @pytest.mark.asyncio
    async def test_confirmed_removal(self):
        files = FakeFiles({70: deleted("old-tool")})
        classifier = ChangeClassifier(files, FakeMetadata())

        result = await classifier.classify([make_pr(70, "Remove old-tool")])

        assert result.updated == []
        assert len(result.removed) == 1
        event = result.removed[0]
        assert event.id == "pr-70-removed-old-tool"
        assert event.kind is EventKind.REMOVED
        assert event.title == "Old Tool"
        assert event.summary == REMOVED_SUMMARY
        assert event.item_url == "https://github.com/raycast/extensions/pull/70"
        assert event.image_url == "https://avatars.example/octocat.png"
        assert event.platforms == ("macOS",)
        assert event.version is None
        assert event.categories is None

    @pytest.mark.asyncio
    async def test_metadata_found_means_not_removed(self):
        files = FakeFiles({71: deleted("moved")})
        classifier = ChangeClassifier(files, FakeMetadata({"moved": make_pkg("moved")}))

        result = await classifier.classify([make_pr(71, "Remove moved", labels=["no-review"])])

        assert result.removed == []

    @pytest.mark.asyncio
    async def test_partial_deletion_is_not_removed(self):
        files = FakeFiles({72: [
            ChangedFile("extensions/half/a.ts", "removed"),
            ChangedFile("extensions/half/b.ts", "modified"),
        ]})
        classifier = ChangeClassifier(files, FakeMetadata())

        result = await classifier.classify([make_pr(72, "Remove half")])

        assert result.removed == []

    @pytest.mark.asyncio
    async def test_one_removed_event_per_slug(self):
        files = FakeFiles({80: deleted("gone"), 79: deleted("gone") + deleted("also-gone")})
        metadata = FakeMetadata()
        classifier = ChangeClassifier(files, metadata)

        result = await classifier.classify([
            make_pr(80, "Remove gone"),
            make_pr(79, "Removed gone and also-gone", labels=["no-review"]),
        ])

        assert sorted(e.id for e in result.removed) == [
            "pr-79-removed-also-gone",
            "pr-80-removed-gone",
        ]
        assert metadata.calls.count("gone") == 1

    @pytest.mark.asyncio
    async def test_removal_candidates_never_become_updates(self):
        files = FakeFiles({90: [ChangedFile("extensions/widget/old.ts", "removed"),
                                ChangedFile("extensions/widget/new.ts", "added")]})
        classifier = ChangeClassifier(files, FakeMetadata())

        result = await classifier.classify([make_pr(90, "Remove unused widget files")])

        assert result.updated == []
        assert result.removed == []


class TestNewEvents:
    @pytest.mark.asyncio
    async def test_new_events_with_metadata(self):
        metadata = FakeMetadata({"widget": make_pkg("widget", platforms=["Windows"], categories=["Productivity", " "])})
        classifier = ChangeClassifier(FakeFiles(), metadata)
        entries = [
            FeedEntry(
                entry_id="feed-1",
                item_url="https://www.raycast.com/acme/widget",
                title="Widget",
                summary="Do widget things",
                image_url="https://img.example/widget.png",
                published_at=T0,
                author_name="Acme",
                author_url="https://www.raycast.com/acme",
            ),
            FeedEntry(
                entry_id="feed-2",
                item_url="https://example.com/elsewhere",
                title="Odd",
                summary="",
                image_url="",
                published_at=T0 - timedelta(days=1),
                author_name="",
                author_url="",
            ),
        ]

        events = await classifier.build_new_events(entries)

        assert [e.id for e in events] == ["feed-1", "feed-2"]
        assert events[0].kind is EventKind.NEW
        assert events[0].slug == "widget"
        assert events[0].platforms == ("Windows",)
        assert events[0].categories == ["Productivity"]
        assert events[1].slug is None
        assert events[1].platforms == ("macOS",)
        assert metadata.calls == ["widget"]

        assert new_item_dates(events) == {"widget": T0}


class TestTimestamps:
    @pytest.mark.asyncio
    async def test_feed_date_without_offset_compares_as_utc(self):
        entry = FeedEntry.from_feed_item({
            "id": "feed-widget",
            "url": "https://www.raycast.com/acme/widget",
            "date_modified": "2026-03-01T12:00:00",
        })
        classifier = ChangeClassifier(FakeFiles(), FakeMetadata())
        new_events = await classifier.build_new_events([entry])
        records = [
            make_pr(2, "Widget: fix", merged_at=T0 + timedelta(hours=1)),
            make_pr(1, "Widget: initial", merged_at=T0),
        ]

        result = await classifier.classify(records, new_item_dates(new_events))

        assert [e.id for e in result.updated] == ["pr-2"]
        timeline = merge_timeline(new_events, result.updated)
        assert [e.id for e in timeline] == ["pr-2", "feed-widget"]


class TestBranchConcurrency:
    @pytest.mark.asyncio
    async def test_removals_do_not_wait_for_update_fallbacks(self):
        removal_started = asyncio.Event()

        class GatedFiles:
            """The update fallback only finishes once the removal branch has asked for files."""

            async def list_changed_files(self, reference_id):
                if reference_id == 1:
                    await asyncio.wait_for(removal_started.wait(), timeout=1.0)
                    return [ChangedFile("extensions/widget/src/index.ts", "modified")]
                removal_started.set()
                return deleted("gone")

        classifier = ChangeClassifier(GatedFiles(), FakeMetadata())

        result = await classifier.classify([
            make_pr(1, "Tidy up things"),
            make_pr(2, "Remove gone"),
        ])

        assert [e.id for e in result.updated] == ["pr-1"]
        assert [e.id for e in result.removed] == ["pr-2-removed-gone"]
