"""Tests for KeyValueStore - persisted string key-value storage."""
import pytest

from storage.kv_store import KeyValueStore, kv_store


class TestKeyValueStore:
    """Test suite for KeyValueStore."""

    @pytest.mark.asyncio
    async def test_set_and_get(self):
        """Should store and return string values."""
        store = KeyValueStore(":memory:")
        await store.initialize()

        await store.set_item("github-last-fetch-time", "1700000000000")

        assert await store.get_item("github-last-fetch-time") == "1700000000000"

        await store.close()

    @pytest.mark.asyncio
    async def test_missing_key_is_none(self):
        store = KeyValueStore(":memory:")
        await store.initialize()

        assert await store.get_item("nope") is None

        await store.close()

    @pytest.mark.asyncio
    async def test_set_overwrites(self):
        """Upsert keeps one row per key."""
        store = KeyValueStore(":memory:")
        await store.initialize()

        await store.set_item("k", "1")
        await store.set_item("k", "2")

        assert await store.get_item("k") == "2"
        assert await store.all_items() == {"k": "2"}

        await store.close()

    @pytest.mark.asyncio
    async def test_remove_item(self):
        store = KeyValueStore(":memory:")
        await store.initialize()

        await store.set_item("k", "1")
        await store.remove_item("k")
        await store.remove_item("never-set")

        assert await store.get_item("k") is None

        await store.close()

    @pytest.mark.asyncio
    async def test_requires_initialize(self):
        store = KeyValueStore(":memory:")

        with pytest.raises(RuntimeError):
            await store.get_item("k")

    @pytest.mark.asyncio
    async def test_values_persist_across_connections(self, tmp_path):
        """A file-backed store survives close/reopen."""
        db_path = tmp_path / "nested" / "state.db"

        async with kv_store(db_path) as store:
            await store.set_item("github-rate-limit-reset", "1700000360000")

        async with kv_store(db_path) as store:
            assert await store.get_item("github-rate-limit-reset") == "1700000360000"

        assert db_path.exists()
