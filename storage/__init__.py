"""
Storage layer for store-updates.

Main components:
- KeyValueStore: async SQLite string key-value store
- kv_store: context manager handling initialize()/close()

Quick start:
    from storage import kv_store

    async with kv_store("store_updates.db") as store:
        await store.set_item("github-last-fetch-time", "1700000000000")
        print(await store.get_item("github-last-fetch-time"))
"""

from storage.kv_store import KeyValueStore, kv_store

__all__ = [
    "KeyValueStore",
    "kv_store",
]

__version__ = "1.0.0"
