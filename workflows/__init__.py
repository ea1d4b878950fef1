"""
Workflows for store-updates

- store_updates.py: one reconciliation pass (gate -> fetch -> classify)

Usage:
    from workflows.store_updates import StoreUpdatesPipeline
    async with StoreUpdatesPipeline() as pipeline:
        outcome = await pipeline.refresh()
"""

# Lazy imports keep `import workflows` free of httpx/aiosqlite
__all__ = [
    "PipelineConfig",
    "PipelineStats",
    "RefreshOutcome",
    "StoreUpdatesPipeline",
]


def __getattr__(name):
    if name in __all__:
        from workflows import store_updates
        return getattr(store_updates, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
