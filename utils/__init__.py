"""Shared helpers for store-updates (rate limiting)."""
