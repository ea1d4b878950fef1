"""
Fetch layer for store-updates.

Each fetcher:
- Wraps one upstream source (store feed, GitHub pulls, raw package content)
- Retries transient failures and applies per-API rate limiting
- Degrades to None/empty on failure ("not found" is a normal outcome)
- Raises RateLimitExceeded only where the caller asked for it
"""

__version__ = "0.1.0"
