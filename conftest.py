"""
Root-level pytest configuration for store-updates.

Configures:
- pytest-asyncio for async test support
- Custom markers (integration, etc.)
- Fresh global rate limiters per test
"""

import pytest

from utils.rate_limiter import reset_limiters


def pytest_configure(config):
    """Register custom markers to avoid warnings."""
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests (may require network access)"
    )


pytest_plugins = ["pytest_asyncio"]


@pytest.fixture(autouse=True)
def _fresh_rate_limiters():
    """Limiters are process-global; don't let one test's tokens leak into another."""
    reset_limiters()
    yield
    reset_limiters()
