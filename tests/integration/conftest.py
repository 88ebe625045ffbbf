"""Integration test configuration.

Tests marked ``@pytest.mark.integration`` talk to a live proxy or the
live provider.  Run them with:
``INTEGRATION=1 pytest tests/integration/ -m integration``
"""

import os

import pytest

from genai_relay.core.config import Settings

# ── Auto-skip when INTEGRATION env not set ──────────────────────────────────


def pytest_collection_modifyitems(config, items):
    """Auto-skip integration tests when INTEGRATION env var is not set."""
    if os.environ.get("INTEGRATION", "").lower() in ("1", "true", "yes"):
        return
    skip_marker = pytest.mark.skip(reason="Set INTEGRATION=1 to run integration tests with live services")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_marker)


@pytest.fixture
def live_settings() -> Settings:
    """Real settings read from the environment."""
    return Settings()
