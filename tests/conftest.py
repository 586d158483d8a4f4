"""Shared test fixtures for Passgate.

Provides common fixtures used across unit and integration tests.
"""

import pytest

from passgate.api.rate_limit import limiter
from passgate.settings import Settings
from tests.helpers.auth import make_test_settings


@pytest.fixture(autouse=True)
def _reset_rate_limits() -> None:
    """Every test starts with empty rate-limit buckets."""
    limiter.reset()


@pytest.fixture
def test_settings() -> Settings:
    """Provide test settings with safe defaults."""
    return make_test_settings()


@pytest.fixture
def mock_settings(test_settings: Settings, monkeypatch: pytest.MonkeyPatch) -> Settings:
    """Make get_settings() return the test settings."""
    from passgate import settings

    monkeypatch.setattr(settings, "get_settings", lambda: test_settings)
    return test_settings
