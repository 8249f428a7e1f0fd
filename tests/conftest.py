"""Shared test configuration."""

import pytest

from datalab.config import get_settings


@pytest.fixture(autouse=True)
def _settings_cache():
    """Settings are cached process-wide; start every test from the environment."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
