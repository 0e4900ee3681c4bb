"""Pytest configuration and fixtures for epubkit tests.

Test isolation strategy:
- Settings are re-read from the environment for every test
- Book/chapter logging context is cleared between tests
- EPUBKIT_* variables from the developer's shell never leak into tests
"""

import os
from collections.abc import Generator

import pytest

from epubkit.config import Settings, clear_settings_cache
from epubkit.logging import clear_book_context
from tests.helpers import make_settings


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch) -> Generator[None, None, None]:
    """Strip EPUBKIT_* variables and reset cached settings around each test."""
    for key in list(os.environ):
        if key.startswith("EPUBKIT_"):
            monkeypatch.delenv(key, raising=False)
    clear_settings_cache()
    yield
    clear_settings_cache()
    clear_book_context()


@pytest.fixture
def settings() -> Settings:
    """Default settings, independent of any .env file."""
    return make_settings()
