"""
Shared pytest fixtures and configuration for cadence tests.

This module provides:
- Settings isolation (no CADENCE_* variables leak between tests)
- structlog reset after tests that reconfigure logging
- Auto-marking of tests by location

Usage:
    Fixtures are auto-discovered by pytest. Scheduling-specific fixtures
    (manual clock, recorder callbacks) live in ``tests/scheduling/conftest.py``.
"""

import os
import sys
from collections.abc import Generator
from pathlib import Path

import pytest
import structlog

# Ensure cadence package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from cadence.core import settings as settings_module


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        test_path = Path(item.fspath).relative_to(Path(__file__).parent)
        if test_path.parts and test_path.parts[0] == "cli":
            item.add_marker(pytest.mark.cli)


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "cli: command line tests")


# =============================================================================
# Isolation Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Drop CADENCE_* variables and the cached settings around each test."""
    for key in list(os.environ):
        if key.startswith("CADENCE_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(Path(__file__).parent)
    settings_module._settings_cache.clear()
    yield
    settings_module._settings_cache.clear()


@pytest.fixture(autouse=True)
def reset_structlog() -> Generator[None, None, None]:
    """Restore structlog defaults after tests that configure logging."""
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
