"""
Shared test fixtures for pytest.

Provides common plugins and helpers for all test modules:
- clean settings: get_settings cache cleared and AGENTMOUNT_* env removed
- make_plugin: Build a StaticPlugin from manifest keyword arguments
- app_available / app_missing: Host app checkers for requirement tests
"""

from __future__ import annotations

import os

import pytest
import structlog

from agentmount.config import get_settings
from agentmount.plugins.base import StaticPlugin
from agentmount.plugins.manifest import Manifest


# ------------------------------------------------------------------ #
# Settings isolation
# ------------------------------------------------------------------ #


@pytest.fixture(autouse=True)
def _clean_settings(monkeypatch, tmp_path):
    """Clear the lru_cache on get_settings so test overrides take effect."""
    for name in list(os.environ):
        if name.startswith("AGENTMOUNT_"):
            monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
    structlog.contextvars.clear_contextvars()


# ------------------------------------------------------------------ #
# Plugin factories
# ------------------------------------------------------------------ #


@pytest.fixture
def make_plugin():
    """Return a factory building StaticPlugins from manifest fields."""

    def _make(name: str = "echo", base_state_key: str | None = None, **fields) -> StaticPlugin:
        return StaticPlugin(
            Manifest(name=name, base_state_key=base_state_key or name, **fields)
        )

    return _make


@pytest.fixture
def app_available():
    return lambda name: True


@pytest.fixture
def app_missing():
    return lambda name: False
