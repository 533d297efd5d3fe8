"""Shared test fixtures.

Every test runs with process settings pointing into its own temporary
directory, so nothing reads or writes the working tree.
"""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from joebot.assistant.settings import _get_settings_cached


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Point JOE_* settings at ``tmp_path`` and invalidate the settings cache."""
    monkeypatch.setenv("JOE_CONFIG_PATH", str(tmp_path / "config.yml"))
    monkeypatch.setenv("JOE_SESSIONS_PATH", str(tmp_path / "sessions.json"))
    monkeypatch.setenv("JOE_EDITION", "ee")
    _get_settings_cached.cache_clear()
    yield
    _get_settings_cached.cache_clear()
