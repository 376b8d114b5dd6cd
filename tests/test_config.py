"""
Tests for environment-driven settings.
"""

from __future__ import annotations

import pytest

from query_monitor.config import Settings


def test_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("POLL_INTERVAL_SECONDS", raising=False)
    monkeypatch.delenv("DASHBOARD_IDLE_TTL_SECONDS", raising=False)
    settings = Settings(_env_file=None)
    assert settings.POLL_INTERVAL_SECONDS == 3.0
    assert settings.RATE_HISTORY_CAPACITY == 30
    assert settings.HISTOGRAM_MAX_BUCKETS == 175
    assert settings.DASHBOARD_IDLE_TTL_SECONDS == 300.0


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("COORDINATOR_URL", "http://coordinator:8080")
    monkeypatch.setenv("POLL_INTERVAL_SECONDS", "1.5")
    settings = Settings(_env_file=None)
    assert settings.COORDINATOR_URL == "http://coordinator:8080"
    assert settings.POLL_INTERVAL_SECONDS == 1.5
