"""Shared test fixtures for the farm-manager test suite."""

from __future__ import annotations

import pytest

from farm_manager.services.config import Settings


class FakeClock:
    """A monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    """Return a fresh FakeClock."""
    return FakeClock()


@pytest.fixture
def make_settings():
    """Build Settings with test-friendly defaults, overridable per test."""

    def _make(**overrides) -> Settings:
        values = {
            "env": "test",
            "host": "127.0.0.1",
            "port": 3000,
            "base_path": "/app",
            "rate_limit_rps": 100,
            "rate_limit_burst": 1000,
            "rate_limit_trust_proxy": False,
            "rate_limit_idle_ttl": 600,
            "rate_limit_sweep_interval": 60,
            "csrf_cookie_name": "csrf_token",
            "csrf_header_name": "X-CSRF-Token",
        }
        values.update(overrides)
        return Settings(**values)

    return _make


@pytest.fixture
def settings(make_settings):
    return make_settings()
