"""Tests for environment-driven settings."""

from __future__ import annotations

import pytest

from farm_manager.services.config import Settings, env_bool, env_positive_int

_ENV_VARS = (
    "APP_ENV",
    "APP_BASE_PATH",
    "PORT",
    "RATE_LIMIT_RPS",
    "RATE_LIMIT_BURST",
    "RATE_LIMIT_TRUST_PROXY",
    "RATE_LIMIT_IDLE_TTL",
    "RATE_LIMIT_SWEEP_INTERVAL",
    "CSRF_COOKIE_NAME",
    "CSRF_HEADER_NAME",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestDefaults:
    def test_defaults(self):
        settings = Settings()
        assert settings.rate_limit_rps == 10
        assert settings.rate_limit_burst == 20
        assert settings.csrf_cookie_name == "csrf_token"
        assert settings.csrf_header_name == "X-CSRF-Token"
        assert settings.base_path == "/app"
        assert settings.port == 3000
        assert settings.rate_limit_trust_proxy is False

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("RATE_LIMIT_RPS", "5")
        monkeypatch.setenv("RATE_LIMIT_BURST", "7")
        monkeypatch.setenv("CSRF_COOKIE_NAME", "xsrf")
        monkeypatch.setenv("CSRF_HEADER_NAME", "X-XSRF-Token")
        monkeypatch.setenv("RATE_LIMIT_TRUST_PROXY", "true")
        settings = Settings()
        assert settings.rate_limit_rps == 5
        assert settings.rate_limit_burst == 7
        assert settings.csrf_cookie_name == "xsrf"
        assert settings.csrf_header_name == "X-XSRF-Token"
        assert settings.rate_limit_trust_proxy is True


class TestPositiveInt:
    @pytest.mark.parametrize("raw", ["", "abc", "0", "-3", "1.5", "   "])
    def test_invalid_values_fall_back_silently(self, monkeypatch, raw):
        monkeypatch.setenv("RATE_LIMIT_RPS", raw)
        assert env_positive_int("RATE_LIMIT_RPS", 10) == 10

    def test_valid_value(self, monkeypatch):
        monkeypatch.setenv("RATE_LIMIT_BURST", " 42 ")
        assert env_positive_int("RATE_LIMIT_BURST", 20) == 42

    def test_invalid_burst_in_settings(self, monkeypatch):
        monkeypatch.setenv("RATE_LIMIT_BURST", "lots")
        assert Settings().rate_limit_burst == 20


class TestBool:
    @pytest.mark.parametrize("raw,expected", [("1", True), ("yes", True), ("TRUE", True), ("no", False), ("0", False)])
    def test_parsing(self, monkeypatch, raw, expected):
        monkeypatch.setenv("RATE_LIMIT_TRUST_PROXY", raw)
        assert env_bool("RATE_LIMIT_TRUST_PROXY") is expected


class TestValidation:
    def test_no_warnings_for_defaults(self):
        assert Settings().validate_production_settings() == []

    def test_root_base_path_warns(self, monkeypatch):
        monkeypatch.setenv("APP_BASE_PATH", "/")
        warnings = Settings().validate_production_settings()
        assert any("APP_BASE_PATH" in w for w in warnings)

    @pytest.mark.parametrize("raw", ["app", "/app/", " /app "])
    def test_base_path_is_normalized(self, monkeypatch, raw):
        monkeypatch.setenv("APP_BASE_PATH", raw)
        assert Settings().base_path == "/app"

    def test_short_idle_ttl_warns(self, monkeypatch):
        monkeypatch.setenv("RATE_LIMIT_IDLE_TTL", "1")
        monkeypatch.setenv("RATE_LIMIT_RPS", "1")
        warnings = Settings().validate_production_settings()
        assert any("RATE_LIMIT_IDLE_TTL" in w for w in warnings)

    def test_proxy_trust_in_production_warns(self, monkeypatch):
        monkeypatch.setenv("APP_ENV", "production")
        monkeypatch.setenv("RATE_LIMIT_TRUST_PROXY", "1")
        warnings = Settings().validate_production_settings()
        assert any("RATE_LIMIT_TRUST_PROXY" in w for w in warnings)
