"""Central configuration for the farm-manager web server."""

from __future__ import annotations

import os
from functools import lru_cache

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

# Load .env file before reading any env vars
load_dotenv()

APP_VERSION = "0.1.0"

DEFAULT_RATE_LIMIT_RPS = 10
DEFAULT_RATE_LIMIT_BURST = 20
DEFAULT_CSRF_COOKIE_NAME = "csrf_token"
DEFAULT_CSRF_HEADER_NAME = "X-CSRF-Token"


def env_positive_int(name: str, default: int) -> int:
    """Read a positive integer from the environment.

    Missing, non-numeric, zero or negative values fall back to ``default``.
    """
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def env_str(name: str, default: str) -> str:
    return os.getenv(name, "").strip() or default


def env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Core
    env: str = Field(default_factory=lambda: env_str("APP_ENV", "development"))
    host: str = Field(default_factory=lambda: env_str("APP_HOST", "0.0.0.0"))
    port: int = Field(default_factory=lambda: env_positive_int("PORT", 3000))
    base_path: str = Field(
        default_factory=lambda: env_str("APP_BASE_PATH", "/app"), validate_default=True
    )

    # Rate limiting
    rate_limit_rps: int = Field(
        default_factory=lambda: env_positive_int("RATE_LIMIT_RPS", DEFAULT_RATE_LIMIT_RPS)
    )
    rate_limit_burst: int = Field(
        default_factory=lambda: env_positive_int("RATE_LIMIT_BURST", DEFAULT_RATE_LIMIT_BURST)
    )
    rate_limit_trust_proxy: bool = Field(
        default_factory=lambda: env_bool("RATE_LIMIT_TRUST_PROXY")
    )
    rate_limit_idle_ttl: int = Field(
        default_factory=lambda: env_positive_int("RATE_LIMIT_IDLE_TTL", 600)
    )
    rate_limit_sweep_interval: int = Field(
        default_factory=lambda: env_positive_int("RATE_LIMIT_SWEEP_INTERVAL", 60)
    )

    # CSRF
    csrf_cookie_name: str = Field(
        default_factory=lambda: env_str("CSRF_COOKIE_NAME", DEFAULT_CSRF_COOKIE_NAME)
    )
    csrf_header_name: str = Field(
        default_factory=lambda: env_str("CSRF_HEADER_NAME", DEFAULT_CSRF_HEADER_NAME)
    )

    @field_validator("base_path")
    @classmethod
    def normalize_base_path(cls, v: str) -> str:
        """Routes and CSRF prefix matching expect '/app', never 'app' or '/app/'."""
        return "/" + v.strip().strip("/")

    @property
    def is_production(self) -> bool:
        return self.env == "production"

    @property
    def addr(self) -> str:
        return f"{self.host}:{self.port}"

    def validate_production_settings(self) -> list[str]:
        """Return warnings for questionable settings."""
        warnings: list[str] = []
        if self.base_path == "/":
            warnings.append("APP_BASE_PATH is '/'; every mutating request requires a CSRF token")
        if self.is_production and self.rate_limit_trust_proxy:
            warnings.append(
                "RATE_LIMIT_TRUST_PROXY is enabled; clients can pick their own "
                "rate-limit identity unless a proxy rewrites X-Forwarded-For"
            )
        if self.rate_limit_idle_ttl * self.rate_limit_rps < self.rate_limit_burst:
            warnings.append(
                "RATE_LIMIT_IDLE_TTL is shorter than a full bucket refill, so "
                "idle buckets will only be evicted once they have refilled"
            )
        return warnings


@lru_cache
def get_settings() -> Settings:
    return Settings()
