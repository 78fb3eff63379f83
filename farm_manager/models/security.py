"""Response models for the request guards and the health endpoint."""

from __future__ import annotations

from pydantic import BaseModel


class RateLimiterStats(BaseModel):
    """Statistics for the per-client rate limiter."""

    tracked_identities: int = 0
    requests_per_second: float = 10.0
    burst: float = 20.0


class CsrfTokenResponse(BaseModel):
    """CSRF token plus where to echo it back on mutating requests."""

    csrf_token: str
    header: str
    field: str


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str
    addr: str
    limiter: RateLimiterStats
