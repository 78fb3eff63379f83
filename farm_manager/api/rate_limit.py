"""Per-client rate limiting middleware for the farm-manager server."""

from __future__ import annotations

from typing import Optional

import structlog
from fastapi import Request
from fastapi.responses import PlainTextResponse

from farm_manager.services.limiter import UNKNOWN_IDENTITY, RateLimiter

logger = structlog.get_logger()


def _peer_ip(request: Request) -> Optional[str]:
    return getattr(getattr(request, "client", None), "host", None)


def client_identity(request: Request, trust_proxy: bool = False) -> str:
    """Resolve the rate-limit key for a request.

    With ``trust_proxy`` the first ``X-Forwarded-For`` hop (or ``X-Real-IP``)
    wins over the socket peer address.
    """
    if trust_proxy:
        forwarded = request.headers.get("x-forwarded-for", "")
        first = forwarded.split(",")[0].strip()
        if first:
            return first
        real_ip = request.headers.get("x-real-ip", "").strip()
        if real_ip:
            return real_ip
    return _peer_ip(request) or UNKNOWN_IDENTITY


def too_many_requests(retry_after: int) -> PlainTextResponse:
    return PlainTextResponse(
        "Too Many Requests",
        status_code=429,
        headers={"Retry-After": str(retry_after), "Cache-Control": "no-store"},
    )


class RateLimitMiddleware:
    """Token bucket admission filter applied to every request."""

    def __init__(self, limiter: RateLimiter, *, trust_proxy: bool = False):
        self.limiter = limiter
        self.trust_proxy = trust_proxy

    async def __call__(self, request: Request, call_next):  # noqa: ANN001
        identity = client_identity(request, self.trust_proxy)
        now = self.limiter.clock()
        if not self.limiter.allow(identity, now):
            retry_after = self.limiter.retry_after(identity, now)
            await logger.awarning(
                "Rate limit exceeded",
                identity=identity,
                path=request.url.path,
                method=request.method,
                retry_after=retry_after,
            )
            return too_many_requests(retry_after)
        return await call_next(request)
