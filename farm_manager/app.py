"""
Main FastAPI application: the entry point for the farm-manager web server.

Wires together:
- Per-client rate limiting (every request)
- CSRF double-submit-cookie protection (application routes)
- Health and CSRF token routes
- Background eviction of idle rate-limit buckets
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from typing import Callable, Optional

import structlog
from fastapi import FastAPI
from starlette.middleware.base import BaseHTTPMiddleware

from farm_manager.api.csrf import CsrfGuard, CsrfMiddleware
from farm_manager.api.rate_limit import RateLimitMiddleware
from farm_manager.api.routes import build_app_router, router
from farm_manager.services.config import APP_VERSION, Settings, get_settings
from farm_manager.services.limiter import RateLimiter

logger = structlog.get_logger()


async def sweep_idle_buckets(limiter: RateLimiter, idle_ttl: float, interval: float) -> None:
    """Periodically drop rate-limit buckets nobody has used in a while."""
    while True:
        try:
            await asyncio.sleep(interval)
            removed = limiter.sweep(idle_ttl)
            if removed:
                await logger.adebug(
                    "Evicted idle rate-limit buckets", removed=removed, remaining=len(limiter)
                )
        except asyncio.CancelledError:
            break
        except Exception as e:
            await logger.aerror("Bucket sweep error", error=str(e))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    settings: Settings = app.state.settings

    for w in settings.validate_production_settings():
        await logger.awarning("Configuration warning", message=w)

    sweeper = asyncio.create_task(
        sweep_idle_buckets(
            app.state.rate_limiter,
            idle_ttl=settings.rate_limit_idle_ttl,
            interval=settings.rate_limit_sweep_interval,
        )
    )

    await logger.ainfo(
        "farm-manager started",
        env=settings.env,
        addr=settings.addr,
        base_path=settings.base_path,
        rate_limit_rps=settings.rate_limit_rps,
        rate_limit_burst=settings.rate_limit_burst,
        csrf_cookie=settings.csrf_cookie_name,
        csrf_header=settings.csrf_header_name,
    )

    yield

    sweeper.cancel()
    try:
        await sweeper
    except asyncio.CancelledError:
        pass
    await logger.ainfo("farm-manager shut down")


def create_app(
    settings: Optional[Settings] = None,
    clock: Callable[[], float] = time.monotonic,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()

    app = FastAPI(
        title="farm-manager",
        description="Farm management web server",
        version=APP_VERSION,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.rate_limiter = RateLimiter(
        requests_per_second=settings.rate_limit_rps,
        burst=settings.rate_limit_burst,
        clock=clock,
    )
    app.state.csrf_guard = CsrfGuard(
        cookie_name=settings.csrf_cookie_name,
        header_name=settings.csrf_header_name,
    )

    # The last middleware registered runs first: rate limiting wraps CSRF.
    app.add_middleware(
        BaseHTTPMiddleware,
        dispatch=CsrfMiddleware(app.state.csrf_guard, protected_prefix=settings.base_path),
    )
    app.add_middleware(
        BaseHTTPMiddleware,
        dispatch=RateLimitMiddleware(
            app.state.rate_limiter, trust_proxy=settings.rate_limit_trust_proxy
        ),
    )

    app.include_router(router)
    app.include_router(build_app_router(settings.base_path))

    return app
