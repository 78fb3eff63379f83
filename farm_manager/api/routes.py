"""
HTTP routes owned by the request-guard layer.

Endpoints:
    GET    /healthz              - Liveness plus rate limiter statistics
    GET    {base_path}/csrf      - Current CSRF token and where to echo it
"""

from __future__ import annotations

from fastapi import APIRouter, Request, Response

from farm_manager.api.csrf import csrf_token, set_no_cache
from farm_manager.models.security import CsrfTokenResponse, HealthResponse
from farm_manager.services.config import APP_VERSION

router = APIRouter()


@router.get("/healthz", response_model=HealthResponse)
async def health_check(request: Request):
    """Infra health check. Not under the CSRF-protected prefix."""
    settings = request.app.state.settings
    return HealthResponse(
        version=APP_VERSION,
        addr=settings.addr,
        limiter=request.app.state.rate_limiter.get_stats(),
    )


def build_app_router(base_path: str) -> APIRouter:
    """Routes mounted under the application base path."""
    app_router = APIRouter(prefix=base_path.rstrip("/"))

    @app_router.get("/csrf", response_model=CsrfTokenResponse)
    async def get_csrf_token(request: Request, response: Response):
        """Return the CSRF token for scripts that send it as a header."""
        guard = request.app.state.csrf_guard
        set_no_cache(response)
        return CsrfTokenResponse(
            csrf_token=csrf_token(request),
            header=guard.header_name,
            field=guard.cookie_name,
        )

    return app_router
