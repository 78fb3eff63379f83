"""
Double-submit-cookie CSRF protection.

Safe requests get a token cookie issued transparently. Mutating requests under
the protected prefix must echo the cookie value back, either in the configured
header or in a form field named like the cookie.
"""

from __future__ import annotations

import structlog
from fastapi import Request, Response
from fastapi.responses import PlainTextResponse
from starlette.exceptions import HTTPException
from starlette.formparsers import MultiPartException

from farm_manager.services.config import DEFAULT_CSRF_COOKIE_NAME, DEFAULT_CSRF_HEADER_NAME
from farm_manager.services.tokens import new_token, tokens_match

logger = structlog.get_logger()

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "TRACE"})
FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")

# request.state attributes
_STATE_TOKEN = "csrf_token"
_STATE_ISSUED = "csrf_issued"


class CsrfGuard:
    """Issues and validates CSRF tokens. Holds no per-token server state."""

    def __init__(
        self,
        cookie_name: str = DEFAULT_CSRF_COOKIE_NAME,
        header_name: str = DEFAULT_CSRF_HEADER_NAME,
    ):
        self.cookie_name = cookie_name
        self.header_name = header_name

    def ensure_token(self, request: Request) -> str:
        """Return the request's CSRF token, issuing a new one if it has none.

        A newly issued token is remembered on ``request.state`` and written as
        a cookie by :class:`CsrfMiddleware` on the way out. Calling this more
        than once per request never rotates the token.
        """
        existing = request.cookies.get(self.cookie_name)
        if existing:
            return existing
        issued = getattr(request.state, _STATE_TOKEN, None)
        if issued:
            return issued
        token = new_token()
        setattr(request.state, _STATE_TOKEN, token)
        setattr(request.state, _STATE_ISSUED, True)
        return token

    def set_cookie(self, response: Response, token: str, *, secure: bool) -> None:
        # No max_age/expires: session cookie.
        response.set_cookie(
            self.cookie_name,
            token,
            path="/",
            httponly=True,
            samesite="lax",
            secure=secure,
        )

    async def validate(self, request: Request) -> bool:
        """True when the header or form field equals the CSRF cookie.

        Only urlencoded and multipart bodies are searched for the field. Query
        strings and JSON bodies never carry the token, so a cross-site link or
        a script-built JSON payload cannot stand in for the form.
        """
        cookie = request.cookies.get(self.cookie_name)
        if not cookie:
            return False

        if tokens_match(cookie, request.headers.get(self.header_name)):
            return True

        content_type = request.headers.get("content-type", "").lower()
        if not content_type.startswith(FORM_CONTENT_TYPES):
            return False

        # Buffer the body first so downstream handlers can parse the form again.
        await request.body()
        try:
            form = await request.form()
        except (MultiPartException, HTTPException):
            return False
        value = form.get(self.cookie_name)
        return isinstance(value, str) and tokens_match(cookie, value)


def forbidden() -> PlainTextResponse:
    return PlainTextResponse(
        "Forbidden: invalid CSRF token",
        status_code=403,
        headers={"Cache-Control": "no-store"},
    )


class CsrfMiddleware:
    """Issue tokens on safe methods, validate them on mutating ones.

    Validation only applies under ``protected_prefix``; token issuance and the
    cookie write apply to every request.
    """

    def __init__(self, guard: CsrfGuard, *, protected_prefix: str = "/"):
        self.guard = guard
        self.protected_prefix = protected_prefix

    def _is_protected(self, path: str) -> bool:
        prefix = self.protected_prefix.rstrip("/")
        return not prefix or path == prefix or path.startswith(prefix + "/")

    async def __call__(self, request: Request, call_next):  # noqa: ANN001
        method = request.method.upper()
        if method in SAFE_METHODS:
            self.guard.ensure_token(request)
        elif self._is_protected(request.url.path):
            if not await self.guard.validate(request):
                await logger.awarning(
                    "CSRF validation failed",
                    path=request.url.path,
                    method=method,
                    has_cookie=self.guard.cookie_name in request.cookies,
                )
                return forbidden()

        response = await call_next(request)

        if getattr(request.state, _STATE_ISSUED, False):
            self.guard.set_cookie(
                response,
                request.state.csrf_token,
                secure=request.url.scheme == "https",
            )
        return response


def csrf_token(request: Request) -> str:
    """Token to embed in forms rendered for this request."""
    return request.app.state.csrf_guard.ensure_token(request)


def set_no_cache(response: Response) -> None:
    """Forbid caching of the response; used on auth flows."""
    response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, max-age=0"
    response.headers["Pragma"] = "no-cache"
    response.headers["Expires"] = "Thu, 01 Jan 1970 00:00:00 GMT"
