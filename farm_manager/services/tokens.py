"""CSRF token generation and comparison."""

from __future__ import annotations

import base64
import secrets
from typing import Optional

TOKEN_BYTES = 32


def new_token() -> str:
    """Generate a URL-safe random token (32 bytes, unpadded base64url)."""
    raw = secrets.token_bytes(TOKEN_BYTES)
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def decode_token(token: str) -> bytes:
    """Decode a token produced by :func:`new_token` back to its raw bytes."""
    padding = "=" * (-len(token) % 4)
    return base64.urlsafe_b64decode(token + padding)


def tokens_match(expected: Optional[str], provided: Optional[str]) -> bool:
    """Constant-time comparison of two token strings.

    Empty or missing values never match. ``compare_digest`` rejects
    non-ASCII str input, so both sides are compared as UTF-8 bytes.
    """
    if not expected or not provided:
        return False
    return secrets.compare_digest(expected.encode("utf-8"), provided.encode("utf-8"))
