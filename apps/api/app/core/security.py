from __future__ import annotations

import base64
import hashlib
import hmac
import os

from fastapi import Response

from app.core.config import get_settings


def new_random_token(*, nbytes: int = 32) -> str:
    """URL-safe token without padding, short enough for a cookie or header."""
    return base64.urlsafe_b64encode(os.urandom(nbytes)).decode("ascii").rstrip("=")


def hash_session_token(token: str) -> bytes:
    # Keyed so a leaked sessions table alone cannot be replayed.
    key = get_settings().SESSION_SECRET.encode("utf-8")
    return hmac.new(key, token.encode("utf-8"), hashlib.sha256).digest()


def tokens_match(expected: str | None, provided: str | None) -> bool:
    if not expected or not provided:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), provided.encode("utf-8"))


def _cookie(response: Response, name: str, value: str, *, httponly: bool) -> None:
    settings = get_settings()
    response.set_cookie(
        key=name,
        value=value,
        max_age=settings.SESSION_TTL_SECONDS,
        path="/",
        domain=settings.COOKIE_DOMAIN,
        secure=settings.COOKIE_SECURE,
        httponly=httponly,
        samesite=settings.COOKIE_SAMESITE,
    )


def set_session_cookie(response: Response, token: str) -> None:
    _cookie(response, get_settings().SESSION_COOKIE_NAME, token, httponly=True)


def set_csrf_cookie(response: Response, token: str) -> None:
    # The browser app reads this one and echoes it in the CSRF header.
    _cookie(response, get_settings().CSRF_COOKIE_NAME, token, httponly=False)


def clear_auth_cookies(response: Response) -> None:
    settings = get_settings()
    for name in (settings.SESSION_COOKIE_NAME, settings.CSRF_COOKIE_NAME):
        response.delete_cookie(key=name, domain=settings.COOKIE_DOMAIN, path="/")
