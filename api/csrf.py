"""
api/csrf.py -- Double-submit CSRF protection, applied to every request before routing.

  1. If the request has no XSRF-TOKEN cookie, mint 256 random bits (hex) and
     set the cookie on the response. Page script can read it; other origins
     cannot.
  2. For state-changing methods (anything but GET/HEAD/OPTIONS), the
     X-XSRF-TOKEN header must equal the cookie the browser sent. A forged
     cross-site request carries the cookie but cannot know its value, so it
     cannot produce the header.

The token is exposed on request.state.csrf_token for GET /auth/csrf.
A freshly minted token is not in the request yet, so an unsafe request
without a prior cookie is rejected.
"""

from __future__ import annotations

import logging
import secrets

from fastapi import Request
from fastapi.responses import JSONResponse

from api.models import ErrorDetail, ErrorResponse
from auth.cookies import CSRF_COOKIE, CSRF_HEADER, CookiePolicy, set_csrf_cookie

logger = logging.getLogger("chefflow.api.csrf")

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})
CSRF_EXEMPT_PATHS = frozenset({"/auth/csrf"})


def generate_csrf_token() -> str:
    return secrets.token_hex(32)


def csrf_tokens_match(cookie_token: str | None, header_token: str | None) -> bool:
    if not cookie_token or not header_token:
        return False
    return secrets.compare_digest(cookie_token.encode("utf-8"), header_token.encode("utf-8"))


async def csrf_protect(request: Request, call_next):
    """HTTP middleware: mint the CSRF cookie when absent, verify it on unsafe methods."""
    policy = CookiePolicy.from_settings(request.app.state.settings)
    cookie_token = request.cookies.get(CSRF_COOKIE)
    minted = None
    if not cookie_token:
        minted = generate_csrf_token()
    request.state.csrf_token = cookie_token or minted

    if request.method not in SAFE_METHODS and request.url.path not in CSRF_EXEMPT_PATHS:
        if not csrf_tokens_match(cookie_token, request.headers.get(CSRF_HEADER)):
            logger.warning("CSRF check failed: %s %s", request.method, request.url.path)
            response = JSONResponse(
                status_code=403,
                content=ErrorResponse(
                    error=ErrorDetail(code="csrf_invalid", message="Invalid CSRF token")
                ).model_dump(exclude_none=True),
            )
            if minted:
                set_csrf_cookie(response, minted, policy)
            return response

    response = await call_next(request)
    if minted:
        set_csrf_cookie(response, minted, policy)
    return response
