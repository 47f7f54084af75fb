"""
auth/cookies.py -- Map session tokens onto HTTP cookies.

  accessToken  httpOnly, 15 minutes, path "/"
  Refresh      httpOnly, 7 days, path "/auth/refresh" -- the browser only
               sends it to the refresh endpoint, nowhere else
  XSRF-TOKEN   readable by page script (double-submit CSRF), session cookie

httponly=True: JS cannot read the session cookies (XSS mitigation).
secure / samesite: deployment-dependent, taken from Settings. max_age matches
the JWT expiry so cookie and token expire together.
"""

from __future__ import annotations

from dataclasses import dataclass

from starlette.responses import Response

from auth.models import TokenPair
from auth.tokens import ACCESS_TOKEN_TTL, REFRESH_TOKEN_TTL

ACCESS_COOKIE = "accessToken"
REFRESH_COOKIE = "Refresh"
REFRESH_COOKIE_PATH = "/auth/refresh"
CSRF_COOKIE = "XSRF-TOKEN"
CSRF_HEADER = "X-XSRF-TOKEN"


@dataclass(frozen=True)
class CookiePolicy:
    secure: bool = False
    samesite: str = "lax"

    @classmethod
    def from_settings(cls, settings) -> "CookiePolicy":
        return cls(secure=settings.secure_cookies, samesite=settings.cookie_samesite)


def set_auth_cookies(response: Response, tokens: TokenPair, policy: CookiePolicy) -> None:
    """Write both session cookies onto the response."""
    response.set_cookie(
        ACCESS_COOKIE,
        value=tokens.access_token,
        max_age=int(ACCESS_TOKEN_TTL.total_seconds()),
        path="/",
        httponly=True,
        secure=policy.secure,
        samesite=policy.samesite,
    )
    response.set_cookie(
        REFRESH_COOKIE,
        value=tokens.refresh_token,
        max_age=int(REFRESH_TOKEN_TTL.total_seconds()),
        path=REFRESH_COOKIE_PATH,
        httponly=True,
        secure=policy.secure,
        samesite=policy.samesite,
    )


def clear_auth_cookies(response: Response, policy: CookiePolicy) -> None:
    """Delete both session cookies. The refresh cookie needs its own path to match."""
    response.delete_cookie(
        ACCESS_COOKIE, path="/", httponly=True, secure=policy.secure, samesite=policy.samesite
    )
    response.delete_cookie(
        REFRESH_COOKIE,
        path=REFRESH_COOKIE_PATH,
        httponly=True,
        secure=policy.secure,
        samesite=policy.samesite,
    )


def set_csrf_cookie(response: Response, token: str, policy: CookiePolicy) -> None:
    # Not httpOnly: the frontend must read it to echo it in X-XSRF-TOKEN.
    response.set_cookie(
        CSRF_COOKIE,
        value=token,
        path="/",
        httponly=False,
        secure=policy.secure,
        samesite=policy.samesite,
    )
