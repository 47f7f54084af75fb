"""
auth/dependencies.py -- FastAPI Depends() helpers and route class for the request gate.

Public routes carry no auth dependency; protected routes declare one when they
are registered (per route, or per router via include_router(dependencies=...)).
Whether a route is public is therefore fixed at registration time.

Access gate -- two token sources, checked in priority order:
  1. Authorization: Bearer <token> header -- API clients.
  2. "accessToken" cookie -- set by the browser login flow.
Both converge on a User loaded by the token's username claim.

try_get_current_user() is the soft variant (returns None on failure).
get_current_user() wraps it and raises UnauthorizedError.

Refresh gate -- get_refresh_credentials() reads the "Refresh" cookie (scoped to
/auth/refresh), verifies it against the refresh secret and returns
RefreshCredentials. Routes using it are built with AccessDeniedRoute, which
collapses every auth failure on the path into one 403 "Access Denied" so an
attacker cannot tell a bad signature from an expired or revoked token.

Layer rule: may import from fastapi (this module is part of the DI system);
no imports from api/ or core/.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute

from auth.cookies import ACCESS_COOKIE, REFRESH_COOKIE
from auth.errors import ForbiddenError, TokenInvalidError, UnauthorizedError
from auth.models import RefreshCredentials, User

logger = logging.getLogger("chefflow.auth.gate")


def _extract_access_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:].strip()
        if token:
            return token
    return request.cookies.get(ACCESS_COOKIE) or None


def _authenticate(request: Request) -> User:
    token = _extract_access_token(request)
    if token is None:
        raise UnauthorizedError("Authentication required")
    try:
        payload = request.app.state.token_issuer.verify_access_token(token)
    except TokenInvalidError as exc:
        raise UnauthorizedError("Invalid or expired token") from exc

    user = request.app.state.session_service.validate_user(payload["username"])
    if user is None:
        # Token outlived the account.
        raise UnauthorizedError("User not found")
    return user


def try_get_current_user(request: Request) -> User | None:
    """Return the authenticated User, or None on any failure. Never raises on bad tokens."""
    try:
        return _authenticate(request)
    except UnauthorizedError:
        return None


def get_current_user(request: Request) -> User:
    """Require a valid access token.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: User = Depends(get_current_user)): ...
    """
    return _authenticate(request)


def get_refresh_credentials(request: Request) -> RefreshCredentials:
    """Require a valid refresh token cookie. Use only on AccessDeniedRoute routes."""
    token = request.cookies.get(REFRESH_COOKIE)
    if not token:
        raise ForbiddenError("Refresh token malformed")
    try:
        payload = request.app.state.token_issuer.verify_refresh_token(token)
    except TokenInvalidError as exc:
        raise UnauthorizedError("Invalid refresh token") from exc
    return RefreshCredentials(username=payload["username"], refresh_token=token)


def require_owner(user: User, username: str, message: str = "Access Denied") -> None:
    """Ownership check for user-scoped resources. Raises ForbiddenError on mismatch."""
    if user.username != username:
        raise ForbiddenError(message)


def access_denied_response() -> JSONResponse:
    resp = JSONResponse(
        status_code=403,
        content={"error": {"code": "access_denied", "message": "Access Denied"}},
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


class AccessDeniedRoute(APIRoute):
    """APIRoute that turns any auth failure into a uniform 403 "Access Denied".

    The wrapper sits around FastAPI's own handler, so it covers failures in
    dependencies (the refresh gate) as well as in the endpoint body.
    """

    def get_route_handler(self) -> Callable:
        original = super().get_route_handler()

        async def handler(request: Request):
            try:
                return await original(request)
            except (UnauthorizedError, ForbiddenError, TokenInvalidError) as exc:
                logger.info("Refresh denied on %s: %s", request.url.path, exc)
                return access_denied_response()

        return handler
