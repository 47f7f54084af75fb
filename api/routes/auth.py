"""
api/routes/auth.py -- Authentication and session REST endpoints.

Routes:
  GET  /auth/csrf             -- current CSRF token (public)
  POST /auth/register         -- create LOCAL user; sets session cookies (public)
  POST /auth/login            -- password login; sets session cookies (public)
  GET  /auth/refresh          -- rotate tokens from the Refresh cookie
  POST /auth/logout           -- revoke refresh token if authenticated; clear cookies
  GET  /auth/profile          -- current user (requires access token)
  GET  /auth/google           -- redirect to Google (public)
  GET  /auth/google/callback  -- finish OAuth, set cookies, redirect to frontend

Security:
  [H2] POST /login and /register are rate-limited per IP (LOGIN_RATE_LIMIT).
  [C1] SessionService.login() equalizes timing -- never inline the checks.
  [M5] Cache-Control: no-store on every response that sets session cookies.
  Refresh failures are collapsed to a single 403 by AccessDeniedRoute.
"""

from __future__ import annotations

import logging

from authlib.integrations.starlette_client import OAuthError
from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.responses import RedirectResponse
from starlette.concurrency import run_in_threadpool

from api.limiter import credential_limit, limiter
from api.models import AuthUserResponse, CsrfResponse, LoginRequest, MessageResponse, RegisterRequest, UserResponse
from auth.cookies import CookiePolicy, clear_auth_cookies, set_auth_cookies
from auth.dependencies import AccessDeniedRoute, get_current_user, get_refresh_credentials, try_get_current_user
from auth.errors import AuthError
from auth.identity import resolve_oauth_identity
from auth.models import RefreshCredentials, User
from auth.oauth import profile_from_userinfo
from auth.service import SessionService

logger = logging.getLogger("chefflow.api.auth")

# Auth policy:
# - GET  /auth/csrf, /auth/google, /auth/google/callback: public
# - POST /auth/register, /auth/login:                     public, rate-limited
# - POST /auth/logout:                                    public (bearer optional)
# - GET  /auth/refresh:                                   Refresh cookie (refresh_router)
# - GET  /auth/profile:                                   access token (get_current_user)
router = APIRouter(prefix="/auth")

# Separate router so only the refresh route gets the uniform-403 route class.
refresh_router = APIRouter(prefix="/auth", route_class=AccessDeniedRoute)


def _service(request: Request) -> SessionService:
    return request.app.state.session_service


def _policy(request: Request) -> CookiePolicy:
    return CookiePolicy.from_settings(request.app.state.settings)


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.get("/csrf", response_model=CsrfResponse)
async def csrf_token(request: Request) -> CsrfResponse:
    """Return the CSRF token the middleware placed in the XSRF-TOKEN cookie."""
    return CsrfResponse(csrf_token=request.state.csrf_token)


@router.post("/register", response_model=AuthUserResponse, status_code=201)
@limiter.limit(credential_limit)  # [H2] below @router so the registered endpoint is the limited wrapper
def register(request: Request, response: Response, body: RegisterRequest) -> AuthUserResponse:
    """Create a LOCAL account and log it in."""
    result = _service(request).register(body.username, body.email, body.password, body.name)
    set_auth_cookies(response, result.tokens, _policy(request))
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return AuthUserResponse(user=UserResponse.from_user(result.user))


@router.post("/login", response_model=AuthUserResponse)
@limiter.limit(credential_limit)  # [H2]
def login(request: Request, response: Response, body: LoginRequest) -> AuthUserResponse:
    """Authenticate with username and password; set session cookies.

    Wrong username, wrong password and OAuth-only accounts all produce the
    same 401 "Invalid credentials".
    """
    result = _service(request).login(body.username, body.password)
    set_auth_cookies(response, result.tokens, _policy(request))
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return AuthUserResponse(user=UserResponse.from_user(result.user))


@router.post("/logout", response_model=MessageResponse)
def logout(request: Request, response: Response) -> MessageResponse:
    """Revoke the caller's refresh token (when identifiable) and clear both cookies."""
    user = try_get_current_user(request)
    if user is not None:
        _service(request).logout(user.username)
        logger.info("User %r logged out", user.username)
    clear_auth_cookies(response, _policy(request))
    return MessageResponse(message="Logged out successfully")


# ---------------------------------------------------------------------------
# Refresh (uniform 403 on any failure)
# ---------------------------------------------------------------------------


@refresh_router.get("/refresh", response_model=MessageResponse)
def refresh(
    request: Request,
    response: Response,
    credentials: RefreshCredentials = Depends(get_refresh_credentials),
) -> MessageResponse:
    """Exchange the Refresh cookie for a new token pair. The old refresh token dies."""
    tokens = _service(request).refresh(credentials.username, credentials.refresh_token)
    set_auth_cookies(response, tokens, _policy(request))
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return MessageResponse(message="Tokens refreshed")


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/profile", response_model=UserResponse)
def profile(current_user: User = Depends(get_current_user)) -> UserResponse:
    """Return the identity attached to the access token."""
    return UserResponse.from_user(current_user)


# ---------------------------------------------------------------------------
# Google OAuth
# ---------------------------------------------------------------------------


def _google_client(request: Request):
    if not request.app.state.settings.google_enabled:
        raise HTTPException(
            status_code=404,
            detail={"code": "provider_disabled", "message": "Google login is not configured."},
        )
    return request.app.state.oauth.create_client("google")


def _oauth_failed(request: Request) -> RedirectResponse:
    frontend = request.app.state.settings.frontend_url.rstrip("/")
    return RedirectResponse(f"{frontend}/login?error=oauth_failed", status_code=302)


@router.get("/google")
async def google_login(request: Request):
    """Redirect the browser to Google's consent page."""
    client = _google_client(request)
    redirect_uri = request.app.state.settings.google_callback_url
    return await client.authorize_redirect(request, redirect_uri)


@router.get("/google/callback")
async def google_callback(request: Request) -> RedirectResponse:
    """Handle the Google callback, open a session and return to the frontend.

    Flow:
      1. Exchange the authorization code (authlib checks the session state).
      2. Normalize the userinfo claims -- ValueError on missing/unverified email.
      3. Resolve the local identity (existing, linked by email, or created).
      4. Issue tokens, set cookies, redirect to {FRONTEND_URL}/auth/callback.

    Any failure redirects to {FRONTEND_URL}/login?error=oauth_failed instead.
    """
    client = _google_client(request)

    try:
        token = await client.authorize_access_token(request)
    except OAuthError:
        logger.exception("Google token exchange failed")
        return _oauth_failed(request)

    try:
        data = profile_from_userinfo(token.get("userinfo"))
    except ValueError as exc:
        logger.warning("Google login rejected: %s", exc)
        return _oauth_failed(request)

    service = _service(request)
    try:
        resolution = await run_in_threadpool(resolve_oauth_identity, service.store, data)
        result = await run_in_threadpool(service.login_with_oauth, resolution.user)
    except AuthError as exc:
        logger.error("Google login failed for %s: %s", data.email, exc.message)
        return _oauth_failed(request)

    frontend = request.app.state.settings.frontend_url.rstrip("/")
    resp = RedirectResponse(f"{frontend}/auth/callback", status_code=302)
    set_auth_cookies(resp, result.tokens, _policy(request))
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp
