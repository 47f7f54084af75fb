"""
api/main.py -- FastAPI application factory for ChefFlow.

Run with:      uvicorn asgi:app --reload

create_app(settings) builds the whole application from one validated Settings
instance. Settings are published on app.state.settings; nothing downstream
reads the environment.

Middleware stack (outermost to innermost; Starlette wraps the most recently
added middleware around the others, so they are added innermost first):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- CORS headers for the frontend origins, with credentials
  3. log_requests          -- method, path, status, latency
  4. SlowAPIMiddleware     -- per-route rate limits from api.limiter
  5. SessionMiddleware     -- signed session cookie for the OAuth state
  6. csrf_protect          -- double-submit CSRF check before routing

Lifespan builds the store, token issuer, session service and OAuth registry
on startup and disposes the store on shutdown.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from api.csrf import csrf_protect
from api.limiter import configure_limiter, limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse, ReadyResponse
from api.routes.auth import refresh_router
from api.routes.auth import router as auth_router
from api.routes.users import router as users_router
from auth.cookies import CSRF_HEADER
from auth.dependencies import get_current_user
from auth.errors import AuthError
from auth.oauth import build_oauth
from auth.service import SessionService
from auth.store import UserStore
from auth.tokens import TokenIssuer
from core.config import Settings, get_settings

logger = logging.getLogger("chefflow.api")

VERSION = "0.1.0"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build request-independent components once; tear them down symmetrically."""
    settings: Settings = app.state.settings
    logger.info("ChefFlow API starting up (debug=%s)", settings.debug)

    store = UserStore(settings.database_url)
    issuer = TokenIssuer.from_settings(settings)
    app.state.token_issuer = issuer
    app.state.session_service = SessionService(store, issuer, bcrypt_rounds=settings.bcrypt_rounds)
    app.state.oauth = build_oauth(settings)
    logger.info("Auth initialized (google=%s)", settings.google_enabled)

    yield

    store.close()
    logger.info("ChefFlow API shutdown complete")


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------


async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


def _error(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(
            exclude_none=True
        ),
    )


async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Map the domain taxonomy onto HTTP. InternalError messages are already generic."""
    response = _error(exc.status_code, exc.code, exc.message)
    response.headers["Cache-Control"] = "no-store"
    return response


async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with Retry-After when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error(429, "rate_limited", "Too many requests.", str(exc.detail))
    response.headers["Retry-After"] = str(retry_after)
    return response


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 when a request body or query parameter fails validation."""
    return _error(422, "validation_error", "Request validation failed.", str(exc.errors()))


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Structured error for HTTPException; dict details are used as the error field directly."""
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)
    return _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected failures. The traceback goes to the log, never the client."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    app = FastAPI(
        title="ChefFlow API",
        description="Recipe management API -- authentication and sessions.",
        version=VERSION,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url=None,
    )
    app.state.settings = settings

    # Rate limiting. SlowAPI looks for app.state.limiter by convention.
    configure_limiter(settings.rate_limit_enabled, settings.login_rate_limit)
    app.state.limiter = limiter

    # Innermost first -- see module docstring.
    app.middleware("http")(csrf_protect)
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret,
        https_only=settings.secure_cookies,
        same_site="lax",
    )
    app.add_middleware(SlowAPIMiddleware)
    app.middleware("http")(log_requests)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", CSRF_HEADER],
        max_age=3600,
    )
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.allowed_hosts)

    app.add_exception_handler(AuthError, auth_error_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.include_router(auth_router, tags=["Auth"])
    app.include_router(refresh_router, tags=["Auth"])
    app.include_router(users_router, tags=["Users"], dependencies=[Depends(get_current_user)])

    # -----------------------------------------------------------------------
    # Health endpoints -- defined on the app (not a router) so they are always
    # reachable. No auth and no rate limit: probes must not be throttled.
    # -----------------------------------------------------------------------

    @app.get("/health", tags=["Health"], response_model=HealthResponse)
    async def health() -> HealthResponse:
        """Liveness: the process is up."""
        return HealthResponse(status="ok", timestamp=_now_iso())

    @app.get("/ready", tags=["Health"], response_model=ReadyResponse)
    def ready(request: Request):
        """Readiness: the database answers SELECT 1, else 503."""
        try:
            request.app.state.session_service.store.ping()
        except Exception:
            logger.exception("Readiness probe failed")
            return JSONResponse(
                status_code=503,
                content=ReadyResponse(
                    status="not ready", database="disconnected", timestamp=_now_iso()
                ).model_dump(by_alias=True),
            )
        return ReadyResponse(status="ready", database="connected", timestamp=_now_iso())

    return app
