"""
api/main.py -- FastAPI application factory for IssueTrack.

Run with:      uvicorn asgi:app --reload

create_app(settings) builds a fully wired application. Settings are passed in
explicitly and stored on app.state; the lifespan constructs the stores, the
TokenService (with settings.secret_key) and the AuthService from them. No
component reads a global secret.

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan handles startup (stores, services, bootstrap admin, session sweep
task) and shutdown (cancel sweep, dispose engines) symmetrically.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.projects import router as projects_router
from auth.errors import AuthError
from auth.service import AuthService
from auth.store import SessionStore, UserStore
from auth.tokens import TokenService
from core.config import Settings, get_settings
from projects.store import ProjectStore

API_VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("issuetrack.api")

# ---------------------------------------------------------------------------
# Background session sweep
# ---------------------------------------------------------------------------


async def _session_cleanup_loop(app: FastAPI, interval: int) -> None:
    """Delete expired sessions every `interval` seconds.

    The sweep is housekeeping only: resolve() already ignores expired rows.
    AuthService.cleanup_expired_sessions() logs and swallows store failures,
    so one bad sweep never ends the loop. The store call is blocking and runs
    in a worker thread. CancelledError from task.cancel() during shutdown
    propagates out of asyncio.sleep and unwinds the coroutine cleanly.
    """
    while True:
        await asyncio.sleep(interval)
        await asyncio.to_thread(app.state.auth_service.cleanup_expired_sessions)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Startup order matters:
      1. Stores -- every service below reads or writes through them.
      2. TokenService, then AuthService -- AuthService needs both.
      3. Bootstrap admin (create-only, see AuthService.seed_admin) -- needs AuthService.
      4. Sweep task last -- references app.state.auth_service.
    """
    settings: Settings = app.state.settings
    logger.info("IssueTrack API starting up")

    app.state.user_store = UserStore(settings.database_url)
    app.state.session_store = SessionStore(settings.database_url)
    app.state.project_store = ProjectStore(settings.database_url)
    app.state.token_service = TokenService(
        settings.secret_key,
        access_ttl=settings.token_expire_seconds,
        refresh_ttl=settings.refresh_token_expire_seconds,
    )
    app.state.auth_service = AuthService(
        app.state.user_store,
        app.state.session_store,
        app.state.token_service,
        require_approval=settings.registration_requires_approval,
    )
    logger.info("Auth initialized (require_approval=%s)", settings.registration_requires_approval)

    if settings.admin_email:
        app.state.auth_service.seed_admin(settings.admin_email, settings.admin_name, settings.admin_password)

    app.state.auth_service.cleanup_expired_sessions()
    app.state.cleanup_task = asyncio.create_task(
        _session_cleanup_loop(app, settings.session_cleanup_interval_seconds)
    )

    yield

    app.state.cleanup_task.cancel()
    app.state.user_store.close()
    app.state.session_store.close()
    app.state.project_store.close()
    logger.info("IssueTrack API shutdown complete")


# ---------------------------------------------------------------------------
# Request logging middleware
#
# Every request passes through this coroutine before reaching any route
# handler, so latency is reported on every response.
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


async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render the typed auth/access errors with their own status and code."""
    response = JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=ErrorDetail(code=exc.code, message=exc.message)).model_dump(),
    )
    if exc.status_code == 401:
        response.headers["WWW-Authenticate"] = "Bearer"
    if exc.status_code in (401, 403):
        response.headers["Cache-Control"] = "no-store"
    return response


async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(
                code="rate_limited",
                message="Too many requests.",
                detail=str(exc),
            )
        ).model_dump(),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or path params fail validation."""
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str(exc.errors()),
            )
        ).model_dump(),
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for FastAPI/Starlette HTTP exceptions (404 routes, 405, ...)."""
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors (store unavailable, bugs).

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


async def health(request: Request) -> HealthResponse:
    """Return API liveness, version and a database round-trip check. No auth, no rate limit."""
    try:
        db_ok = await asyncio.to_thread(request.app.state.user_store.ping)
    except SQLAlchemyError:
        logger.exception("Health check: database unavailable")
        db_ok = False
    return HealthResponse(
        status="healthy" if db_ok else "degraded",
        version=API_VERSION,
        components={"app": "ok", "database": "ok" if db_ok else "error"},
    )


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the IssueTrack ASGI application.

    Args:
        settings: Explicit configuration. None falls back to get_settings(),
                  which reads the environment / .env file.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="IssueTrack API",
        description="Multi-tenant issue tracking: accounts, sessions and project access control.",
        version=API_VERSION,
        lifespan=lifespan,
    )
    app.state.settings = settings

    # Starlette wraps middleware in reverse registration order, so the last
    # one added sees the request first: TrustedHost -> CORS -> SlowAPI -> log.
    app.middleware("http")(log_requests)
    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        max_age=86400,
    )
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.allowed_hosts)

    # SlowAPI looks for app.state.limiter by convention.
    app.state.limiter = limiter

    app.add_exception_handler(AuthError, auth_error_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
    app.include_router(projects_router, prefix="/api/v1", tags=["Projects"])
    app.add_api_route("/api/v1/health", health, methods=["GET"], response_model=HealthResponse, tags=["Health"])

    return app
