"""
api/main.py -- FastAPI application entry point for the auth service.

Run with:  uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware     -- CORS headers for the configured browser origins
  2. log_requests       -- one access-log line per request with latency

Lifespan builds the whole object graph once (settings -> engine -> stores ->
hasher/codec -> AuthService) and stores it on app.state. Routes read their
collaborators from app.state, so tests can swap the graph by replacing the
lifespan (see tests/conftest.py).
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from auth.hashing import CredentialHasher
from auth.service import AuthService
from auth.store import RefreshTokenStore, UserStore, create_store_engine
from auth.tokens import SigningConfig, TokenCodec
from core.config import Settings, get_settings
from core.log import configure_logging
from core.monitoring import SlowOperationLogger

VERSION = "0.1.0"
PURGE_INTERVAL_SECONDS = 6 * 60 * 60

logger = logging.getLogger("authsvc.api")


# ---------------------------------------------------------------------------
# Object graph
# ---------------------------------------------------------------------------


def build_auth_service(settings: Settings, users: UserStore, refresh_tokens: RefreshTokenStore) -> AuthService:
    """Wire AuthService from settings for the app lifespan."""
    hasher = CredentialHasher(
        rounds=settings.bcrypt_rounds,
        timing_hook=SlowOperationLogger(settings.slow_hash_threshold_ms),
    )
    codec = TokenCodec(SigningConfig.from_settings(settings))
    return AuthService(users, refresh_tokens, hasher, codec, secure_cookies=settings.secure_cookies)


# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI) -> None:
    """Delete expired refresh tokens every 6 hours.

    The purge itself is a blocking DB call, so it runs in a worker thread.
    CancelledError from task.cancel() during shutdown propagates out of
    asyncio.sleep and unwinds the coroutine cleanly.
    """
    while True:
        await asyncio.sleep(PURGE_INTERVAL_SECONDS)
        try:
            removed = await asyncio.to_thread(app.state.refresh_tokens.purge_expired)
            logger.info("Purged %d expired refresh token(s)", removed)
        except Exception:
            logger.exception("Refresh token purge failed")


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the object graph on startup and release the DB pool on shutdown."""
    settings = get_settings()
    configure_logging(settings.log_level)
    logger.info("Auth service starting up (environment=%s)", settings.environment)

    engine = create_store_engine(settings.database_url)
    app.state.engine = engine
    app.state.users = UserStore(engine)
    app.state.refresh_tokens = RefreshTokenStore(engine)
    app.state.auth_service = build_auth_service(settings, app.state.users, app.state.refresh_tokens)
    app.state.token_codec = app.state.auth_service.codec
    app.state.purge_task = asyncio.create_task(_purge_loop(app))

    yield

    app.state.purge_task.cancel()
    with suppress(asyncio.CancelledError):
        await app.state.purge_task
    engine.dispose()
    logger.info("Auth service shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Auth Service API",
    description="Signup, login, refresh-token rotation and revocation.",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)


# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


@app.middleware("http")
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
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when the request body fails schema validation.

    Only the error locations and types are echoed. Input values are left out
    because they can contain passwords.
    """
    summary = [{"loc": list(e.get("loc", ())), "type": e.get("type")} for e in exc.errors()]
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str(summary),
            )
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    When detail is already a structured dict (dependencies raise it that way),
    use it directly as the error field rather than stringifying it.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(),
        headers=exc.headers,
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for infrastructure failures (DB connection loss, aborted transactions, ...).

    The traceback is logged server-side; the client receives only a generic
    message. Persistence errors can embed SQL and parameter values, which
    may include token strings.
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


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
async def health() -> HealthResponse:
    """Return API liveness and current version."""
    return HealthResponse(version=VERSION)
