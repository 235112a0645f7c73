"""
api/main.py -- FastAPI application entry point for the placement backend.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan builds the object graph once per process (stores, token service,
mailer, AuthService, record services) and stores it on app.state; route
handlers and dependencies read from there. Shutdown closes the DB engines.

Exception handlers turn every failure into the response envelope:
  AppError (ValidationError, AuthError, ...) -> its status, message shown
  RequestValidationError                     -> 400 "failed"
  HTTPException                              -> its status
  RateLimitExceeded                          -> 429 + Retry-After
  anything else                              -> opaque 500, logged server-side
"""

from __future__ import annotations

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
from sqlalchemy import text
from starlette.exceptions import HTTPException

from api.limiter import limiter
from api.models import HealthResponse, failure
from api.routes.v1.auth import router as auth_router
from api.routes.v1.records import applied_router, completed_router
from auth.service import AuthService
from auth.store import UserStore
from auth.tokens import TokenService
from core.config import get_settings
from core.errors import AppError
from mail.sender import build_mailer
from placement.service import AppliedService, CompletedService
from placement.store import PlacementStore

__version__ = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("placement.api")

_settings = get_settings()


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


def wire_services(app: FastAPI, settings, user_store: UserStore, placement_store: PlacementStore, mailer) -> None:
    """Build the service graph on app.state. Shared by the real and the test lifespan."""
    app.state.settings = settings
    app.state.user_store = user_store
    app.state.placement_store = placement_store
    app.state.mailer = mailer
    app.state.tokens = TokenService(settings)
    app.state.auth = AuthService(user_store, app.state.tokens, mailer, settings)
    app.state.applied = AppliedService(placement_store, user_store)
    app.state.completed = CompletedService(placement_store, user_store)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create stores and services on startup, dispose the engines on shutdown."""
    logger.info("Placement API starting up")
    user_store = UserStore(_settings.auth_db_url, bcrypt_rounds=_settings.bcrypt_rounds)
    placement_store = PlacementStore(_settings.placement_db_url)
    wire_services(app, _settings, user_store, placement_store, build_mailer(_settings))
    logger.info(
        "Auth initialized (mail_backend=%s, require_email_confirmation=%s, allow_privileged_signup=%s)",
        _settings.mail_backend,
        _settings.require_email_confirmation,
        _settings.allow_privileged_signup,
    )

    yield

    app.state.user_store.close()
    app.state.placement_store.close()
    logger.info("Placement API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Placement API",
    description="Accounts, e-mail confirmation, password reset, and applied/completed test tracking.",
    version=__version__,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


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

app.include_router(auth_router, prefix="/api/v1", tags=["Users"])
app.include_router(applied_router, prefix="/api/v1", tags=["Applied"])
app.include_router(completed_router, prefix="/api/v1", tags=["Completed"])


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Operational errors: the message is meant for the client."""
    if exc.status_code >= 500:
        logger.warning("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=failure(exc.status_code, exc.message))


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=failure(429, "Too many requests. Please try again later.", detail=str(exc.detail)),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies and query params are client errors like any other ValidationError."""
    return JSONResponse(
        status_code=400,
        content=failure(400, "Request validation failed.", detail=str(exc.errors())),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=failure(exc.status_code, str(exc.detail)))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Unexpected errors. The traceback goes to the log only, never the response."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content=failure(500, "Something went wrong."))


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Liveness plus a SELECT 1 against both databases. No auth, no rate limit."""
    components = {"app": "ok"}
    try:
        for store in (request.app.state.user_store, request.app.state.placement_store):
            with store.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        components["database"] = "ok"
    except Exception:
        logger.exception("Health check database query failed")
        components["database"] = "error"
    return HealthResponse(version=__version__, components=components)
