"""
api/main.py -- FastAPI application entry point for the sessions service.

Exposes the session service (/auth/*) and the subsequence service (/dna/*)
over HTTP, plus /health and Prometheus metrics under /metrics.

Run with:      python main.py serve
               uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. log_requests      -- opens the request's diagnostic context (core.ctxlog)
                          and writes one logfmt line per request
  2. SlowAPIMiddleware -- per-client flood guard from api.limiter

Lifespan opens the stores and builds the service graph on startup
(store -> SessionManager -> AdmissionGate; validator -> SubsequenceService)
and closes the stores on shutdown.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.auth import ClientDisconnected
from api.routes.auth import router as auth_router
from api.routes.dna import router as dna_router
from auth.admission import AdmissionGate
from auth.errors import AlreadyExists, AuthError, BadAuth, RateLimited, StoreUnavailable
from auth.service import SessionManager
from auth.store import MemoryCredentialStore, SQLCredentialStore
from auth.validator import HTTPValidator, Validator
from core import ctxlog
from core.config import Settings, get_settings
from dna.service import BadAuth as DNABadAuth
from dna.service import DNAError, InvalidSequence, SubsequenceNotFound, SubsequenceService
from dna.store import MemorySequenceStore, SQLSequenceStore

VERSION = "0.1.0"

MEMORY_URN = "memory://"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("sessions.api")

# ---------------------------------------------------------------------------
# Service graph
# ---------------------------------------------------------------------------


def open_auth_store(urn: str) -> SQLCredentialStore | MemoryCredentialStore:
    if urn == MEMORY_URN:
        return MemoryCredentialStore()
    return SQLCredentialStore(urn)


def open_dna_store(urn: str) -> SQLSequenceStore | MemorySequenceStore:
    if urn == MEMORY_URN:
        return MemorySequenceStore()
    return SQLSequenceStore(urn)


def make_validator(settings: Settings, manager: SessionManager) -> Validator:
    """Remote validator when AUTH_URL is set, otherwise validate in-process."""
    if settings.auth_url:
        return HTTPValidator(settings.auth_url, timeout=settings.validate_timeout)
    return manager.validator()


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open stores, wire services onto app.state, and close them on shutdown."""
    settings = get_settings()
    logger.info("sessions API starting up")

    app.state.auth_store = open_auth_store(settings.auth_urn)
    app.state.sessions = SessionManager(app.state.auth_store)
    app.state.gate = AdmissionGate.from_settings(app.state.sessions, settings)
    logger.info(
        "Auth initialized (store=%s, signup=%s/s burst %d, login=%s/s burst %d)",
        type(app.state.auth_store).__name__,
        settings.signup_rate,
        settings.signup_burst,
        settings.login_rate,
        settings.login_burst,
    )

    app.state.validator = make_validator(settings, app.state.sessions)
    app.state.dna_store = open_dna_store(settings.dna_urn)
    app.state.dna = SubsequenceService(app.state.dna_store, app.state.validator)
    logger.info("DNA initialized (validator=%s)", type(app.state.validator).__name__)

    yield

    if isinstance(app.state.validator, HTTPValidator):
        app.state.validator.close()
    app.state.dna_store.close()
    app.state.auth_store.close()
    logger.info("sessions API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Sessions API",
    description="Credential and session service with a token-gated DNA subsequence lookup.",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Request logging middleware
#
# Opens the request-scoped diagnostic context before anything else runs.
# Services append to it (auth_method, auth_user, auth_err, dna_*) and the
# whole context is written as one logfmt line once the response is known,
# on success and failure alike.
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    status = 500
    with ctxlog.new(http_method=request.method, http_path=request.url.path) as ctx:
        try:
            response = await call_next(request)
            status = response.status_code
            return response
        finally:
            ms = (time.perf_counter() - start) * 1000
            ctx.log(http_status_code=status, http_duration=f"{ms:.1f}ms")
            logger.info(ctx.logfmt())


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, tags=["Auth"])
app.include_router(dna_router, tags=["DNA"])

# auth_events_total and dna_check_duration_seconds from core.metrics, plus
# the default process collectors.
app.mount("/metrics", make_asgi_app())

# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------

_AUTH_STATUS: dict[type[AuthError], int] = {
    BadAuth: 401,
    AlreadyExists: 409,
    RateLimited: 429,
    StoreUnavailable: 503,
}

_DNA_STATUS: dict[type[DNAError], int] = {
    DNABadAuth: 401,
    InvalidSequence: 400,
    SubsequenceNotFound: 404,
}


def _error(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(),
    )


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Map session service errors to HTTP statuses.

    RateLimited carries a Retry-After hint (whole seconds, at least 1).
    StoreUnavailable is logged with its cause; the client gets only the code.
    """
    status_code = _AUTH_STATUS.get(type(exc), 500)
    if isinstance(exc, StoreUnavailable):
        logger.warning("store unavailable on %s %s: %r", request.method, request.url.path, exc.__cause__ or exc)
    response = _error(status_code, exc.code, str(exc))
    if isinstance(exc, RateLimited):
        response.headers["Retry-After"] = str(max(1, int(exc.retry_after + 0.999)))
    return response


@app.exception_handler(DNAError)
async def dna_error_handler(request: Request, exc: DNAError) -> JSONResponse:
    status_code = _DNA_STATUS.get(type(exc), 500)
    if status_code == 500:
        logger.warning("dna error on %s %s: %s", request.method, request.url.path, exc)
    return _error(status_code, exc.code, str(exc))


@app.exception_handler(ClientDisconnected)
async def disconnected_handler(request: Request, exc: ClientDisconnected) -> JSONResponse:
    """Nobody is listening any more; 499 only ends up in the request log."""
    return _error(499, "client_disconnected", "Client closed the request.")


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 when the per-client flood guard trips."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error(429, "rate_limited", "Too many requests.", str(exc))
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when query params fail validation."""
    return _error(422, "validation_error", "Request validation failed.", str(exc.errors()))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for FastAPI/Starlette HTTP exceptions (404, 405, ...)."""
    return _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Not rate limited -- health checks from load balancers must not be throttled.
# ---------------------------------------------------------------------------


@app.get("/health", tags=["Health"])
@limiter.exempt
async def health(request: Request) -> HealthResponse:
    """Return liveness, version, and a per-store status."""
    auth_ok = request.app.state.auth_store.ping()
    components = {"app": "ok", "auth_store": "ok" if auth_ok else "error"}
    return HealthResponse(status="ok" if auth_ok else "degraded", version=VERSION, components=components)
