"""
api/main.py -- FastAPI application entry point for tokenauth.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. log_requests          -- one access-log line per request, rejected ones included
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. TrustedHostMiddleware -- rejects requests with unexpected Host headers

Lifespan builds the credential store, token issuer/verifier and AuthService
from Settings on startup and closes the store on shutdown.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from api.models import ErrorResponse, FieldError, HealthResponse
from api.routes.v1.auth import router as auth_router
from auth.errors import AuthError, InternalError, ValidationError
from auth.service import AuthService
from auth.store import UserStore
from auth.tokens import TokenIssuer, TokenVerifier
from core.config import get_settings

API_VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("tokenauth.api")

_settings = get_settings()


# ---------------------------------------------------------------------------
# Service wiring
# ---------------------------------------------------------------------------


def build_auth_service(store: UserStore, secret_key: str) -> AuthService:
    """Assemble an AuthService around store using the configured token lifetimes.

    The secret is passed explicitly so tests and key rotation can supply a
    different one without touching Settings.
    """
    issuer = TokenIssuer(
        secret_key,
        access_ttl=timedelta(seconds=_settings.access_token_expire_seconds),
        refresh_ttl=timedelta(seconds=_settings.refresh_token_expire_seconds),
    )
    return AuthService(store, issuer, TokenVerifier(secret_key))


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create app-wide resources on startup and release them on shutdown."""
    logger.info("tokenauth API starting up")
    store = UserStore(_settings.database_url)
    app.state.auth_service = build_auth_service(store, _settings.secret_key)
    logger.info(
        "Auth initialized (access_ttl=%ss, refresh_ttl=%ss)",
        _settings.access_token_expire_seconds,
        _settings.refresh_token_expire_seconds,
    )

    yield

    store.close()
    logger.info("tokenauth API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="tokenauth API",
    description="Username/password authentication issuing short-lived access tokens and refresh tokens.",
    version=API_VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Starlette wraps each middleware added later around the ones added before
# it, so the last registration is the outermost layer. TrustedHost is added
# first and sits innermost; the log_requests decorator below is added last.
# ---------------------------------------------------------------------------

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)


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
# All handlers return the same ErrorResponse body so API clients can parse
# errors uniformly: {"code", "message"} plus "errors" on validation failures.
# ---------------------------------------------------------------------------


def _error_response(exc: AuthError) -> JSONResponse:
    body = ErrorResponse(
        code=exc.code,
        message=exc.message,
        errors=[FieldError(**e) for e in exc.errors] if exc.errors is not None else None,
    )
    return JSONResponse(status_code=exc.status_code, content=body.to_content())


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render any AuthError raised by the service layer or the auth dependency."""
    return _error_response(exc)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 with one {field, message} entry per invalid request field.

    A body that is not valid JSON at all gets a plain 400 bad_request with no
    field list -- there are no fields to point at.
    """
    errors = exc.errors()
    if any(e.get("type") == "json_invalid" for e in errors):
        return JSONResponse(
            status_code=400,
            content=ErrorResponse(code="bad_request", message="bad request").to_content(),
        )
    fields = [{"field": _field_name(e.get("loc", ())), "message": e.get("msg", "invalid value")} for e in errors]
    return _error_response(ValidationError(errors=fields))


def _field_name(loc) -> str:
    # loc looks like ("body", "username"); a missing body is just ("body",).
    parts = [str(p) for p in loc[1:]] if len(loc) > 1 else [str(p) for p in loc]
    return ".".join(parts) or "body"


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is written to the server log only, never to the
    response body. The client receives the generic internal_error body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(InternalError())


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, version and a database probe."""
    database = "ok"
    try:
        if not request.app.state.auth_service.store.ping():
            database = "error"
    except SQLAlchemyError:
        logger.exception("Health check database probe failed")
        database = "error"
    return HealthResponse(
        status="healthy" if database == "ok" else "degraded",
        version=API_VERSION,
        components={"app": "ok", "database": database},
    )
