"""FastAPI application configuration and setup.

Main entry point for the HTTP API with CORS, middleware,
rate limiting, the MFA gate, and lifecycle management.
"""

import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import Any

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from passgate.api.middleware import MfaGateMiddleware, RequestTracingMiddleware
from passgate.api.rate_limit import MAX_REQUEST_BODY_BYTES, limiter
from passgate.api.routes import api_router
from passgate.exceptions import (
    CeremonyError,
    ChallengeOwnershipMismatchError,
    CloneSuspectedError,
    ConfigurationError,
    CredentialNotFoundError,
    DuplicateCredentialError,
    LastCredentialError,
    PassgateError,
    PersistenceError,
    UnauthorizedError,
    ValidationError,
    VerificationFailedError,
)
from passgate.mfa import MfaGate
from passgate.settings import Settings, get_settings
from passgate.storage import close_db, init_db

logger = structlog.get_logger()

# Context variable for correlation ID (thread-safe, async-safe)
_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)

# Singleton app instance
_app: FastAPI | None = None

# First match wins, so subclasses come before their bases
ERROR_STATUS_CODES: list[tuple[type[PassgateError], int]] = [
    (VerificationFailedError, 401),
    (CloneSuspectedError, 401),
    (ChallengeOwnershipMismatchError, 403),
    (UnauthorizedError, 403),
    (CredentialNotFoundError, 404),
    (DuplicateCredentialError, 409),
    (LastCredentialError, 409),
    (CeremonyError, 400),
    (ValidationError, 400),
    (PersistenceError, 500),
    (ConfigurationError, 500),
]

_GENERIC_MESSAGES = {
    400: "The passkey request could not be processed.",
    401: "Passkey verification failed.",
    403: "Not allowed.",
    404: "Not found.",
    409: "The request conflicts with the current state.",
}


def status_code_for(exc: PassgateError) -> int:
    """HTTP status for an application error (500 if unmapped)."""
    for error_type, code in ERROR_STATUS_CODES:
        if isinstance(exc, error_type):
            return code
    return 500


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    - Startup: Initialize database, start maintenance scheduler
    - Shutdown: Stop scheduler, close database connections
    """
    settings = get_settings()

    if settings.environment != "testing":
        await init_db()

    scheduler = None
    if settings.scheduler_enabled and settings.environment != "testing":
        from passgate.scheduler import SchedulerService

        scheduler = SchedulerService(settings)
        await scheduler.start()

    yield

    if scheduler:
        await scheduler.stop()
    await close_db()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure a FastAPI application instance.

    Args:
        settings: Optional settings override (uses get_settings() if not provided)

    Returns:
        Configured FastAPI application
    """
    if settings is None:
        settings = get_settings()

    app = FastAPI(
        title="Passgate",
        description="WebAuthn passkey relying party with a session second-factor gate",
        version="0.1.0",
        docs_url="/api/docs" if settings.debug else None,
        redoc_url="/api/redoc" if settings.debug else None,
        openapi_url="/api/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    # Innermost: the gate decides before any route runs
    app.add_middleware(MfaGateMiddleware, gate=MfaGate.from_settings(settings), settings=settings)

    # Configure CORS: restrict methods and headers outside development
    allowed_methods = ["*"] if settings.environment in ("development", "testing") else [
        "GET", "POST", "PATCH", "DELETE", "OPTIONS",
    ]
    allowed_headers = ["*"] if settings.environment in ("development", "testing") else [
        "Authorization", "Content-Type", "X-Correlation-ID",
    ]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_get_allowed_origins(settings),
        allow_credentials=True,
        allow_methods=allowed_methods,
        allow_headers=allowed_headers,
    )

    # Configure rate limiting
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    app.middleware("http")(_body_size_limit_middleware)
    app.middleware("http")(_security_headers_middleware)
    app.middleware("http")(_correlation_middleware)
    app.add_middleware(RequestTracingMiddleware)

    app.include_router(api_router, prefix="/api/v1")

    _register_exception_handlers(app, settings)

    return app


def _get_allowed_origins(settings: Settings) -> list[str]:
    """Get allowed CORS origins based on environment.

    Priority:
    1. Explicit ALLOWED_ORIGINS env var (comma-separated)
    2. Environment-based defaults (the WebAuthn origins outside development)
    """
    if settings.allowed_origins:
        return [o.strip() for o in settings.allowed_origins.split(",") if o.strip()]

    if settings.environment in ("development", "testing"):
        return ["*"]
    return [o.strip() for o in settings.webauthn_origin.split(",") if o.strip()]


async def _body_size_limit_middleware(request: Request, call_next):
    """Reject requests whose declared body exceeds MAX_REQUEST_BODY_BYTES."""
    content_length = request.headers.get("content-length")
    if content_length and content_length.isdigit() and int(content_length) > MAX_REQUEST_BODY_BYTES:
        return JSONResponse(
            status_code=413,
            content={
                "error": {
                    "code": 413,
                    "message": f"Request body too large. Maximum size is {MAX_REQUEST_BODY_BYTES} bytes.",
                    "type": "request_too_large",
                }
            },
        )

    return await call_next(request)


async def _security_headers_middleware(request: Request, call_next):
    """Add security-related HTTP headers to every response."""
    settings = get_settings()
    response = await call_next(request)

    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

    # HSTS: WebAuthn only works over HTTPS outside localhost
    if settings.environment in ("production", "staging"):
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

    response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"

    if request.url.path.startswith("/api/"):
        response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate"

    return response


async def _correlation_middleware(request: Request, call_next):
    """Generate or propagate a correlation ID and echo it in the response."""
    correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
    _correlation_id.set(correlation_id)
    structlog.contextvars.bind_contextvars(correlation_id=correlation_id)
    try:
        response = await call_next(request)
    finally:
        structlog.contextvars.unbind_contextvars("correlation_id")
    response.headers["X-Correlation-ID"] = correlation_id
    return response


def get_correlation_id() -> str | None:
    """Get the current request's correlation ID from context."""
    return _correlation_id.get()


def _error_response(status_code: int, message: str, error_type: str, correlation_id: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": {
                "code": status_code,
                "message": message,
                "type": error_type,
                "correlation_id": correlation_id,
            }
        },
        headers={"X-Correlation-ID": correlation_id},
    )


def _register_exception_handlers(app: FastAPI, settings: Settings) -> None:
    """Register custom exception handlers.

    Clients get a generic message and the internal error kind; details
    only go to the log (or the message too, in debug mode).
    """

    @app.exception_handler(PassgateError)
    async def passgate_error_handler(request: Request, exc: PassgateError) -> JSONResponse:
        """Handle Passgate application errors with correlation ID."""
        correlation_id = get_correlation_id() or exc.correlation_id
        status_code = status_code_for(exc)

        log = logger.error if status_code >= 500 else logger.warning
        log(
            "passgate_error",
            error_type=exc.kind,
            status=status_code,
            path=request.url.path,
            correlation_id=correlation_id,
            exc_info=exc if status_code >= 500 else None,
        )

        if settings.debug:
            message = str(exc)
        else:
            message = _GENERIC_MESSAGES.get(
                status_code, f"An error occurred. Correlation ID: {correlation_id}"
            )
        return _error_response(status_code, message, exc.kind, correlation_id)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        """Handle HTTP exceptions with consistent format."""
        correlation_id = get_correlation_id() or str(uuid.uuid4())
        return _error_response(exc.status_code, str(exc.detail), "http_error", correlation_id)

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        correlation_id = get_correlation_id() or str(uuid.uuid4())
        logger.exception("unhandled_exception", correlation_id=correlation_id, exc_info=exc)
        detail = str(exc) if settings.debug else "Internal server error"
        return _error_response(500, detail, "internal_error", correlation_id)


def get_app() -> FastAPI:
    """Get or create the singleton FastAPI application."""
    global _app
    if _app is None:
        _app = create_app()
    return _app


# For uvicorn: use "passgate.api.main:get_app" with --factory flag,
# or "passgate.api.main:app" which lazily initializes on first access.
def __getattr__(name: str) -> Any:
    """Module-level __getattr__ for lazy app initialization.

    Only creates the app when 'app' is accessed, not at import time.
    """
    if name == "app":
        return get_app()
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
