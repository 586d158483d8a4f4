"""HTTP middlewares: request tracing and the MFA gate.

Both are BaseHTTPMiddleware subclasses. The gate runs before routing, so
no protected handler executes while a second factor is pending.
"""

import time
from collections.abc import Callable

import structlog
from fastapi import Request, Response
from fastapi.responses import RedirectResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from passgate.api.auth import current_session
from passgate.mfa import MfaGate
from passgate.settings import Settings

logger = structlog.get_logger()


class RequestTracingMiddleware(BaseHTTPMiddleware):
    """Logs method, path, status, duration and correlation ID per request."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process request and log tracing information.

        Args:
            request: FastAPI request object
            call_next: Next middleware/handler in the chain

        Returns:
            The downstream response
        """
        start = time.perf_counter()

        # Lazy import to avoid circular dependency
        from passgate.api.main import get_correlation_id

        try:
            response = await call_next(request)
        except Exception as e:
            duration_ms = (time.perf_counter() - start) * 1000
            logger.error(
                "request_error",
                method=request.method,
                path=request.url.path,
                duration_ms=round(duration_ms, 2),
                correlation_id=get_correlation_id(),
                error_type=type(e).__name__,
                exc_info=e,
            )
            # Re-raise to let exception handlers process it
            raise

        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "request",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=round(duration_ms, 2),
            correlation_id=get_correlation_id(),
        )
        return response


class MfaGateMiddleware(BaseHTTPMiddleware):
    """Redirects every non-exempt request while MFA is pending."""

    def __init__(self, app: ASGIApp, gate: MfaGate, settings: Settings | None = None):
        super().__init__(app)
        self.gate = gate
        self.settings = settings

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if not self.gate.enabled:
            return await call_next(request)

        ctx = current_session(request, self.settings)
        target = self.gate.intercept(ctx, request.url.path)
        if target is not None:
            logger.info(
                "mfa_redirect",
                path=request.url.path,
                account_id=ctx.account_id,
            )
            return RedirectResponse(url=target, status_code=303)
        return await call_next(request)
