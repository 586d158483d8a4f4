"""Session handling for the HTTP API.

The session is a signed JWT carried either as a Bearer token or in the
``passgate_session`` httpOnly cookie. Its claims hold the account
(``sub``), the pending second-factor flag (``mfa``) and the completed
authentication methods (``amr``); they are read into a SessionContext
for the MFA gate and the routes.
"""

import logging
import time
from typing import Annotated, Any

import jwt
from fastapi import Depends, HTTPException, Request, Response, status

# Import module (not function) so monkeypatching in tests works correctly.
# Using `from passgate.settings import get_settings` would create a local
# reference that monkeypatch cannot intercept.
import passgate.settings as _settings_mod
from passgate.exceptions import ConfigurationError
from passgate.mfa import SessionContext
from passgate.settings import Settings

logger = logging.getLogger(__name__)

# JWT configuration
JWT_ALGORITHM = "HS256"
JWT_COOKIE_NAME = "passgate_session"


def _get_jwt_secret(settings: Settings) -> str:
    """Get or generate the JWT signing secret.

    In production, a strong explicit JWT_SECRET is required (minimum 32
    characters recommended). In development, falls back to a deterministic
    secret derived from the auth_password for convenience.
    """
    configured = settings.jwt_secret.get_secret_value()
    if configured:
        if settings.environment == "production" and len(configured) < 32:
            logger.warning(
                "JWT_SECRET is shorter than 32 characters. Use a cryptographically "
                "random secret for production (e.g. `openssl rand -hex 32`)."
            )
        return configured

    # Production MUST have an explicit secret
    if settings.environment == "production":
        raise ConfigurationError(
            "JWT_SECRET must be set in production. Generate one with: openssl rand -hex 32"
        )

    # Development fallback: derive from auth_password (stable across restarts)
    password = settings.auth_password.get_secret_value()
    if password:
        return f"passgate-jwt-{password}-auto"
    return "passgate-dev-jwt-secret"


def create_jwt_token(ctx: SessionContext, settings: Settings | None = None) -> str:
    """Create a session JWT for an authenticated context.

    Args:
        ctx: Session state to persist (must have an account)
        settings: Optional settings override

    Returns:
        Encoded JWT token string
    """
    if ctx.account_id is None:
        raise ValueError("Cannot issue a session token without an account")

    settings = settings or _settings_mod.get_settings()
    secret = _get_jwt_secret(settings)
    now = int(time.time())
    payload = {
        "sub": ctx.account_id,
        "mfa": ctx.mfa_pending,
        "amr": list(ctx.auth_methods),
        "iat": now,
        "exp": now + settings.jwt_expiry_hours * 3600,
    }
    return jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)


def decode_jwt_token(token: str, settings: Settings | None = None) -> dict[str, Any] | None:
    """Decode and validate a JWT token.

    Returns:
        Decoded payload dict, or None if invalid/expired
    """
    settings = settings or _settings_mod.get_settings()
    secret = _get_jwt_secret(settings)
    try:
        return jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])
    except jwt.InvalidTokenError:
        return None


def _extract_bearer_token(request: Request) -> str | None:
    """Extract Bearer token from Authorization header."""
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header[7:]
    return None


def session_from_claims(payload: dict[str, Any] | None) -> SessionContext:
    """Build a SessionContext from decoded claims (anonymous if unusable)."""
    if not payload or not isinstance(payload.get("sub"), str):
        return SessionContext()
    amr = payload.get("amr") or []
    return SessionContext(
        account_id=payload["sub"],
        mfa_pending=bool(payload.get("mfa", False)),
        auth_methods=tuple(str(m) for m in amr) if isinstance(amr, list) else (),
    )


def current_session(request: Request, settings: Settings | None = None) -> SessionContext:
    """Read the session from the Bearer token, else the cookie.

    An invalid or expired token yields an anonymous context.
    """
    token = _extract_bearer_token(request) or request.cookies.get(JWT_COOKIE_NAME)
    if not token:
        return SessionContext()
    return session_from_claims(decode_jwt_token(token, settings))


def is_authenticated(ctx: SessionContext) -> bool:
    return ctx.is_authenticated


def establish_session(
    response: Response,
    ctx: SessionContext,
    settings: Settings | None = None,
) -> str:
    """Issue a token for ``ctx`` and set it as the session cookie.

    Returns:
        The token, so API clients can use it as a Bearer token
    """
    settings = settings or _settings_mod.get_settings()
    token = create_jwt_token(ctx, settings)
    response.set_cookie(
        key=JWT_COOKIE_NAME,
        value=token,
        httponly=True,
        secure=settings.environment == "production",
        samesite="lax",
        max_age=settings.jwt_expiry_hours * 3600,
        path="/",
    )
    return token


def clear_session(response: Response) -> None:
    """Remove the session cookie."""
    response.delete_cookie(key=JWT_COOKIE_NAME, path="/", httponly=True)


async def require_session(request: Request) -> SessionContext:
    """Dependency: any signed-in session, pending or not.

    Raises:
        HTTPException: 401 if there is no valid session
    """
    ctx = current_session(request)
    if not ctx.is_authenticated:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required.",
        )
    return ctx


async def require_full_session(request: Request) -> SessionContext:
    """Dependency: signed-in session with no second factor pending.

    Raises:
        HTTPException: 401 without a session, 403 while MFA is pending
    """
    ctx = await require_session(request)
    if ctx.mfa_pending:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Second factor required.",
        )
    return ctx


# Dependencies for endpoints that require a session
CurrentSession = Annotated[SessionContext, Depends(require_session)]
FullSession = Annotated[SessionContext, Depends(require_full_session)]
