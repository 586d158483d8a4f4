"""Authentication routes.

Password login, logout and session status. A password login for an
account that owns a passkey leaves the session pending until the passkey
ceremony in passkey.py completes.
"""

import secrets

import bcrypt
from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

import passgate.settings as _settings_mod
from passgate.api.auth import CurrentSession, clear_session, current_session, establish_session
from passgate.api.deps import get_db, get_mfa_gate
from passgate.api.rate_limit import LOGIN_LIMIT, limiter
from passgate.mfa import MfaGate
from passgate.settings import Settings
from passgate.webauthn.credentials import CredentialManager

router = APIRouter(prefix="/auth", tags=["Authentication"])


# =============================================================================
# Request / Response Schemas
# =============================================================================


class LoginRequest(BaseModel):
    """Login request body."""

    username: str = Field(max_length=255)
    password: str = Field(max_length=128)


class LoginResponse(BaseModel):
    """Login response with token and session state."""

    token: str
    username: str
    mfa_pending: bool = False
    redirect_url: str | None = None
    message: str = "Login successful"


class MeResponse(BaseModel):
    """Session status response."""

    authenticated: bool
    username: str | None = None
    auth_methods: list[str] = Field(default_factory=list)
    has_passkeys: bool = False


class LogoutResponse(BaseModel):
    """Logout response."""

    message: str = "Logged out"


# =============================================================================
# Helpers
# =============================================================================


def _check_password(username: str, password: str, settings: Settings) -> bool:
    """Check credentials against AUTH_PASSWORD_HASH, else AUTH_PASSWORD.

    Raises:
        HTTPException: 501 when no password is configured at all
    """
    username_ok = secrets.compare_digest(username.encode(), settings.auth_username.encode())

    password_hash = settings.auth_password_hash.get_secret_value()
    if password_hash:
        try:
            password_ok = bcrypt.checkpw(password.encode(), password_hash.encode())
        except ValueError:
            # Malformed hash in configuration
            password_ok = False
        return username_ok and password_ok

    configured_password = settings.auth_password.get_secret_value()
    if not configured_password:
        raise HTTPException(
            status_code=status.HTTP_501_NOT_IMPLEMENTED,
            detail="Password authentication is not configured.",
        )
    password_ok = secrets.compare_digest(password.encode(), configured_password.encode())
    return username_ok and password_ok


# =============================================================================
# Password Login
# =============================================================================


@router.post("/login", response_model=LoginResponse)
@limiter.limit(LOGIN_LIMIT)
async def login(
    request: Request,
    body: LoginRequest,
    response: Response,
    session: AsyncSession = Depends(get_db),
    gate: MfaGate = Depends(get_mfa_gate),
) -> LoginResponse:
    """Authenticate with username and password, receive JWT.

    The JWT is returned both in the response body and as an httpOnly cookie.
    If the account owns a passkey the session is marked pending and the
    client is told where to complete the second factor.
    """
    settings = _settings_mod.get_settings()

    if not _check_password(body.username, body.password, settings):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password.",
        )

    passkeys = await CredentialManager(session).count(body.username)
    ctx = gate.on_primary_login(current_session(request), body.username, passkeys)
    token = establish_session(response, ctx, settings)

    return LoginResponse(
        token=token,
        username=body.username,
        mfa_pending=ctx.mfa_pending,
        redirect_url=gate.redirect_url if ctx.mfa_pending else None,
        message="Passkey required" if ctx.mfa_pending else "Login successful",
    )


# =============================================================================
# Session Endpoints
# =============================================================================


@router.post("/logout", response_model=LogoutResponse)
async def logout(response: Response) -> LogoutResponse:
    """Clear the session cookie."""
    clear_session(response)
    return LogoutResponse()


@router.get("/me", response_model=MeResponse)
async def me(
    ctx: CurrentSession,
    session: AsyncSession = Depends(get_db),
) -> MeResponse:
    """Report the current session. 401 if not signed in."""
    has_passkeys = False
    if _settings_mod.get_settings().webauthn_enabled:
        has_passkeys = await CredentialManager(session).has_any(ctx.account_id)

    return MeResponse(
        authenticated=True,
        username=ctx.account_id,
        auth_methods=list(ctx.auth_methods),
        has_passkeys=has_passkeys,
    )
