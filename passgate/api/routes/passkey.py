"""WebAuthn passkey routes.

Registration flow (requires a full session):
1. POST /passkey/register/options -> creation options (challenge stored)
2. POST /passkey/register/verify  -> stores credential

Authentication flow (public, also the second factor after a password login):
1. POST /passkey/authenticate/options -> request options
2. POST /passkey/authenticate/verify  -> session JWT

Management (requires a full session):
- GET    /passkeys        -> list registered passkeys
- PATCH  /passkeys/{id}   -> rename a passkey
- DELETE /passkeys/{id}   -> remove a passkey

Every route answers 404 when WEBAUTHN_ENABLED is off.
"""

import logging
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Request, Response
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

import passgate.settings as _settings_mod
from passgate import audit
from passgate.api.auth import FullSession, current_session, establish_session
from passgate.api.deps import (
    get_db,
    get_mfa_gate,
    get_verifier,
    get_webauthn_config,
    require_webauthn_enabled,
)
from passgate.api.rate_limit import CEREMONY_LIMIT, LOGIN_LIMIT, limiter
from passgate.exceptions import ValidationError
from passgate.mfa import MfaGate
from passgate.webauthn.ceremony import AuthenticationCeremony, RegistrationCeremony
from passgate.webauthn.config import WebAuthnConfig
from passgate.webauthn.credentials import CredentialManager
from passgate.webauthn.records import AccountInfo, Credential
from passgate.webauthn.verifier import WebAuthnVerifier

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/auth",
    tags=["Passkeys"],
    dependencies=[Depends(require_webauthn_enabled)],
)


# =============================================================================
# Request / Response Schemas
# =============================================================================


class RegisterVerifyRequest(BaseModel):
    """WebAuthn registration response from the browser."""

    credential: dict[str, Any]
    device_name: str | None = Field(default=None, min_length=1, max_length=255)


class AuthenticateOptionsRequest(BaseModel):
    """Optional account hint for the sign-in ceremony."""

    username: str | None = Field(default=None, max_length=255)


class AuthenticateVerifyRequest(BaseModel):
    """WebAuthn authentication response from the browser."""

    credential: dict[str, Any]


class RenameRequest(BaseModel):
    """New label for a passkey."""

    device_name: str = Field(min_length=1, max_length=255)


class PasskeyInfo(BaseModel):
    """Public info about a registered passkey."""

    id: str
    device_name: str | None
    created_at: datetime | None
    last_used_at: datetime | None
    transports: list[str] | None = None

    @classmethod
    def from_credential(cls, credential: Credential) -> "PasskeyInfo":
        return cls(
            id=credential.id,
            device_name=credential.device_name,
            created_at=credential.created_at,
            last_used_at=credential.last_used_at,
            transports=credential.transports,
        )


class PasskeyListResponse(BaseModel):
    """List of registered passkeys."""

    passkeys: list[PasskeyInfo]


class RegisterVerifyResponse(BaseModel):
    status: str = "ok"
    message: str = "Passkey registered successfully"
    passkey: PasskeyInfo


class AuthenticateVerifyResponse(BaseModel):
    token: str
    username: str
    message: str = "Passkey authentication successful"


class StatusResponse(BaseModel):
    status: str = "ok"
    message: str


# =============================================================================
# Registration Endpoints
# =============================================================================


@router.post("/passkey/register/options")
@limiter.limit(CEREMONY_LIMIT)
async def passkey_register_options(
    request: Request,
    ctx: FullSession,
    session: AsyncSession = Depends(get_db),
    config: WebAuthnConfig = Depends(get_webauthn_config),
    verifier: WebAuthnVerifier = Depends(get_verifier),
) -> dict[str, Any]:
    """Generate WebAuthn creation options for the signed-in account."""
    account = AccountInfo(account_id=ctx.account_id, name=ctx.account_id, display_name=ctx.account_id)
    return await RegistrationCeremony(session, config, verifier).begin(account)


@router.post("/passkey/register/verify", response_model=RegisterVerifyResponse)
@limiter.limit(CEREMONY_LIMIT)
async def passkey_register_verify(
    request: Request,
    body: RegisterVerifyRequest,
    ctx: FullSession,
    session: AsyncSession = Depends(get_db),
    config: WebAuthnConfig = Depends(get_webauthn_config),
    verifier: WebAuthnVerifier = Depends(get_verifier),
) -> RegisterVerifyResponse:
    """Verify the attestation and store the credential."""
    credential = await RegistrationCeremony(session, config, verifier).complete(
        ctx.account_id,
        body.credential,
        label=body.device_name,
        user_agent=request.headers.get("User-Agent"),
    )
    return RegisterVerifyResponse(passkey=PasskeyInfo.from_credential(credential))


# =============================================================================
# Authentication Endpoints
# =============================================================================


@router.post("/passkey/authenticate/options")
@limiter.limit(CEREMONY_LIMIT)
async def passkey_authenticate_options(
    request: Request,
    body: AuthenticateOptionsRequest | None = None,
    session: AsyncSession = Depends(get_db),
    config: WebAuthnConfig = Depends(get_webauthn_config),
    verifier: WebAuthnVerifier = Depends(get_verifier),
) -> dict[str, Any]:
    """Generate WebAuthn request options.

    A pending session is scoped to its own account. Otherwise an optional
    username hint narrows the allow list; an unknown hint falls back to a
    usernameless request so account existence is not revealed.
    """
    ctx = current_session(request)
    ceremony = AuthenticationCeremony(session, config, verifier)

    account_id: str | None = None
    if ctx.mfa_pending:
        account_id = ctx.account_id
    elif body is not None and body.username:
        if await ceremony.credentials.has_any(body.username):
            account_id = body.username

    return await ceremony.begin(account_id)


@router.post("/passkey/authenticate/verify", response_model=AuthenticateVerifyResponse)
@limiter.limit(LOGIN_LIMIT)
async def passkey_authenticate_verify(
    request: Request,
    body: AuthenticateVerifyRequest,
    response: Response,
    session: AsyncSession = Depends(get_db),
    config: WebAuthnConfig = Depends(get_webauthn_config),
    verifier: WebAuthnVerifier = Depends(get_verifier),
    gate: MfaGate = Depends(get_mfa_gate),
) -> AuthenticateVerifyResponse:
    """Verify the assertion and sign the owning account in.

    Completes the second factor when the session was pending for the
    same account; otherwise this is a passwordless login.
    """
    ceremony = AuthenticationCeremony(session, config, verifier)
    result = await ceremony.complete(body.credential)

    passkeys = await ceremony.credentials.count(result.account_id)
    ctx = gate.on_ceremony_complete(current_session(request), result.account_id, passkeys)
    token = establish_session(response, ctx, _settings_mod.get_settings())

    return AuthenticateVerifyResponse(token=token, username=result.account_id)


# =============================================================================
# Passkey Management Endpoints
# =============================================================================


@router.get("/passkeys", response_model=PasskeyListResponse)
async def list_passkeys(
    ctx: FullSession,
    session: AsyncSession = Depends(get_db),
) -> PasskeyListResponse:
    """List the signed-in account's passkeys, newest first."""
    credentials = await CredentialManager(session).list_for_account(ctx.account_id)
    return PasskeyListResponse(passkeys=[PasskeyInfo.from_credential(c) for c in credentials])


@router.patch("/passkeys/{passkey_id}", response_model=PasskeyInfo)
async def rename_passkey(
    passkey_id: str,
    body: RenameRequest,
    ctx: FullSession,
    session: AsyncSession = Depends(get_db),
) -> PasskeyInfo:
    """Change a passkey's device label."""
    label = body.device_name.strip()
    if not label:
        raise ValidationError("Device name must not be blank")

    credential = await CredentialManager(session).rename(passkey_id, ctx.account_id, label)
    await session.commit()
    return PasskeyInfo.from_credential(credential)


@router.delete("/passkeys/{passkey_id}", response_model=StatusResponse)
async def delete_passkey(
    passkey_id: str,
    ctx: FullSession,
    session: AsyncSession = Depends(get_db),
    config: WebAuthnConfig = Depends(get_webauthn_config),
) -> StatusResponse:
    """Remove a passkey.

    With MFA_REQUIRED on, an account may not remove its last passkey.
    """
    manager = CredentialManager(session)
    await manager.soft_delete(passkey_id, ctx.account_id, keep_last=config.mfa_required)
    await session.commit()

    audit.log_security_event(
        audit.CREDENTIAL_DELETED,
        success=True,
        account_id=ctx.account_id,
        credential=passkey_id,
    )
    return StatusResponse(message="Passkey deleted")
