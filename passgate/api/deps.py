"""Shared FastAPI dependencies.

Provides common dependency callables used across route modules. Tests
replace the verifier through ``app.dependency_overrides``.
"""

from collections.abc import AsyncGenerator

from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

import passgate.settings as _settings_mod
from passgate.mfa import MfaGate
from passgate.storage import get_session
from passgate.webauthn.config import WebAuthnConfig
from passgate.webauthn.verifier import WebAuthnVerifier


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session scoped to a single request."""
    async with get_session() as session:
        yield session


def get_webauthn_config() -> WebAuthnConfig:
    return WebAuthnConfig.from_settings(_settings_mod.get_settings())


def get_verifier() -> WebAuthnVerifier:
    return WebAuthnVerifier(get_webauthn_config())


def get_mfa_gate() -> MfaGate:
    return MfaGate.from_settings(_settings_mod.get_settings())


async def require_webauthn_enabled() -> None:
    """Hide passkey endpoints entirely when the feature is switched off."""
    if not _settings_mod.get_settings().webauthn_enabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found.")
