"""Shared authentication helpers for API tests.

Provides make_test_settings() and make_test_jwt() used by the API
tests. Centralizes the JWT secret, Settings defaults, and token
generation.
"""

import time

import jwt as pyjwt
from pydantic import SecretStr

from passgate.settings import Settings

JWT_SECRET = "test-jwt-secret-key-for-testing-minimum-32bytes"

_SETTINGS_DEFAULTS: dict = {
    "environment": "testing",
    "debug": True,
    "database_url": "sqlite+aiosqlite:///:memory:",
    "auth_username": "admin",
    "auth_password": SecretStr("test-password"),
    "jwt_secret": SecretStr(JWT_SECRET),
    "jwt_expiry_hours": 72,
    "webauthn_enabled": True,
    "webauthn_rp_id": "localhost",
    "webauthn_origin": "http://localhost:3000",
    "user_handle_secret": SecretStr("test-user-handle-secret"),
    "mfa_required": False,
    "mfa_redirect_url": "/login/passkey",
    "scheduler_enabled": False,
}


def make_test_settings(**overrides: object) -> Settings:
    """Create test Settings with auth defaults.

    Args:
        **overrides: Field overrides to merge into defaults.

    Returns:
        A Settings instance for testing.
    """
    merged = {**_SETTINGS_DEFAULTS, **overrides}
    return Settings(**merged)


def make_test_jwt(
    sub: str = "admin",
    mfa: bool = False,
    amr: tuple[str, ...] = ("pwd",),
    secret: str = JWT_SECRET,
    exp_hours: int = 72,
) -> str:
    """Create a session JWT for testing.

    Args:
        sub: Subject claim (account).
        mfa: Whether a second factor is pending.
        amr: Completed authentication methods.
        secret: JWT signing secret.
        exp_hours: Hours until expiry (negative for an expired token).

    Returns:
        Encoded JWT string.
    """
    now = int(time.time())
    payload = {
        "sub": sub,
        "mfa": mfa,
        "amr": list(amr),
        "iat": now,
        "exp": now + exp_hours * 3600,
    }
    return pyjwt.encode(payload, secret, algorithm="HS256")
