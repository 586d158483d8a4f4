"""Database entity models.

All SQLAlchemy ORM models for Passgate.
"""

from passgate.storage.entities.passkey_credential import PasskeyCredential
from passgate.storage.entities.webauthn_challenge import (
    CEREMONY_AUTHENTICATION,
    CEREMONY_REGISTRATION,
    CEREMONY_TYPES,
    WebauthnChallenge,
)

__all__ = [
    "CEREMONY_AUTHENTICATION",
    "CEREMONY_REGISTRATION",
    "CEREMONY_TYPES",
    "PasskeyCredential",
    "WebauthnChallenge",
]
