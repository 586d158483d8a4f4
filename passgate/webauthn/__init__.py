"""WebAuthn ceremony core: challenges, credentials, verification."""

from passgate.webauthn.ceremony import AuthenticationCeremony, RegistrationCeremony
from passgate.webauthn.challenges import ChallengeManager
from passgate.webauthn.config import WebAuthnConfig
from passgate.webauthn.credentials import CredentialLookupPort, CredentialManager
from passgate.webauthn.records import (
    AccountInfo,
    AuthenticationResult,
    Challenge,
    ChallengeData,
    Credential,
    CredentialDescriptor,
    CredentialMetadata,
)
from passgate.webauthn.verifier import WebAuthnVerifier

__all__ = [
    "AccountInfo",
    "AuthenticationCeremony",
    "AuthenticationResult",
    "Challenge",
    "ChallengeData",
    "ChallengeManager",
    "Credential",
    "CredentialDescriptor",
    "CredentialLookupPort",
    "CredentialManager",
    "CredentialMetadata",
    "RegistrationCeremony",
    "WebAuthnConfig",
    "WebAuthnVerifier",
]
