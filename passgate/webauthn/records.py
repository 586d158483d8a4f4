"""Immutable records handed out by the challenge and credential managers.

ORM rows stay inside the managers; callers only ever see these values,
so nothing outside a manager can change a counter or a ``used`` flag.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from passgate.storage.entities import PasskeyCredential, WebauthnChallenge


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive timestamps (SQLite drops the offset)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


@dataclass(frozen=True)
class ChallengeData:
    """What the caller needs after issuing a challenge."""

    challenge: str
    ceremony_type: str
    expires_at: datetime
    timeout_ms: int
    account_id: str | None = None
    user_handle: str | None = None


@dataclass(frozen=True)
class Challenge:
    """Snapshot of a stored challenge."""

    id: str
    challenge: str
    ceremony_type: str
    created_at: datetime
    expires_at: datetime
    used: bool
    account_id: str | None = None
    user_handle: str | None = None
    options: dict[str, Any] | None = None

    @classmethod
    def from_row(cls, row: WebauthnChallenge) -> "Challenge":
        return cls(
            id=str(row.id),
            challenge=row.challenge,
            ceremony_type=row.ceremony_type,
            created_at=as_utc(row.created_at),
            expires_at=as_utc(row.expires_at),
            used=row.used,
            account_id=row.account_id,
            user_handle=row.user_handle,
            options=row.options,
        )


@dataclass(frozen=True)
class CredentialMetadata:
    """Optional descriptive data captured at registration."""

    aaguid: str | None = None
    transports: list[str] | None = None
    device_name: str | None = None
    user_agent: str | None = None


@dataclass(frozen=True)
class CredentialDescriptor:
    """Credential id plus transports, for allow and exclude lists."""

    credential_id: str
    transports: list[str] | None = None


@dataclass(frozen=True)
class Credential:
    """Snapshot of a stored credential."""

    id: str
    account_id: str
    credential_id: str
    public_key: bytes
    attestation_type: str
    sign_count: int
    is_active: bool
    created_at: datetime | None = None
    last_used_at: datetime | None = None
    aaguid: str | None = None
    transports: list[str] | None = None
    device_name: str | None = None
    user_agent: str | None = None

    @classmethod
    def from_row(cls, row: PasskeyCredential) -> "Credential":
        return cls(
            id=str(row.id),
            account_id=row.account_id,
            credential_id=row.credential_id,
            public_key=row.public_key,
            attestation_type=row.attestation_type,
            sign_count=row.sign_count,
            is_active=row.is_active,
            created_at=as_utc(row.created_at),
            last_used_at=as_utc(row.last_used_at),
            aaguid=row.aaguid,
            transports=list(row.transports) if row.transports else None,
            device_name=row.device_name,
            user_agent=row.user_agent,
        )

    @property
    def descriptor(self) -> CredentialDescriptor:
        return CredentialDescriptor(self.credential_id, self.transports)


@dataclass(frozen=True)
class AccountInfo:
    """The account a registration ceremony is run for."""

    account_id: str
    name: str
    display_name: str


@dataclass(frozen=True)
class VerifiedRegistration:
    """Output of a successful attestation check."""

    credential_id: str
    public_key: bytes
    attestation_type: str
    sign_count: int = 0
    aaguid: str | None = None
    transports: list[str] | None = field(default=None)


@dataclass(frozen=True)
class VerifiedAuthentication:
    """Output of a successful assertion check."""

    credential_id: str
    new_sign_count: int


@dataclass(frozen=True)
class AuthenticationResult:
    """Who logged in, and with which (now updated) credential."""

    account_id: str
    credential: Credential
