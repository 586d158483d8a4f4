"""Passkey credential entity model.

Stores WebAuthn credential public keys. Each row represents one
registered authenticator belonging to one account.
"""

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Index, Integer, LargeBinary, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from passgate.storage.models import Base, TimestampMixin, UUIDMixin


class PasskeyCredential(Base, UUIDMixin, TimestampMixin):
    """Stored WebAuthn credential.

    Rows are never hard-deleted by normal flows: removing a passkey sets
    ``is_active`` to false, and the credential id stays reserved.
    """

    __tablename__ = "passkey_credential"
    __table_args__ = (
        Index("ix_passkey_credential_credential_id", "credential_id", unique=True),
        Index("ix_passkey_credential_account_id", "account_id"),
    )

    account_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        doc="Owning account",
    )
    credential_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        doc="Base64url WebAuthn credential ID (unique per authenticator)",
    )
    public_key: Mapped[bytes] = mapped_column(
        LargeBinary,
        nullable=False,
        doc="COSE public key bytes for signature verification",
    )
    attestation_type: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default="none",
        doc="Attestation format reported at registration",
    )
    aaguid: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
        doc="Authenticator model identifier",
    )
    sign_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        doc="Signature counter for clone detection",
    )
    transports: Mapped[list | None] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"),
        nullable=True,
        doc='Authenticator transports (e.g. ["internal", "hybrid"])',
    )

    # User-facing metadata
    device_name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        doc="User-friendly device label (e.g. 'iPhone 15')",
    )
    user_agent: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        doc="User agent of the browser that registered the credential",
    )
    last_used_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        doc="When this credential was last used to authenticate",
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        doc="False once the owner removed the passkey",
    )

    def __repr__(self) -> str:
        """Return string representation."""
        return (
            f"<PasskeyCredential(device={self.device_name!r}, "
            f"account_id={self.account_id!r}, active={self.is_active})>"
        )
