"""WebAuthn challenge entity model.

One row per issued ceremony nonce. The options sent to the browser are
stored alongside so that verification runs against exactly what the
client was given.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Index, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from passgate.storage.models import Base, UUIDMixin

CEREMONY_REGISTRATION = "registration"
CEREMONY_AUTHENTICATION = "authentication"
CEREMONY_TYPES = (CEREMONY_REGISTRATION, CEREMONY_AUTHENTICATION)


class WebauthnChallenge(Base, UUIDMixin):
    """Single-use challenge for a registration or authentication ceremony.

    A challenge is valid while ``used`` is false and ``expires_at`` has
    not passed. ``used`` only ever flips from false to true.
    """

    __tablename__ = "webauthn_challenge"
    __table_args__ = (
        Index("ix_webauthn_challenge_challenge", "challenge", unique=True),
        Index("ix_webauthn_challenge_expires_at", "expires_at"),
    )

    challenge: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        doc="Base64url challenge text (32 random bytes)",
    )
    user_handle: Mapped[str | None] = mapped_column(
        String(128),
        nullable=True,
        doc="Base64url user handle (registration ceremonies only)",
    )
    account_id: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        doc="Account the challenge was issued to (None for usernameless login)",
    )
    ceremony_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        doc="registration or authentication",
    )
    options: Mapped[dict[str, Any] | None] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"),
        nullable=True,
        doc="Options structure issued to the client",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        doc="When the challenge was issued",
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        doc="After this instant the challenge is rejected",
    )
    used: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        doc="Set once after a successful ceremony",
    )

    def __repr__(self) -> str:
        """Return string representation."""
        return (
            f"<WebauthnChallenge(type={self.ceremony_type!r}, "
            f"account_id={self.account_id!r}, used={self.used})>"
        )
