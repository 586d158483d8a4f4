"""Challenge issuance, validation and single-use consumption.

Lifecycle of a challenge: issued (unused) -> consumed, or issued ->
expired. Consumption is one conditional UPDATE, so when two requests race
to complete the same ceremony exactly one of them sees a row change.
"""

import hashlib
import hmac
import logging
import secrets
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from passgate import encoding
from passgate.dal.base import store_errors
from passgate.dal.challenges import ChallengeRepository
from passgate.exceptions import (
    ChallengeNotFoundError,
    ChallengeTypeMismatchError,
    ValidationError,
)
from passgate.storage.entities import CEREMONY_REGISTRATION, CEREMONY_TYPES
from passgate.webauthn.config import WebAuthnConfig
from passgate.webauthn.records import Challenge, ChallengeData

logger = logging.getLogger(__name__)

CHALLENGE_BYTES = 32
DEFAULT_CONSUMED_RETENTION_HOURS = 24

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(UTC)


def derive_user_handle(key: bytes, account_id: str) -> str:
    """Stable, one-way WebAuthn user handle for an account.

    The raw account id never reaches the authenticator.
    """
    digest = hmac.new(key, account_id.encode(), hashlib.sha256).digest()
    return encoding.encode(digest)


class ChallengeManager:
    """Issues and checks ceremony challenges on a caller-owned session.

    The manager flushes but never commits; the ceremony decides when the
    transaction ends.
    """

    def __init__(
        self,
        session: AsyncSession,
        config: WebAuthnConfig,
        clock: Clock | None = None,
    ):
        self._repo = ChallengeRepository(session)
        self._config = config
        self._clock = clock or utcnow

    async def issue(
        self,
        ceremony_type: str,
        account_id: str | None = None,
        user_handle: str | None = None,
    ) -> ChallengeData:
        """Create and persist a fresh challenge.

        Args:
            ceremony_type: ``registration`` or ``authentication``
            account_id: Account the ceremony is for (required for registration)
            user_handle: Explicit user handle; derived from the account if omitted

        Returns:
            ChallengeData with the challenge text, expiry and client timeout

        Raises:
            ValidationError: Unknown ceremony type or registration without account
            PersistenceError: The challenge could not be stored
        """
        if ceremony_type not in CEREMONY_TYPES:
            raise ValidationError(f"Unknown ceremony type: {ceremony_type!r}")

        if ceremony_type == CEREMONY_REGISTRATION:
            if account_id is None:
                raise ValidationError("Registration challenges need an account")
            if user_handle is None:
                user_handle = derive_user_handle(self._config.user_handle_key, account_id)
        else:
            user_handle = None

        now = self._clock()
        expires_at = now + timedelta(seconds=self._config.challenge_ttl_seconds)
        text = encoding.encode(secrets.token_bytes(CHALLENGE_BYTES))

        with store_errors("challenge issue"):
            await self._repo.create(
                {
                    "challenge": text,
                    "user_handle": user_handle,
                    "account_id": account_id,
                    "ceremony_type": ceremony_type,
                    "created_at": now,
                    "expires_at": expires_at,
                    "used": False,
                }
            )

        logger.debug("Issued %s challenge for account %s", ceremony_type, account_id)
        return ChallengeData(
            challenge=text,
            ceremony_type=ceremony_type,
            expires_at=expires_at,
            timeout_ms=self._config.timeout_ms,
            account_id=account_id,
            user_handle=user_handle,
        )

    async def attach_options(self, challenge_text: str, options: dict[str, Any]) -> None:
        """Store the options structure that was sent to the client."""
        with store_errors("challenge options update"):
            updated = await self._repo.set_options(challenge_text, options)
        if not updated:
            raise ChallengeNotFoundError("Challenge is unknown or already used")

    async def validate(self, challenge_text: str, expected_type: str) -> Challenge:
        """Return the challenge if it is unused, unexpired and of the right type.

        Raises:
            MalformedEncodingError: The text is not base64url
            ChallengeNotFoundError: Unknown, used or expired
            ChallengeTypeMismatchError: Issued for the other ceremony
        """
        encoding.decode(challenge_text)

        with store_errors("challenge lookup"):
            row = await self._repo.get_valid(challenge_text, self._clock())
        if row is None:
            raise ChallengeNotFoundError("Challenge is unknown, used or expired")

        if row.ceremony_type != expected_type:
            raise ChallengeTypeMismatchError(
                f"Challenge was issued for {row.ceremony_type}",
                expected=expected_type,
                actual=row.ceremony_type,
            )
        return Challenge.from_row(row)

    async def consume(self, challenge_text: str) -> None:
        """Mark the challenge used.

        Raises:
            ChallengeNotFoundError: Another request consumed it first, or it expired
        """
        with store_errors("challenge consume"):
            updated = await self._repo.mark_used(challenge_text, self._clock())
        if not updated:
            raise ChallengeNotFoundError("Challenge was already used or has expired")

    async def sweep_expired(self) -> int:
        """Delete challenges past their expiry. Returns rows removed."""
        with store_errors("expired challenge sweep"):
            deleted = await self._repo.delete_expired(self._clock())
        if deleted:
            logger.info("Swept %d expired challenges", deleted)
        return deleted

    async def sweep_consumed(self, older_than_hours: int = DEFAULT_CONSUMED_RETENTION_HOURS) -> int:
        """Delete used challenges created more than ``older_than_hours`` ago."""
        cutoff = self._clock() - timedelta(hours=older_than_hours)
        with store_errors("consumed challenge sweep"):
            deleted = await self._repo.delete_used_before(cutoff)
        if deleted:
            logger.info("Swept %d consumed challenges", deleted)
        return deleted
