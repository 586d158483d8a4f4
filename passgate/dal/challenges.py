"""Repository for WebAuthn challenges.

Every state change is a single conditional statement returning the
affected row count, so concurrent requests racing for the same challenge
resolve in the database rather than in process memory.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import delete, select, update

from passgate.dal.base import BaseRepository
from passgate.storage.entities import WebauthnChallenge


class ChallengeRepository(BaseRepository[WebauthnChallenge]):
    """Repository for WebauthnChallenge CRUD operations."""

    model = WebauthnChallenge

    async def get_valid(self, challenge: str, now: datetime) -> WebauthnChallenge | None:
        """Get an unused, unexpired challenge.

        Args:
            challenge: Base64url challenge text
            now: Current instant

        Returns:
            The row, or None when absent, used or expired
        """
        result = await self.session.execute(
            select(WebauthnChallenge)
            .where(
                WebauthnChallenge.challenge == challenge,
                WebauthnChallenge.used.is_(False),
                WebauthnChallenge.expires_at >= now,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def set_options(self, challenge: str, options: dict[str, Any]) -> int:
        """Store the issued options on a still-unused challenge.

        Returns:
            Number of rows updated (0 or 1)
        """
        result = await self.session.execute(
            update(WebauthnChallenge)
            .where(
                WebauthnChallenge.challenge == challenge,
                WebauthnChallenge.used.is_(False),
            )
            .values(options=options)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def mark_used(self, challenge: str, now: datetime) -> int:
        """Flip ``used`` to true if the challenge is still valid.

        Returns:
            Number of rows updated. 0 means another request already
            consumed it or it expired.
        """
        result = await self.session.execute(
            update(WebauthnChallenge)
            .where(
                WebauthnChallenge.challenge == challenge,
                WebauthnChallenge.used.is_(False),
                WebauthnChallenge.expires_at >= now,
            )
            .values(used=True)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def delete_expired(self, now: datetime) -> int:
        """Delete challenges whose expiry has passed.

        Returns:
            Number of rows deleted
        """
        result = await self.session.execute(
            delete(WebauthnChallenge)
            .where(WebauthnChallenge.expires_at < now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def delete_used_before(self, cutoff: datetime) -> int:
        """Delete used challenges created before ``cutoff``.

        Returns:
            Number of rows deleted
        """
        result = await self.session.execute(
            delete(WebauthnChallenge)
            .where(
                WebauthnChallenge.used.is_(True),
                WebauthnChallenge.created_at < cutoff,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
