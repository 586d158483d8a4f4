"""Repository for passkey credentials.

Lookups only ever see active rows, except ``exists`` which also checks
soft-deleted ones so a credential id can never be registered twice.
"""

from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.orm import aliased

from passgate.dal.base import BaseRepository
from passgate.storage.entities import PasskeyCredential


class CredentialRepository(BaseRepository[PasskeyCredential]):
    """Repository for PasskeyCredential CRUD operations."""

    model = PasskeyCredential

    async def exists(self, credential_id: str) -> bool:
        """Check whether any row (active or not) holds this credential id."""
        result = await self.session.execute(
            select(func.count(PasskeyCredential.id)).where(
                PasskeyCredential.credential_id == credential_id
            )
        )
        return (result.scalar() or 0) > 0

    async def get_active(self, credential_id: str) -> PasskeyCredential | None:
        """Get an active credential by its WebAuthn credential id."""
        result = await self.session.execute(
            select(PasskeyCredential)
            .where(
                PasskeyCredential.credential_id == credential_id,
                PasskeyCredential.is_active.is_(True),
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_active_by_id(self, id: str) -> PasskeyCredential | None:
        """Get an active credential by internal UUID."""
        result = await self.session.execute(
            select(PasskeyCredential)
            .where(
                PasskeyCredential.id == id,
                PasskeyCredential.is_active.is_(True),
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_active(self, account_id: str) -> list[PasskeyCredential]:
        """List an account's active credentials, newest first."""
        result = await self.session.execute(
            select(PasskeyCredential)
            .where(
                PasskeyCredential.account_id == account_id,
                PasskeyCredential.is_active.is_(True),
            )
            .order_by(PasskeyCredential.created_at.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def count_active(self, account_id: str) -> int:
        """Count an account's active credentials."""
        result = await self.session.execute(
            select(func.count(PasskeyCredential.id)).where(
                PasskeyCredential.account_id == account_id,
                PasskeyCredential.is_active.is_(True),
            )
        )
        return result.scalar() or 0

    async def advance_counter(self, credential_id: str, new_count: int, now: datetime) -> int:
        """Raise the signature counter if ``new_count`` is strictly greater.

        Returns:
            Number of rows updated. 0 means the stored counter was already
            at or above ``new_count`` (or the credential is gone).
        """
        result = await self.session.execute(
            update(PasskeyCredential)
            .where(
                PasskeyCredential.credential_id == credential_id,
                PasskeyCredential.is_active.is_(True),
                PasskeyCredential.sign_count < new_count,
            )
            .values(sign_count=new_count, last_used_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def touch(self, credential_id: str, now: datetime) -> int:
        """Refresh ``last_used_at`` without changing the counter."""
        result = await self.session.execute(
            update(PasskeyCredential)
            .where(
                PasskeyCredential.credential_id == credential_id,
                PasskeyCredential.is_active.is_(True),
            )
            .values(last_used_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def deactivate(self, id: str, account_id: str) -> int:
        """Soft-delete an active credential owned by ``account_id``."""
        result = await self.session.execute(
            update(PasskeyCredential)
            .where(
                PasskeyCredential.id == id,
                PasskeyCredential.account_id == account_id,
                PasskeyCredential.is_active.is_(True),
            )
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def lock_active(self, account_id: str) -> list[str]:
        """Row-lock an account's active credentials until the transaction ends.

        Backends without SELECT ... FOR UPDATE (SQLite) already serialize writers.
        """
        result = await self.session.execute(
            select(PasskeyCredential.id)
            .where(
                PasskeyCredential.account_id == account_id,
                PasskeyCredential.is_active.is_(True),
            )
            .with_for_update()
        )
        return list(result.scalars().all())

    async def deactivate_unless_last(self, id: str, account_id: str) -> int:
        """Soft-delete an owned credential only while the account keeps another.

        The active count is evaluated inside the UPDATE, so two deletes
        racing for an account's last two credentials cannot both succeed.

        Returns:
            Number of rows updated. 0 means the credential is gone, not
            owned by ``account_id``, or the account's last active one.
        """
        sibling = aliased(PasskeyCredential)
        remaining = (
            select(func.count(sibling.id))
            .where(
                sibling.account_id == account_id,
                sibling.is_active.is_(True),
            )
            .scalar_subquery()
        )
        result = await self.session.execute(
            update(PasskeyCredential)
            .where(
                PasskeyCredential.id == id,
                PasskeyCredential.account_id == account_id,
                PasskeyCredential.is_active.is_(True),
                remaining > 1,
            )
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def set_label(self, id: str, account_id: str, label: str) -> int:
        """Rename an active credential owned by ``account_id``."""
        result = await self.session.execute(
            update(PasskeyCredential)
            .where(
                PasskeyCredential.id == id,
                PasskeyCredential.account_id == account_id,
                PasskeyCredential.is_active.is_(True),
            )
            .values(device_name=label)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
