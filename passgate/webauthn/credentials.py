"""Credential registration, lookup and usage tracking.

Clone detection: every authentication must present a signature counter
strictly greater than the stored one, unless the authenticator does not
implement counters at all and always reports zero.
"""

import dataclasses
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Protocol

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from passgate.dal.base import store_errors
from passgate.dal.credentials import CredentialRepository
from passgate.exceptions import (
    CloneSuspectedError,
    CredentialNotFoundError,
    DuplicateCredentialError,
    LastCredentialError,
    UnauthorizedError,
)
from passgate.webauthn.records import Credential, CredentialDescriptor, CredentialMetadata

logger = logging.getLogger(__name__)


class CredentialLookupPort(Protocol):
    """What the verifier needs to fetch a stored public key."""

    async def find(self, credential_id: str) -> Credential | None: ...


class CredentialManager:
    """Owns every mutation of stored credentials."""

    def __init__(
        self,
        session: AsyncSession,
        clock: Callable[[], datetime] | None = None,
    ):
        self._repo = CredentialRepository(session)
        self._clock = clock or (lambda: datetime.now(UTC))

    async def register(
        self,
        account_id: str,
        credential_id: str,
        public_key: bytes,
        attestation_type: str,
        metadata: CredentialMetadata | None = None,
    ) -> Credential:
        """Persist a newly attested credential with its counter at zero.

        Raises:
            DuplicateCredentialError: The id is already stored, for any account
            PersistenceError: Store failure
        """
        metadata = metadata or CredentialMetadata()

        with store_errors("credential lookup"):
            if await self._repo.exists(credential_id):
                raise DuplicateCredentialError("Credential is already registered")

        now = self._clock()
        with store_errors("credential insert"):
            try:
                row = await self._repo.create(
                    {
                        "account_id": account_id,
                        "credential_id": credential_id,
                        "public_key": public_key,
                        "attestation_type": attestation_type,
                        "aaguid": metadata.aaguid,
                        "sign_count": 0,
                        "transports": metadata.transports,
                        "device_name": metadata.device_name,
                        "user_agent": metadata.user_agent,
                        "is_active": True,
                        "created_at": now,
                        "updated_at": now,
                    }
                )
            except IntegrityError as e:
                raise DuplicateCredentialError("Credential is already registered") from e

        logger.info("Registered passkey %s for account %s", row.id, account_id)
        return Credential.from_row(row)

    async def find(self, credential_id: str) -> Credential | None:
        """Look up an active credential by its WebAuthn id."""
        with store_errors("credential lookup"):
            row = await self._repo.get_active(credential_id)
        return Credential.from_row(row) if row else None

    async def list_for_account(self, account_id: str) -> list[Credential]:
        """Active credentials of an account, newest first."""
        with store_errors("credential list"):
            rows = await self._repo.list_active(account_id)
        return [Credential.from_row(row) for row in rows]

    async def ids_for_account(self, account_id: str) -> list[str]:
        return [c.credential_id for c in await self.list_for_account(account_id)]

    async def descriptors_for_account(self, account_id: str) -> list[CredentialDescriptor]:
        return [c.descriptor for c in await self.list_for_account(account_id)]

    async def count(self, account_id: str) -> int:
        with store_errors("credential count"):
            return await self._repo.count_active(account_id)

    async def has_any(self, account_id: str) -> bool:
        return await self.count(account_id) > 0

    async def record_usage(self, credential: Credential, new_counter: int) -> Credential:
        """Apply the counter from a verified assertion.

        A nonzero counter must be strictly greater than the stored one. A
        zero counter means the authenticator has no counter; it is
        accepted and only refreshes ``last_used_at``.

        Returns:
            The credential with its new counter and last-used time

        Raises:
            CloneSuspectedError: Counter did not advance
            CredentialNotFoundError: The credential vanished meanwhile
        """
        if new_counter != 0 and new_counter <= credential.sign_count:
            raise CloneSuspectedError(
                "Signature counter did not increase",
                credential_id=credential.credential_id,
                stored_count=credential.sign_count,
                received_count=new_counter,
            )

        now = self._clock()
        with store_errors("credential usage update"):
            if new_counter == 0:
                updated = await self._repo.touch(credential.credential_id, now)
            else:
                updated = await self._repo.advance_counter(credential.credential_id, new_counter, now)

        if not updated:
            if new_counter == 0:
                raise CredentialNotFoundError("Credential is no longer active")
            # A concurrent authentication stored an equal or higher counter
            raise CloneSuspectedError(
                "Signature counter did not increase",
                credential_id=credential.credential_id,
                stored_count=credential.sign_count,
                received_count=new_counter,
            )

        return dataclasses.replace(
            credential,
            sign_count=max(credential.sign_count, new_counter),
            last_used_at=now,
        )

    async def _owned(self, id: str, owner_account_id: str) -> Credential:
        with store_errors("credential lookup"):
            row = await self._repo.get_active_by_id(id)
        if row is None:
            raise CredentialNotFoundError("Passkey not found")
        if row.account_id != owner_account_id:
            raise UnauthorizedError("Passkey belongs to another account")
        return Credential.from_row(row)

    async def soft_delete(self, id: str, owner_account_id: str, keep_last: bool = False) -> None:
        """Deactivate a credential. The id stays reserved.

        Args:
            keep_last: Refuse to remove the account's only active credential

        Raises:
            CredentialNotFoundError: No active credential with that internal id
            UnauthorizedError: Owned by another account
            LastCredentialError: ``keep_last`` is set and this is the last one
        """
        await self._owned(id, owner_account_id)
        with store_errors("credential delete"):
            if keep_last:
                await self._repo.lock_active(owner_account_id)
                updated = await self._repo.deactivate_unless_last(id, owner_account_id)
            else:
                updated = await self._repo.deactivate(id, owner_account_id)
            refused = keep_last and not updated and await self._repo.get_active_by_id(id) is not None
        if refused:
            raise LastCredentialError("Cannot remove the last passkey while MFA is required")
        if not updated:
            raise CredentialNotFoundError("Passkey not found")
        logger.info("Deactivated passkey %s for account %s", id, owner_account_id)

    async def rename(self, id: str, owner_account_id: str, new_label: str) -> Credential:
        """Change the device label of an owned credential."""
        credential = await self._owned(id, owner_account_id)
        with store_errors("credential rename"):
            updated = await self._repo.set_label(id, owner_account_id, new_label)
        if not updated:
            raise CredentialNotFoundError("Passkey not found")
        return dataclasses.replace(credential, device_name=new_label)
