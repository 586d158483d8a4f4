"""Registration and authentication ceremonies.

Each ``complete`` call runs in one transaction: validate the challenge,
verify the response against the stored options, write the credential
change, consume the challenge, commit. Any failure rolls back, so a
rejected ceremony never leaves a credential behind or burns a challenge.
"""

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from passgate import audit, encoding
from passgate.exceptions import (
    ChallengeNotFoundError,
    ChallengeOwnershipMismatchError,
    CloneSuspectedError,
    CredentialNotFoundError,
    MalformedEncodingError,
    PersistenceError,
    VerificationFailedError,
)
from passgate.storage.entities import CEREMONY_AUTHENTICATION, CEREMONY_REGISTRATION
from passgate.webauthn.challenges import ChallengeManager, Clock
from passgate.webauthn.config import WebAuthnConfig
from passgate.webauthn.credentials import CredentialManager
from passgate.webauthn.options import build_authentication_options, build_registration_options
from passgate.webauthn.records import (
    AccountInfo,
    AuthenticationResult,
    Credential,
    CredentialMetadata,
)
from passgate.webauthn.verifier import WebAuthnVerifier

logger = logging.getLogger(__name__)


def extract_challenge(client_result: dict[str, Any]) -> str:
    """Pull the challenge text out of ``response.clientDataJSON``.

    Raises:
        MalformedEncodingError: clientDataJSON is missing, not base64url,
            not JSON, or has no challenge
    """
    response = client_result.get("response") if isinstance(client_result, dict) else None
    client_data_b64 = response.get("clientDataJSON") if isinstance(response, dict) else None
    if not isinstance(client_data_b64, str):
        raise MalformedEncodingError("Missing clientDataJSON")

    raw = encoding.decode(client_data_b64)
    try:
        client_data = json.loads(raw)
    except (UnicodeDecodeError, ValueError) as e:
        raise MalformedEncodingError("clientDataJSON is not JSON") from e

    challenge = client_data.get("challenge") if isinstance(client_data, dict) else None
    if not isinstance(challenge, str) or not challenge:
        raise MalformedEncodingError("clientDataJSON carries no challenge")
    return challenge


class _Ceremony:
    def __init__(
        self,
        session: AsyncSession,
        config: WebAuthnConfig,
        verifier: WebAuthnVerifier,
        clock: Clock | None = None,
    ):
        self._session = session
        self._config = config
        self._verifier = verifier
        self.challenges = ChallengeManager(session, config, clock)
        self.credentials = CredentialManager(session, clock)

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[None]:
        """Commit on success, roll back on any error."""
        try:
            yield
            await self._session.commit()
        except SQLAlchemyError as e:
            await self._session.rollback()
            raise PersistenceError("Store failure while completing ceremony") from e
        except BaseException:
            await self._session.rollback()
            raise


class RegistrationCeremony(_Ceremony):
    """Adds a passkey to an already signed-in account."""

    async def begin(self, account: AccountInfo) -> dict[str, Any]:
        """Issue a challenge and return creation options for the browser."""
        async with self._transaction():
            issued = await self.challenges.issue(CEREMONY_REGISTRATION, account_id=account.account_id)
            exclude = await self.credentials.descriptors_for_account(account.account_id)
            options = build_registration_options(self._config, issued, account, exclude)
            await self.challenges.attach_options(issued.challenge, options)
        return options

    async def complete(
        self,
        account_id: str,
        client_result: dict[str, Any],
        label: str | None = None,
        user_agent: str | None = None,
    ) -> Credential:
        """Verify the attestation and store the new credential.

        Raises:
            ChallengeOwnershipMismatchError: Challenge was issued to another account
            VerificationFailedError: Attestation rejected
            DuplicateCredentialError: Credential id already stored
        """
        async with self._transaction():
            challenge_text = extract_challenge(client_result)
            challenge = await self.challenges.validate(challenge_text, CEREMONY_REGISTRATION)
            if challenge.account_id != account_id:
                raise ChallengeOwnershipMismatchError("Challenge was issued to another account")
            if not challenge.options:
                raise ChallengeNotFoundError("Challenge has no issued options")

            try:
                verified = self._verifier.verify_registration(client_result, challenge.options)
            except VerificationFailedError as e:
                audit.log_security_event(
                    audit.VERIFICATION_FAILED,
                    success=False,
                    account_id=account_id,
                    ceremony=CEREMONY_REGISTRATION,
                    correlation_id=e.correlation_id,
                )
                raise

            credential = await self.credentials.register(
                account_id,
                verified.credential_id,
                verified.public_key,
                verified.attestation_type,
                CredentialMetadata(
                    aaguid=verified.aaguid,
                    transports=verified.transports,
                    device_name=label,
                    user_agent=user_agent,
                ),
            )
            await self.challenges.consume(challenge_text)

        audit.log_security_event(
            audit.CREDENTIAL_REGISTERED,
            success=True,
            account_id=account_id,
            credential=credential.id,
        )
        return credential


class AuthenticationCeremony(_Ceremony):
    """Signs an account in (or completes its second factor) with a passkey."""

    async def begin(self, account_id: str | None = None) -> dict[str, Any]:
        """Issue a challenge and return request options.

        With no account the allow list is empty and the browser offers
        any discoverable credential for this RP.
        """
        async with self._transaction():
            issued = await self.challenges.issue(CEREMONY_AUTHENTICATION, account_id=account_id)
            allow = await self.credentials.descriptors_for_account(account_id) if account_id else []
            options = build_authentication_options(self._config, issued, allow)
            await self.challenges.attach_options(issued.challenge, options)
        return options

    async def complete(self, client_result: dict[str, Any]) -> AuthenticationResult:
        """Verify the assertion and advance the credential's counter.

        Raises:
            VerificationFailedError: Assertion rejected
            CredentialNotFoundError: Unknown or deactivated credential
            CloneSuspectedError: Signature counter did not advance
        """
        async with self._transaction():
            challenge_text = extract_challenge(client_result)
            challenge = await self.challenges.validate(challenge_text, CEREMONY_AUTHENTICATION)
            if not challenge.options:
                raise ChallengeNotFoundError("Challenge has no issued options")

            try:
                verified = await self._verifier.verify_authentication(
                    client_result, challenge.options, self.credentials
                )
            except VerificationFailedError as e:
                audit.log_security_event(
                    audit.VERIFICATION_FAILED,
                    success=False,
                    account_id=challenge.account_id,
                    ceremony=CEREMONY_AUTHENTICATION,
                    correlation_id=e.correlation_id,
                )
                raise

            credential = await self.credentials.find(verified.credential_id)
            if credential is None:
                raise CredentialNotFoundError("Unknown credential")

            try:
                updated = await self.credentials.record_usage(credential, verified.new_sign_count)
            except CloneSuspectedError as e:
                audit.log_security_event(
                    audit.CLONE_SUSPECTED,
                    success=False,
                    account_id=credential.account_id,
                    credential=credential.id,
                    stored_count=e.stored_count,
                    received_count=e.received_count,
                    correlation_id=e.correlation_id,
                )
                raise

            await self.challenges.consume(challenge_text)

        audit.log_security_event(
            audit.AUTHENTICATION_SUCCEEDED,
            success=True,
            account_id=updated.account_id,
            credential=updated.id,
        )
        return AuthenticationResult(account_id=updated.account_id, credential=updated)
