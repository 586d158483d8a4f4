"""Passgate exception hierarchy.

Base exceptions for all application layers with correlation ID support.

Usage:
    from passgate.exceptions import CeremonyError, CloneSuspectedError

    try:
        result = await ceremony.complete(client_result)
    except CeremonyError as e:
        logger.warning("Ceremony failed: %s", e.kind, extra={"correlation_id": e.correlation_id})
"""

import uuid


class PassgateError(Exception):
    """Base exception for all Passgate application errors.

    Carries a correlation_id for tracing errors across layers.
    """

    def __init__(self, message: str, *, correlation_id: str | None = None):
        self.correlation_id = correlation_id or str(uuid.uuid4())
        super().__init__(message)

    @property
    def kind(self) -> str:
        """Internal error kind, e.g. ``clone_suspected``."""
        name = self.__class__.__name__.removesuffix("Error")
        out: list[str] = []
        for i, char in enumerate(name):
            if char.isupper() and i > 0:
                out.append("_")
            out.append(char.lower())
        return "".join(out)


class DALError(PassgateError):
    """Errors from data access layer operations."""

    pass


class PersistenceError(DALError):
    """A store read or write failed.

    Fatal to the current request; the transaction is rolled back so no
    partial state is left behind.
    """

    pass


class ValidationError(PassgateError):
    """Errors from input validation (beyond Pydantic)."""

    pass


class ConfigurationError(PassgateError):
    """Errors from application configuration."""

    pass


# =============================================================================
# Ceremony errors
# =============================================================================


class CeremonyError(PassgateError):
    """A WebAuthn ceremony step was rejected."""

    pass


class MalformedEncodingError(CeremonyError):
    """Text is not valid unpadded base64url."""

    pass


class ChallengeNotFoundError(CeremonyError):
    """No unused, unexpired challenge matches the given value."""

    pass


class ChallengeTypeMismatchError(CeremonyError):
    """The challenge was issued for the other ceremony type."""

    def __init__(self, message: str, *, expected: str | None = None, actual: str | None = None, **kwargs):
        self.expected = expected
        self.actual = actual
        super().__init__(message, **kwargs)


class ChallengeOwnershipMismatchError(CeremonyError):
    """The challenge was issued to a different account."""

    pass


class VerificationFailedError(CeremonyError):
    """The cryptographic verification collaborator rejected the response."""

    pass


class DuplicateCredentialError(CeremonyError):
    """The credential id is already registered (to any account)."""

    pass


class CredentialNotFoundError(CeremonyError):
    """No active credential matches."""

    pass


class CloneSuspectedError(CeremonyError):
    """Signature counter did not advance: the authenticator may be cloned."""

    def __init__(
        self,
        message: str,
        *,
        credential_id: str | None = None,
        stored_count: int | None = None,
        received_count: int | None = None,
        **kwargs,
    ):
        self.credential_id = credential_id
        self.stored_count = stored_count
        self.received_count = received_count
        super().__init__(message, **kwargs)


class UnauthorizedError(CeremonyError):
    """The caller does not own the credential it tried to modify."""

    pass


class LastCredentialError(ValidationError):
    """Refused to delete the last passkey while MFA is required."""

    pass
