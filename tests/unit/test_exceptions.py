"""Unit tests for the exception hierarchy and its HTTP mapping."""

import pytest

from passgate.api.main import status_code_for
from passgate.exceptions import (
    CeremonyError,
    ChallengeNotFoundError,
    ChallengeOwnershipMismatchError,
    ChallengeTypeMismatchError,
    CloneSuspectedError,
    CredentialNotFoundError,
    DuplicateCredentialError,
    LastCredentialError,
    MalformedEncodingError,
    PassgateError,
    PersistenceError,
    UnauthorizedError,
    VerificationFailedError,
)


class TestPassgateError:
    def test_generates_correlation_id(self):
        error = PassgateError("boom")
        assert error.correlation_id
        assert str(error) == "boom"

    def test_keeps_given_correlation_id(self):
        assert PassgateError("boom", correlation_id="abc").correlation_id == "abc"

    @pytest.mark.parametrize(
        ("error", "kind"),
        [
            (CloneSuspectedError("x"), "clone_suspected"),
            (ChallengeNotFoundError("x"), "challenge_not_found"),
            (MalformedEncodingError("x"), "malformed_encoding"),
            (PersistenceError("x"), "persistence"),
        ],
    )
    def test_kind(self, error, kind):
        assert error.kind == kind

    def test_clone_error_carries_counters(self):
        error = CloneSuspectedError("x", credential_id="c", stored_count=7, received_count=6)
        assert (error.credential_id, error.stored_count, error.received_count) == ("c", 7, 6)
        assert isinstance(error, CeremonyError)

    def test_type_mismatch_carries_types(self):
        error = ChallengeTypeMismatchError("x", expected="registration", actual="authentication")
        assert error.expected == "registration"
        assert error.actual == "authentication"


class TestStatusMapping:
    @pytest.mark.parametrize(
        ("error", "status"),
        [
            (MalformedEncodingError("x"), 400),
            (ChallengeNotFoundError("x"), 400),
            (ChallengeTypeMismatchError("x"), 400),
            (VerificationFailedError("x"), 401),
            (CloneSuspectedError("x"), 401),
            (ChallengeOwnershipMismatchError("x"), 403),
            (UnauthorizedError("x"), 403),
            (CredentialNotFoundError("x"), 404),
            (DuplicateCredentialError("x"), 409),
            (LastCredentialError("x"), 409),
            (PersistenceError("x"), 500),
            (PassgateError("x"), 500),
        ],
    )
    def test_status_code_for(self, error, status):
        assert status_code_for(error) == status
