"""Unit tests for challenge extraction from browser responses."""

import pytest

from passgate.exceptions import MalformedEncodingError
from passgate.webauthn.ceremony import extract_challenge
from tests.helpers.webauthn import b64url, make_assertion


class TestExtractChallenge:
    def test_reads_challenge_from_client_data(self):
        assert extract_challenge(make_assertion("Y2hhbGxlbmdl")) == "Y2hhbGxlbmdl"

    def test_missing_response(self):
        with pytest.raises(MalformedEncodingError):
            extract_challenge({"id": "abc"})

    def test_client_data_not_base64url(self):
        with pytest.raises(MalformedEncodingError):
            extract_challenge({"response": {"clientDataJSON": "not base64!"}})

    def test_client_data_not_json(self):
        with pytest.raises(MalformedEncodingError):
            extract_challenge({"response": {"clientDataJSON": b64url(b"plainly not json")}})

    def test_client_data_without_challenge(self):
        with pytest.raises(MalformedEncodingError):
            extract_challenge({"response": {"clientDataJSON": b64url(b'{"type": "webauthn.get"}')}})

    def test_client_data_is_not_an_object(self):
        with pytest.raises(MalformedEncodingError):
            extract_challenge({"response": {"clientDataJSON": b64url(b"[1, 2]")}})
