"""Unit tests for the py_webauthn verification adapter.

The library calls are patched; these tests pin what the adapter passes
in (stored options, neutral sign count) and what it hands back.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from passgate import encoding
from passgate.exceptions import (
    CredentialNotFoundError,
    MalformedEncodingError,
    VerificationFailedError,
)
from passgate.webauthn.records import Credential
from passgate.webauthn.verifier import WebAuthnVerifier
from tests.helpers.webauthn import ORIGIN, make_assertion, make_attestation, make_config

CHALLENGE = encoding.encode(b"c" * 32)
CRED_ID = encoding.encode(b"credential-id-1")

REGISTRATION_OPTIONS = {
    "challenge": CHALLENGE,
    "rp": {"name": "Passgate Test", "id": "localhost"},
    "pubKeyCredParams": [{"type": "public-key", "alg": -7}, {"type": "public-key", "alg": -257}],
    "authenticatorSelection": {"userVerification": "required"},
}

AUTHENTICATION_OPTIONS = {
    "challenge": CHALLENGE,
    "rpId": "localhost",
    "allowCredentials": [],
    "userVerification": "preferred",
}


def _stored(sign_count: int = 41) -> Credential:
    return Credential(
        id="row-1",
        account_id="alice",
        credential_id=CRED_ID,
        public_key=b"stored-public-key",
        attestation_type="none",
        sign_count=sign_count,
        is_active=True,
    )


class TestVerifyRegistration:
    def test_passes_stored_options_to_library(self):
        verifier = WebAuthnVerifier(make_config())
        library_result = SimpleNamespace(
            credential_id=b"credential-id-1",
            credential_public_key=b"cose-key",
            sign_count=0,
            aaguid="adce0002-35bc-c60a-648b-0b25f1f05503",
            fmt=SimpleNamespace(value="packed"),
        )

        with patch(
            "passgate.webauthn.verifier.verify_registration_response",
            return_value=library_result,
        ) as mock_verify:
            result = verifier.verify_registration(make_attestation(CHALLENGE), REGISTRATION_OPTIONS)

        kwargs = mock_verify.call_args.kwargs
        assert kwargs["expected_challenge"] == b"c" * 32
        assert kwargs["expected_rp_id"] == "localhost"
        assert kwargs["expected_origin"] == ORIGIN
        assert kwargs["require_user_verification"] is True
        assert [int(a) for a in kwargs["supported_pub_key_algs"]] == [-7, -257]

        assert result.credential_id == CRED_ID
        assert result.public_key == b"cose-key"
        assert result.attestation_type == "packed"
        assert result.aaguid == "adce0002-35bc-c60a-648b-0b25f1f05503"
        assert result.transports == ["internal", "hybrid"]

    def test_library_failure_becomes_verification_failed(self):
        verifier = WebAuthnVerifier(make_config())
        with patch(
            "passgate.webauthn.verifier.verify_registration_response",
            side_effect=ValueError("bad signature"),
        ):
            with pytest.raises(VerificationFailedError):
                verifier.verify_registration(make_attestation(CHALLENGE), REGISTRATION_OPTIONS)


@pytest.mark.asyncio
class TestVerifyAuthentication:
    async def test_uses_stored_key_and_neutral_sign_count(self):
        verifier = WebAuthnVerifier(make_config())
        lookup = AsyncMock()
        lookup.find.return_value = _stored(sign_count=41)

        with patch(
            "passgate.webauthn.verifier.verify_authentication_response",
            return_value=SimpleNamespace(new_sign_count=42),
        ) as mock_verify:
            result = await verifier.verify_authentication(
                make_assertion(CHALLENGE, CRED_ID), AUTHENTICATION_OPTIONS, lookup
            )

        lookup.find.assert_awaited_once_with(CRED_ID)
        kwargs = mock_verify.call_args.kwargs
        assert kwargs["credential_public_key"] == b"stored-public-key"
        assert kwargs["credential_current_sign_count"] == 0
        assert kwargs["expected_rp_id"] == "localhost"
        assert kwargs["require_user_verification"] is False
        assert result.credential_id == CRED_ID
        assert result.new_sign_count == 42

    async def test_unknown_credential(self):
        lookup = AsyncMock()
        lookup.find.return_value = None
        with pytest.raises(CredentialNotFoundError):
            await WebAuthnVerifier(make_config()).verify_authentication(
                make_assertion(CHALLENGE, CRED_ID), AUTHENTICATION_OPTIONS, lookup
            )

    async def test_credential_outside_allow_list_is_rejected(self):
        lookup = AsyncMock()
        options = {**AUTHENTICATION_OPTIONS, "allowCredentials": [{"id": "b3RoZXI", "type": "public-key"}]}
        with pytest.raises(VerificationFailedError):
            await WebAuthnVerifier(make_config()).verify_authentication(
                make_assertion(CHALLENGE, CRED_ID), options, lookup
            )
        lookup.find.assert_not_awaited()

    async def test_library_failure_becomes_verification_failed(self):
        lookup = AsyncMock()
        lookup.find.return_value = _stored()
        with patch(
            "passgate.webauthn.verifier.verify_authentication_response",
            side_effect=Exception("signature mismatch"),
        ):
            with pytest.raises(VerificationFailedError):
                await WebAuthnVerifier(make_config()).verify_authentication(
                    make_assertion(CHALLENGE, CRED_ID), AUTHENTICATION_OPTIONS, lookup
                )

    async def test_missing_id(self):
        response = make_assertion(CHALLENGE, CRED_ID)
        del response["id"]
        del response["rawId"]
        with pytest.raises(VerificationFailedError):
            await WebAuthnVerifier(make_config()).verify_authentication(
                response, AUTHENTICATION_OPTIONS, AsyncMock()
            )

    async def test_malformed_id(self):
        with pytest.raises(MalformedEncodingError):
            await WebAuthnVerifier(make_config()).verify_authentication(
                make_assertion(CHALLENGE, "not+base64"), AUTHENTICATION_OPTIONS, AsyncMock()
            )
