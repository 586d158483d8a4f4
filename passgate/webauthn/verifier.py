"""Adapter around py_webauthn's response verification.

Verification always runs against the options stored with the challenge,
never against values rebuilt from current settings. Any library failure
surfaces as VerificationFailedError.
"""

import logging
from typing import Any

from webauthn import verify_authentication_response, verify_registration_response
from webauthn.helpers.cose import COSEAlgorithmIdentifier

from passgate import encoding
from passgate.exceptions import CredentialNotFoundError, VerificationFailedError
from passgate.webauthn.config import WebAuthnConfig
from passgate.webauthn.credentials import CredentialLookupPort
from passgate.webauthn.records import VerifiedAuthentication, VerifiedRegistration

logger = logging.getLogger(__name__)


def _credential_id_from(client_result: dict[str, Any]) -> str:
    """Unpadded base64url credential id from a PublicKeyCredential JSON."""
    raw_id = client_result.get("rawId") or client_result.get("id")
    if not isinstance(raw_id, str) or not raw_id:
        raise VerificationFailedError("Credential response has no id")
    encoding.decode(raw_id)
    return raw_id.rstrip("=")


class WebAuthnVerifier:
    """Checks attestation and assertion responses.

    The library's own sign-count comparison is neutralised (stored count
    passed as 0); CredentialManager.record_usage owns clone detection.
    """

    def __init__(self, config: WebAuthnConfig):
        self._config = config

    def verify_registration(
        self,
        client_result: dict[str, Any],
        options: dict[str, Any],
    ) -> VerifiedRegistration:
        """Verify an attestation response against the issued options.

        Raises:
            VerificationFailedError: Signature, origin, RP or challenge mismatch
        """
        try:
            selection = options.get("authenticatorSelection") or {}
            algorithms = [
                COSEAlgorithmIdentifier(param["alg"])
                for param in options.get("pubKeyCredParams", [])
            ]
            result = verify_registration_response(
                credential=client_result,
                expected_challenge=encoding.decode(options["challenge"]),
                expected_rp_id=options["rp"]["id"],
                expected_origin=self._config.expected_origin,
                require_user_verification=selection.get("userVerification") == "required",
                supported_pub_key_algs=algorithms or None,
            )
        except Exception as e:
            logger.warning("Passkey registration verification failed: %s", e)
            raise VerificationFailedError("Registration response could not be verified") from e

        response = client_result.get("response") or {}
        transports = response.get("transports")
        return VerifiedRegistration(
            credential_id=encoding.encode(result.credential_id),
            public_key=result.credential_public_key,
            attestation_type=getattr(result.fmt, "value", str(result.fmt)),
            sign_count=result.sign_count,
            aaguid=result.aaguid or None,
            transports=list(transports) if isinstance(transports, list) else None,
        )

    async def verify_authentication(
        self,
        client_result: dict[str, Any],
        options: dict[str, Any],
        credentials: CredentialLookupPort,
    ) -> VerifiedAuthentication:
        """Verify an assertion response against the issued options.

        Args:
            client_result: PublicKeyCredential JSON posted by the browser
            options: Options stored with the challenge
            credentials: Source of the stored public key

        Raises:
            CredentialNotFoundError: No active credential with this id
            VerificationFailedError: Credential not allowed, or signature check failed
        """
        credential_id = _credential_id_from(client_result)

        allowed = {c["id"] for c in options.get("allowCredentials") or []}
        if allowed and credential_id not in allowed:
            raise VerificationFailedError("Credential was not offered for this ceremony")

        stored = await credentials.find(credential_id)
        if stored is None:
            raise CredentialNotFoundError("Unknown credential")

        try:
            result = verify_authentication_response(
                credential=client_result,
                expected_challenge=encoding.decode(options["challenge"]),
                expected_rp_id=options["rpId"],
                expected_origin=self._config.expected_origin,
                credential_public_key=stored.public_key,
                credential_current_sign_count=0,
                require_user_verification=options.get("userVerification") == "required",
            )
        except Exception as e:
            logger.warning("Passkey authentication verification failed: %s", e)
            raise VerificationFailedError("Authentication response could not be verified") from e

        return VerifiedAuthentication(
            credential_id=credential_id,
            new_sign_count=result.new_sign_count,
        )
