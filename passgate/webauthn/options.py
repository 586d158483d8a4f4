"""Builds WebAuthn ceremony options with py_webauthn.

The challenge bytes and user handle come from the ChallengeManager; the
library only lays out the structure. The JSON form returned here is both
sent to the browser and stored on the challenge row.
"""

import json
from typing import Any, cast

from webauthn import generate_authentication_options, generate_registration_options, options_to_json
from webauthn.helpers.cose import COSEAlgorithmIdentifier
from webauthn.helpers.structs import (
    AttestationConveyancePreference,
    AuthenticatorSelectionCriteria,
    AuthenticatorTransport,
    PublicKeyCredentialDescriptor,
    PublicKeyCredentialType,
    ResidentKeyRequirement,
    UserVerificationRequirement,
)

from passgate import encoding
from passgate.webauthn.config import WebAuthnConfig
from passgate.webauthn.records import AccountInfo, ChallengeData, CredentialDescriptor

SUPPORTED_ALGORITHMS = [
    COSEAlgorithmIdentifier.ECDSA_SHA_256,
    COSEAlgorithmIdentifier.EDDSA,
    COSEAlgorithmIdentifier.RSASSA_PKCS1_v1_5_SHA_256,
]

_KNOWN_TRANSPORTS = {t.value for t in AuthenticatorTransport}


def _descriptors(credentials: list[CredentialDescriptor]) -> list[PublicKeyCredentialDescriptor]:
    descriptors = []
    for cred in credentials:
        transports = [
            AuthenticatorTransport(t) for t in (cred.transports or []) if t in _KNOWN_TRANSPORTS
        ]
        descriptors.append(
            PublicKeyCredentialDescriptor(
                id=encoding.decode(cred.credential_id),
                type=PublicKeyCredentialType.PUBLIC_KEY,
                transports=transports or None,
            )
        )
    return descriptors


def _options_to_dict(options: Any) -> dict[str, Any]:
    """Convert a py_webauthn options object to its WebAuthn JSON form."""
    return cast("dict[str, Any]", json.loads(options_to_json(options)))


def build_registration_options(
    config: WebAuthnConfig,
    challenge: ChallengeData,
    account: AccountInfo,
    exclude: list[CredentialDescriptor],
) -> dict[str, Any]:
    """Options for ``navigator.credentials.create()``.

    Args:
        config: Relying-party configuration
        challenge: Freshly issued registration challenge (with user handle)
        account: Account being enrolled
        exclude: The account's existing credentials
    """
    if challenge.user_handle is None:
        raise ValueError("Registration challenge carries no user handle")

    options = generate_registration_options(
        rp_id=config.rp_id,
        rp_name=config.rp_name,
        user_id=encoding.decode(challenge.user_handle),
        user_name=account.name,
        user_display_name=account.display_name,
        challenge=encoding.decode(challenge.challenge),
        timeout=challenge.timeout_ms,
        attestation=AttestationConveyancePreference(config.attestation),
        authenticator_selection=AuthenticatorSelectionCriteria(
            resident_key=ResidentKeyRequirement(config.resident_key),
            user_verification=UserVerificationRequirement(config.user_verification),
        ),
        exclude_credentials=_descriptors(exclude),
        supported_pub_key_algs=SUPPORTED_ALGORITHMS,
    )
    return _options_to_dict(options)


def build_authentication_options(
    config: WebAuthnConfig,
    challenge: ChallengeData,
    allow: list[CredentialDescriptor],
) -> dict[str, Any]:
    """Options for ``navigator.credentials.get()``.

    An empty ``allow`` list yields a usernameless (discoverable) request.
    """
    options = generate_authentication_options(
        rp_id=config.rp_id,
        challenge=encoding.decode(challenge.challenge),
        timeout=challenge.timeout_ms,
        allow_credentials=_descriptors(allow),
        user_verification=UserVerificationRequirement(config.user_verification),
    )
    return _options_to_dict(options)
