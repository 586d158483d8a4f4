"""Relying-party configuration passed explicitly to the ceremony layer."""

import logging
from dataclasses import dataclass

from passgate.exceptions import ConfigurationError
from passgate.settings import Settings

logger = logging.getLogger(__name__)

_DEV_USER_HANDLE_KEY = "passgate-dev-user-handle-key"


@dataclass(frozen=True)
class WebAuthnConfig:
    """Everything the managers and ceremonies need to know about the RP.

    Built once from Settings so the core never reads global state.
    """

    rp_id: str
    rp_name: str
    origins: tuple[str, ...]
    user_handle_key: bytes
    enabled: bool = True
    user_verification: str = "preferred"
    resident_key: str = "preferred"
    attestation: str = "none"
    challenge_ttl_seconds: int = 300
    mfa_required: bool = False

    @property
    def timeout_ms(self) -> int:
        """Client-side ceremony timeout, matching the challenge lifetime."""
        return self.challenge_ttl_seconds * 1000

    @property
    def expected_origin(self) -> str | list[str]:
        """Origin(s) in the shape py_webauthn accepts."""
        if len(self.origins) == 1:
            return self.origins[0]
        return list(self.origins)

    @classmethod
    def from_settings(cls, settings: Settings) -> "WebAuthnConfig":
        """Build the config from application settings.

        The user-handle HMAC key falls back to the JWT secret. Production
        refuses to start without one of them.
        """
        key = (
            settings.user_handle_secret.get_secret_value()
            or settings.jwt_secret.get_secret_value()
        )
        if not key:
            if settings.environment == "production":
                raise ConfigurationError(
                    "USER_HANDLE_SECRET or JWT_SECRET must be set in production."
                )
            logger.debug("No user handle secret configured, using development key")
            key = _DEV_USER_HANDLE_KEY

        origins = tuple(o.strip() for o in settings.webauthn_origin.split(",") if o.strip())
        if not origins:
            raise ConfigurationError("WEBAUTHN_ORIGIN must name at least one origin.")

        return cls(
            rp_id=settings.webauthn_rp_id,
            rp_name=settings.webauthn_rp_name,
            origins=origins,
            user_handle_key=key.encode(),
            enabled=settings.webauthn_enabled,
            user_verification=settings.webauthn_user_verification,
            resident_key=settings.webauthn_resident_key,
            attestation=settings.webauthn_attestation,
            challenge_ttl_seconds=settings.challenge_ttl_seconds,
            mfa_required=settings.mfa_required,
        )
