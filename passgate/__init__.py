"""Passgate: WebAuthn passkey relying party with a session MFA gate."""

__version__ = "0.1.0"
