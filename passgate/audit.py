"""Security audit events.

Ceremony outcomes that indicate an attack (failed signature checks,
counter regressions) are written to the ``passgate.audit`` logger as
structured events. They are never swallowed: callers log here and then
re-raise.
"""

from typing import Any

import structlog

audit_logger = structlog.get_logger("passgate.audit")

# Event names
VERIFICATION_FAILED = "webauthn_verification_failed"
CLONE_SUSPECTED = "webauthn_clone_suspected"
CREDENTIAL_REGISTERED = "webauthn_credential_registered"
CREDENTIAL_DELETED = "webauthn_credential_deleted"
AUTHENTICATION_SUCCEEDED = "webauthn_authentication_succeeded"


def log_security_event(
    event_type: str,
    *,
    success: bool,
    account_id: str | None = None,
    **details: Any,
) -> None:
    """Record a security-relevant ceremony event.

    Failures are logged at WARNING so they surface with default log
    levels; successes at INFO.

    Args:
        event_type: One of the module-level event names.
        success: Whether the ceremony step succeeded.
        account_id: Owning account, when known.
        **details: Extra context (credential id, counters, error kind).
    """
    log = audit_logger.info if success else audit_logger.warning
    log(event_type, success=success, account_id=account_id, **details)
