"""Session second-factor gate.

After a password login, an account that owns at least one passkey is
left "pending" until it also completes a passkey ceremony. While
pending, every request except the passkey sign-in endpoints and logout
is redirected.

The gate is pure: it takes a SessionContext and returns a new one. The
HTTP layer (passgate.api) persists the result in the session token.
"""

from dataclasses import dataclass, replace

from passgate.settings import Settings

METHOD_PASSWORD = "pwd"
METHOD_PASSKEY = "passkey"

API_PREFIX = "/api/v1"

# Reachable while a second factor is pending
DEFAULT_EXEMPT_PATHS = frozenset(
    {
        f"{API_PREFIX}/auth/passkey/authenticate/options",
        f"{API_PREFIX}/auth/passkey/authenticate/verify",
        f"{API_PREFIX}/auth/logout",
    }
)


@dataclass(frozen=True)
class SessionContext:
    """Authentication state of one browser session.

    Attributes:
        account_id: Signed-in account, None when anonymous
        mfa_pending: Password accepted, passkey still required
        passwordless_login: One-shot marker set while a passkey ceremony
            logs the account in, so the login hook does not re-arm the gate
        auth_methods: Methods completed in this session (``pwd``, ``passkey``)
    """

    account_id: str | None = None
    mfa_pending: bool = False
    passwordless_login: bool = False
    auth_methods: tuple[str, ...] = ()

    @property
    def is_authenticated(self) -> bool:
        return self.account_id is not None

    @property
    def is_fully_authenticated(self) -> bool:
        return self.account_id is not None and not self.mfa_pending


class MfaGate:
    """State transitions for the pending-second-factor flag."""

    def __init__(
        self,
        enabled: bool = True,
        redirect_url: str = "/login/passkey",
        exempt_paths: frozenset[str] = DEFAULT_EXEMPT_PATHS,
    ):
        self.enabled = enabled
        self.redirect_url = redirect_url
        # The redirect target itself must stay reachable
        self.exempt_paths = exempt_paths | {redirect_url}

    @classmethod
    def from_settings(cls, settings: Settings) -> "MfaGate":
        return cls(enabled=settings.webauthn_enabled, redirect_url=settings.mfa_redirect_url)

    def on_primary_login(
        self,
        ctx: SessionContext,
        account_id: str,
        active_credentials: int,
    ) -> SessionContext:
        """Password login succeeded for ``account_id``.

        Arms the gate when the account owns a passkey, unless this login
        was itself performed by a passkey ceremony (one-shot marker).
        """
        if ctx.passwordless_login:
            return replace(ctx, account_id=account_id, passwordless_login=False, mfa_pending=False)

        return SessionContext(
            account_id=account_id,
            mfa_pending=self.enabled and active_credentials > 0,
            auth_methods=(METHOD_PASSWORD,),
        )

    def on_ceremony_complete(
        self,
        ctx: SessionContext,
        account_id: str,
        active_credentials: int,
    ) -> SessionContext:
        """A passkey authentication ceremony succeeded for ``account_id``.

        For the pending account this clears the gate. Otherwise the
        passkey is a full login for the account it belongs to.
        """
        if ctx.mfa_pending and ctx.account_id == account_id:
            return replace(
                ctx,
                mfa_pending=False,
                auth_methods=(*ctx.auth_methods, METHOD_PASSKEY),
            )

        marked = SessionContext(passwordless_login=True, auth_methods=(METHOD_PASSKEY,))
        logged_in = self.on_primary_login(marked, account_id, active_credentials)
        return replace(logged_in, mfa_pending=False)

    def intercept(self, ctx: SessionContext, path: str) -> str | None:
        """Return the redirect target if ``path`` must not run now."""
        if not self.enabled or not ctx.mfa_pending:
            return None
        if path.rstrip("/") in self.exempt_paths or path in self.exempt_paths:
            return None
        return self.redirect_url
