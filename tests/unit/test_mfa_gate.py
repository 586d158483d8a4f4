"""Unit tests for the session second-factor gate."""

from passgate.mfa import DEFAULT_EXEMPT_PATHS, MfaGate, SessionContext

AUTH_OPTIONS = "/api/v1/auth/passkey/authenticate/options"
AUTH_VERIFY = "/api/v1/auth/passkey/authenticate/verify"


class TestPrimaryLogin:
    def test_arms_gate_when_account_has_passkeys(self):
        ctx = MfaGate().on_primary_login(SessionContext(), "alice", active_credentials=1)
        assert ctx.account_id == "alice"
        assert ctx.mfa_pending is True
        assert ctx.auth_methods == ("pwd",)

    def test_no_passkeys_means_no_gate(self):
        ctx = MfaGate().on_primary_login(SessionContext(), "alice", active_credentials=0)
        assert ctx.mfa_pending is False
        assert ctx.is_fully_authenticated

    def test_disabled_gate_never_arms(self):
        ctx = MfaGate(enabled=False).on_primary_login(SessionContext(), "alice", 3)
        assert ctx.mfa_pending is False

    def test_passwordless_marker_is_consumed(self):
        marked = SessionContext(passwordless_login=True, auth_methods=("passkey",))
        ctx = MfaGate().on_primary_login(marked, "alice", active_credentials=2)
        assert ctx.mfa_pending is False
        assert ctx.passwordless_login is False
        assert ctx.account_id == "alice"


class TestCeremonyComplete:
    def test_clears_pending_for_same_account(self):
        gate = MfaGate()
        pending = gate.on_primary_login(SessionContext(), "alice", 1)

        ctx = gate.on_ceremony_complete(pending, "alice", 1)

        assert ctx.account_id == "alice"
        assert ctx.mfa_pending is False
        assert ctx.auth_methods == ("pwd", "passkey")

    def test_anonymous_session_becomes_passwordless_login(self):
        ctx = MfaGate().on_ceremony_complete(SessionContext(), "bob", active_credentials=1)
        assert ctx.account_id == "bob"
        assert ctx.mfa_pending is False
        assert ctx.passwordless_login is False
        assert ctx.auth_methods == ("passkey",)

    def test_other_account_while_pending_logs_in_as_that_account(self):
        gate = MfaGate()
        pending = gate.on_primary_login(SessionContext(), "alice", 1)

        ctx = gate.on_ceremony_complete(pending, "bob", 1)

        assert ctx.account_id == "bob"
        assert ctx.mfa_pending is False


class TestIntercept:
    def test_redirects_while_pending(self):
        gate = MfaGate(redirect_url="/login/passkey")
        ctx = SessionContext(account_id="alice", mfa_pending=True)
        assert gate.intercept(ctx, "/api/v1/auth/passkeys") == "/login/passkey"
        assert gate.intercept(ctx, "/api/v1/auth/me") == "/login/passkey"

    def test_ceremony_endpoints_and_logout_are_exempt(self):
        gate = MfaGate()
        ctx = SessionContext(account_id="alice", mfa_pending=True)
        for path in DEFAULT_EXEMPT_PATHS:
            assert gate.intercept(ctx, path) is None
        assert gate.intercept(ctx, AUTH_OPTIONS + "/") is None

    def test_redirect_target_itself_is_reachable(self):
        gate = MfaGate(redirect_url="/login/passkey")
        ctx = SessionContext(account_id="alice", mfa_pending=True)
        assert gate.intercept(ctx, "/login/passkey") is None

    def test_no_redirect_when_not_pending(self):
        gate = MfaGate()
        assert gate.intercept(SessionContext(account_id="alice"), "/api/v1/auth/passkeys") is None
        assert gate.intercept(SessionContext(), AUTH_VERIFY) is None

    def test_disabled_gate_never_redirects(self):
        ctx = SessionContext(account_id="alice", mfa_pending=True)
        assert MfaGate(enabled=False).intercept(ctx, "/api/v1/auth/passkeys") is None
