"""Unit tests for session tokens and their MFA claims."""

import pytest
from starlette.requests import Request

from passgate.api.auth import (
    JWT_COOKIE_NAME,
    _get_jwt_secret,
    create_jwt_token,
    current_session,
    decode_jwt_token,
    session_from_claims,
)
from passgate.exceptions import ConfigurationError
from passgate.mfa import SessionContext
from tests.helpers.auth import JWT_SECRET, make_test_jwt, make_test_settings


def _request(headers: dict[str, str] | None = None) -> Request:
    raw = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    return Request({"type": "http", "method": "GET", "path": "/", "headers": raw})


class TestTokens:
    def test_round_trip_keeps_mfa_claims(self):
        settings = make_test_settings()
        ctx = SessionContext(account_id="alice", mfa_pending=True, auth_methods=("pwd",))

        payload = decode_jwt_token(create_jwt_token(ctx, settings), settings)

        assert payload["sub"] == "alice"
        assert payload["mfa"] is True
        assert payload["amr"] == ["pwd"]
        assert payload["exp"] > payload["iat"]

    def test_anonymous_context_cannot_be_tokenised(self):
        with pytest.raises(ValueError):
            create_jwt_token(SessionContext(), make_test_settings())

    def test_wrong_secret_is_rejected(self):
        token = make_test_jwt(secret="some-other-secret-that-is-long-enough!!")
        assert decode_jwt_token(token, make_test_settings()) is None

    def test_expired_token_is_rejected(self):
        assert decode_jwt_token(make_test_jwt(exp_hours=-1), make_test_settings()) is None


class TestJwtSecret:
    def test_production_requires_secret(self):
        settings = make_test_settings(environment="production", jwt_secret="")
        with pytest.raises(ConfigurationError):
            _get_jwt_secret(settings)

    def test_development_derives_from_password(self):
        settings = make_test_settings(environment="development", jwt_secret="")
        assert _get_jwt_secret(settings) == "passgate-jwt-test-password-auto"

    def test_configured_secret_wins(self):
        assert _get_jwt_secret(make_test_settings()) == JWT_SECRET


class TestSessionFromClaims:
    def test_missing_subject_is_anonymous(self):
        assert session_from_claims({"mfa": True}) == SessionContext()
        assert session_from_claims(None) == SessionContext()

    def test_claims_map_onto_context(self):
        ctx = session_from_claims({"sub": "alice", "mfa": False, "amr": ["pwd", "passkey"]})
        assert ctx.account_id == "alice"
        assert ctx.mfa_pending is False
        assert ctx.auth_methods == ("pwd", "passkey")
        assert ctx.is_fully_authenticated

    def test_malformed_amr_is_ignored(self):
        assert session_from_claims({"sub": "alice", "amr": "pwd"}).auth_methods == ()


class TestCurrentSession:
    def test_reads_bearer_token(self):
        settings = make_test_settings()
        request = _request({"Authorization": f"Bearer {make_test_jwt(sub='alice', mfa=True)}"})

        ctx = current_session(request, settings)

        assert ctx.account_id == "alice"
        assert ctx.mfa_pending is True

    def test_reads_cookie(self):
        settings = make_test_settings()
        request = _request({"Cookie": f"{JWT_COOKIE_NAME}={make_test_jwt(sub='bob')}"})
        assert current_session(request, settings).account_id == "bob"

    def test_invalid_token_is_anonymous(self):
        ctx = current_session(_request({"Authorization": "Bearer garbage"}), make_test_settings())
        assert not ctx.is_authenticated

    def test_no_token_is_anonymous(self):
        assert current_session(_request(), make_test_settings()) == SessionContext()
