"""Unit tests for password login, the MFA gate and session endpoints.

The full application is built so the gate middleware and the error
envelope run exactly as in production; the database session is a mock.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import bcrypt
import pytest
from httpx import ASGITransport, AsyncClient
from pydantic import SecretStr

from passgate.api.auth import JWT_COOKIE_NAME, decode_jwt_token
from passgate.api.deps import get_db
from passgate.api.main import create_app
from tests.helpers.auth import make_test_jwt, make_test_settings


@pytest.fixture
def mock_session():
    session = AsyncMock()
    session.commit = AsyncMock()
    session.add = MagicMock()
    return session


def _app_for(settings, session, monkeypatch=None):
    if monkeypatch is not None:
        monkeypatch.setattr("passgate.settings.get_settings", lambda: settings)
    application = create_app(settings)

    async def _override_db():
        yield session

    application.dependency_overrides[get_db] = _override_db
    return application


@pytest.fixture
def app(mock_settings, mock_session):
    return _app_for(mock_settings, mock_session)


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


def _manager(count: int = 0, has_any: bool | None = None) -> MagicMock:
    manager = MagicMock()
    manager.count = AsyncMock(return_value=count)
    manager.has_any = AsyncMock(return_value=count > 0 if has_any is None else has_any)
    return manager


@pytest.mark.asyncio
class TestLogin:
    async def test_login_without_passkeys_is_complete(self, client, mock_settings):
        with patch("passgate.api.routes.auth.CredentialManager", return_value=_manager(0)):
            response = await client.post(
                "/api/v1/auth/login",
                json={"username": "admin", "password": "test-password"},
            )

        assert response.status_code == 200
        body = response.json()
        assert body["mfa_pending"] is False
        assert body["redirect_url"] is None
        claims = decode_jwt_token(body["token"], mock_settings)
        assert claims["sub"] == "admin"
        assert claims["mfa"] is False
        assert claims["amr"] == ["pwd"]
        assert JWT_COOKIE_NAME in response.cookies

    async def test_login_with_passkey_leaves_session_pending(self, client, mock_settings):
        with patch("passgate.api.routes.auth.CredentialManager", return_value=_manager(2)):
            response = await client.post(
                "/api/v1/auth/login",
                json={"username": "admin", "password": "test-password"},
            )

        body = response.json()
        assert response.status_code == 200
        assert body["mfa_pending"] is True
        assert body["redirect_url"] == "/login/passkey"
        assert decode_jwt_token(body["token"], mock_settings)["mfa"] is True

    async def test_wrong_password(self, client):
        with patch("passgate.api.routes.auth.CredentialManager", return_value=_manager(0)):
            response = await client.post(
                "/api/v1/auth/login",
                json={"username": "admin", "password": "nope"},
            )

        assert response.status_code == 401
        assert response.json()["error"]["type"] == "http_error"

    async def test_wrong_username(self, client):
        response = await client.post(
            "/api/v1/auth/login",
            json={"username": "mallory", "password": "test-password"},
        )
        assert response.status_code == 401

    async def test_bcrypt_hash_takes_precedence(self, monkeypatch, mock_session):
        hashed = bcrypt.hashpw(b"hashed-secret", bcrypt.gensalt()).decode()
        settings = make_test_settings(auth_password_hash=SecretStr(hashed))
        application = _app_for(settings, mock_session, monkeypatch)

        async with AsyncClient(transport=ASGITransport(app=application), base_url="http://test") as c:
            with patch("passgate.api.routes.auth.CredentialManager", return_value=_manager(0)):
                ok = await c.post(
                    "/api/v1/auth/login", json={"username": "admin", "password": "hashed-secret"}
                )
                plain = await c.post(
                    "/api/v1/auth/login", json={"username": "admin", "password": "test-password"}
                )

        assert ok.status_code == 200
        assert plain.status_code == 401

    async def test_no_password_configured(self, monkeypatch, mock_session):
        settings = make_test_settings(auth_password=SecretStr(""))
        application = _app_for(settings, mock_session, monkeypatch)

        async with AsyncClient(transport=ASGITransport(app=application), base_url="http://test") as c:
            response = await c.post(
                "/api/v1/auth/login", json={"username": "admin", "password": "anything"}
            )

        assert response.status_code == 501


@pytest.mark.asyncio
class TestMfaGate:
    async def test_pending_session_is_redirected(self, client):
        token = make_test_jwt(mfa=True)
        response = await client.get(
            "/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"}
        )

        assert response.status_code == 303
        assert response.headers["location"] == "/login/passkey"

    async def test_pending_session_cannot_reach_health(self, client):
        token = make_test_jwt(mfa=True)
        response = await client.get("/api/v1/health", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 303

    async def test_logout_is_exempt(self, client):
        token = make_test_jwt(mfa=True)
        response = await client.post(
            "/api/v1/auth/logout", headers={"Authorization": f"Bearer {token}"}
        )
        assert response.status_code == 200

    async def test_redirect_target_is_exempt(self, client):
        token = make_test_jwt(mfa=True)
        response = await client.get("/login/passkey", headers={"Authorization": f"Bearer {token}"})
        # Not a route in this app, but it must not loop back to itself
        assert response.status_code == 404

    async def test_full_session_passes(self, client):
        token = make_test_jwt(mfa=False)
        with patch("passgate.api.routes.auth.CredentialManager", return_value=_manager(1)):
            response = await client.get(
                "/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"}
            )

        assert response.status_code == 200
        body = response.json()
        assert body["username"] == "admin"
        assert body["auth_methods"] == ["pwd"]
        assert body["has_passkeys"] is True

    async def test_gate_off_when_webauthn_disabled(self, monkeypatch):
        settings = make_test_settings(webauthn_enabled=False)
        monkeypatch.setattr("passgate.settings.get_settings", lambda: settings)
        application = create_app(settings)

        async with AsyncClient(transport=ASGITransport(app=application), base_url="http://test") as c:
            response = await c.get(
                "/api/v1/health", headers={"Authorization": f"Bearer {make_test_jwt(mfa=True)}"}
            )

        assert response.status_code == 200


@pytest.mark.asyncio
class TestSessionEndpoints:
    async def test_me_requires_session(self, client):
        response = await client.get("/api/v1/auth/me")
        assert response.status_code == 401

    async def test_logout_clears_cookie(self, client):
        response = await client.post("/api/v1/auth/logout")
        assert response.status_code == 200
        assert JWT_COOKIE_NAME in response.headers.get("set-cookie", "")

    async def test_health(self, client):
        response = await client.get("/api/v1/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert "X-Correlation-ID" in response.headers
