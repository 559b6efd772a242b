"""
tests/test_api_routes.py -- Integration tests for the auth routes.

These tests exercise the full stack: FastAPI routing -> rate limiter ->
password check -> session cookie -> session guard on later requests.

Coverage:
  - POST /api/login: 200 + httpOnly cookie on success, 401 bad_credentials otherwise
  - GET  /api/user: 401 without a session, 200 with cookie or Bearer token
  - POST /api/logout: cookie cleared, later requests refused
  - POST /api/register: 201 + session, 409 on taken username, 400 on bad input,
    403 when self-registration is disabled
  - seed_admin(): bootstrap account creation is idempotent
  - POST /api/login and /api/register: 429 rate_limited past LOGIN_RATE_LIMIT
  - /docs requires a session

Fixtures used (from conftest.py):
  - fresh_client: ClientContext over an empty in-memory store, rebuilt per test
    The fixture user has username="testadmin", password="testpass123".
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from pydantic import ValidationError

from api.limiter import limiter
from api.main import seed_admin
from auth.tokens import SESSION_COOKIE, create_access_token, verify_password
from core.config import Settings
from registry.memory import MemoryMemberStore

if TYPE_CHECKING:
    from conftest import ClientContext


class TestLogin:
    def test_login_valid_credentials(self, fresh_client: ClientContext) -> None:
        """POST /api/login with correct credentials returns the user and sets the session cookie."""
        resp = fresh_client.client.post("/api/login", json={"username": "testadmin", "password": "testpass123"})
        assert resp.status_code == 200, f"Expected 200, got {resp.status_code}: {resp.text}"
        data = resp.json()
        assert data["username"] == "testadmin"
        assert data["displayName"] == "Test Admin"
        assert "password" not in data and "hashedPassword" not in data
        assert resp.headers["cache-control"] == "no-store"

        set_cookie = resp.headers["set-cookie"]
        assert set_cookie.startswith(f"{SESSION_COOKIE}=")
        assert "httponly" in set_cookie.lower()

    @pytest.mark.parametrize(
        "username,password",
        [("testadmin", "wrong-password"), ("nobody", "testpass123")],
    )
    def test_login_invalid_credentials(self, fresh_client: ClientContext, username: str, password: str) -> None:
        """Wrong password and unknown username produce the same 401."""
        resp = fresh_client.client.post("/api/login", json={"username": username, "password": password})
        assert resp.status_code == 401, f"Expected 401, got {resp.status_code}: {resp.text}"
        assert resp.json()["error"]["code"] == "bad_credentials"
        assert SESSION_COOKIE not in resp.cookies

    def test_login_missing_fields(self, fresh_client: ClientContext) -> None:
        resp = fresh_client.client.post("/api/login", json={"username": "testadmin"})
        assert resp.status_code == 400
        assert "password" in resp.json()["error"]["fields"]


class TestCurrentUser:
    def test_user_unauthenticated(self, fresh_client: ClientContext) -> None:
        resp = fresh_client.client.get("/api/user")
        assert resp.status_code == 401, f"Expected 401, got {resp.status_code}"

    def test_user_with_bearer_token(self, fresh_client: ClientContext) -> None:
        resp = fresh_client.client.get("/api/user", headers=fresh_client.headers)
        assert resp.status_code == 200, f"Expected 200, got {resp.status_code}: {resp.text}"
        data = resp.json()
        assert data["id"] == fresh_client.user.id
        assert data["username"] == "testadmin"
        assert data["createdAt"]

    def test_user_with_cookie(self, fresh_client: ClientContext) -> None:
        client = fresh_client.client
        client.post("/api/login", json={"username": "testadmin", "password": "testpass123"})
        resp = client.get("/api/user")
        assert resp.status_code == 200, f"Expected 200, got {resp.status_code}: {resp.text}"
        assert resp.json()["username"] == "testadmin"

    def test_token_for_deleted_user_rejected(self, fresh_client: ClientContext) -> None:
        """A validly signed token whose user no longer resolves is treated as no session."""
        token = create_access_token(user_id=9999, username="ghost")
        resp = fresh_client.client.get("/api/user", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401


class TestLogout:
    def test_logout_clears_session(self, fresh_client: ClientContext) -> None:
        client = fresh_client.client
        client.post("/api/login", json={"username": "testadmin", "password": "testpass123"})
        assert client.get("/api/user").status_code == 200

        resp = client.post("/api/logout")
        assert resp.status_code == 200, f"Expected 200, got {resp.status_code}: {resp.text}"
        assert resp.json() == {"message": "Logged out."}

        assert client.get("/api/user").status_code == 401
        assert client.get("/api/members").status_code == 401

    def test_logout_without_session(self, fresh_client: ClientContext) -> None:
        assert fresh_client.client.post("/api/logout").status_code == 200


class TestRegister:
    def test_register_creates_user_and_session(self, fresh_client: ClientContext) -> None:
        client = fresh_client.client
        resp = client.post(
            "/api/register",
            json={"username": "newbie", "password": "s3cretpw", "displayName": "New User"},
        )
        assert resp.status_code == 201, f"Expected 201, got {resp.status_code}: {resp.text}"
        data = resp.json()
        assert data["username"] == "newbie"
        assert data["displayName"] == "New User"
        assert "password" not in data

        stored = fresh_client.storage.get_user_by_username("newbie")
        assert stored is not None
        assert stored.hashed_password != "s3cretpw"
        assert verify_password("s3cretpw", stored.hashed_password)

        me = client.get("/api/user")
        assert me.status_code == 200
        assert me.json()["username"] == "newbie"

    def test_register_taken_username(self, fresh_client: ClientContext) -> None:
        resp = fresh_client.client.post(
            "/api/register",
            json={"username": "testadmin", "password": "s3cretpw", "displayName": "Impostor"},
        )
        assert resp.status_code == 409, f"Expected 409, got {resp.status_code}: {resp.text}"
        assert resp.json()["error"]["fields"] == {"username": "Already in use."}

    @pytest.mark.parametrize(
        "body,field",
        [
            ({"username": "ab", "password": "s3cretpw", "displayName": "Short"}, "username"),
            ({"username": "validname", "password": "123", "displayName": "Short Pw"}, "password"),
            ({"username": "validname", "password": "s3cretpw", "displayName": "X"}, "displayName"),
        ],
    )
    def test_register_validation(self, fresh_client: ClientContext, body: dict, field: str) -> None:
        resp = fresh_client.client.post("/api/register", json=body)
        assert resp.status_code == 400, f"Expected 400, got {resp.status_code}: {resp.text}"
        assert field in resp.json()["error"]["fields"]
        assert fresh_client.storage.get_user_by_username("validname") is None

    def test_register_disabled(self, fresh_client: ClientContext, monkeypatch) -> None:
        monkeypatch.setattr("api.routes.auth._settings.self_registration_enabled", False)
        resp = fresh_client.client.post(
            "/api/register",
            json={"username": "newbie", "password": "s3cretpw", "displayName": "New User"},
        )
        assert resp.status_code == 403, f"Expected 403, got {resp.status_code}: {resp.text}"
        assert resp.json()["error"]["code"] == "registration_disabled"
        assert fresh_client.storage.get_user_by_username("newbie") is None


class TestDocs:
    def test_docs_require_session(self, fresh_client: ClientContext) -> None:
        assert fresh_client.client.get("/docs").status_code == 401
        assert fresh_client.client.get("/docs", headers=fresh_client.headers).status_code == 200


class TestSeedAdmin:
    def _settings(self, **overrides) -> Settings:
        values = {"debug": True, "admin_username": "root", "admin_password": "rootpass1"}
        values.update(overrides)
        return Settings(**values)

    def test_creates_account_once(self) -> None:
        storage = MemoryMemberStore()
        settings = self._settings()
        seed_admin(storage, settings)
        seed_admin(storage, settings)

        user = storage.get_user_by_username("root")
        assert user is not None
        assert user.display_name == "Administrator"
        assert verify_password("rootpass1", user.hashed_password)
        assert storage.get_user(2) is None, "Second call must not create a duplicate"

    def test_noop_without_credentials(self) -> None:
        storage = MemoryMemberStore()
        seed_admin(storage, self._settings(admin_password=""))
        assert storage.get_user_by_username("root") is None

    def test_overlong_admin_password_rejected(self) -> None:
        """ADMIN_PASSWORD past bcrypt's 72-byte input limit fails at settings load, not at hash time."""
        with pytest.raises(ValidationError, match="at most 72 bytes"):
            self._settings(admin_password="x" * 73)


class TestRateLimit:
    @pytest.fixture(autouse=True)
    def _low_limit(self, monkeypatch):
        monkeypatch.setattr("api.routes.auth._settings.login_rate_limit", "3/minute")
        limiter.reset()
        yield
        limiter.reset()

    def test_login_limited_per_client(self, fresh_client: ClientContext) -> None:
        body = {"username": "testadmin", "password": "testpass123"}
        for _ in range(3):
            resp = fresh_client.client.post("/api/login", json=body)
            assert resp.status_code == 200, f"Expected 200, got {resp.status_code}: {resp.text}"

        resp = fresh_client.client.post("/api/login", json=body)
        assert resp.status_code == 429, f"Expected 429, got {resp.status_code}: {resp.text}"
        assert resp.json()["error"]["code"] == "rate_limited"
        assert "retry-after" in resp.headers

    def test_register_limited_per_client(self, fresh_client: ClientContext) -> None:
        for n in range(3):
            resp = fresh_client.client.post(
                "/api/register",
                json={"username": f"user{n}", "password": "s3cretpw", "displayName": "New User"},
            )
            assert resp.status_code == 201, f"Expected 201, got {resp.status_code}: {resp.text}"

        resp = fresh_client.client.post(
            "/api/register",
            json={"username": "user9", "password": "s3cretpw", "displayName": "New User"},
        )
        assert resp.status_code == 429, f"Expected 429, got {resp.status_code}: {resp.text}"
        assert fresh_client.storage.get_user_by_username("user9") is None
