"""
tests/test_api_routes.py -- Integration tests for the /api/v1/authentication routes.

These tests exercise the full stack: FastAPI routing -> auth dependency
injection -> AuthenticationService -> UserStore -> response model
serialization and the error envelope from api/main.py.

Fixtures used (from conftest.py):
  - api_client: (client, mailer, store) -- TestClient over the real app with a
    shared-memory store and a recording mailer.

The TestClient keeps cookies between requests, and the login/register
responses set one. _register() and _login() clear the jar so every test
authenticates explicitly with a Bearer header.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

BASE = "/api/v1/authentication"
PASSWORD = "testpass123"


def _register(client: TestClient, email: str, password: str = PASSWORD) -> str:
    resp = client.post(f"{BASE}/register", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.text
    client.cookies.clear()
    return resp.json()["token"]


def _login(client: TestClient, email: str, password: str):
    resp = client.post(f"{BASE}/login", json={"email": email, "password": password})
    client.cookies.clear()
    return resp


def _auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(autouse=True)
def _clear_cookies(api_client):
    api_client[0].cookies.clear()


class TestRegisterAndLogin:
    def test_register_returns_token_and_sets_cookie(self, api_client) -> None:
        client, mailer, store = api_client
        resp = client.post(f"{BASE}/register", json={"email": "reg@example.com", "password": PASSWORD})
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["token"]
        assert data["message"] == "User registered successfully."
        assert "access_token" in resp.headers.get("set-cookie", "")
        assert resp.headers["Cache-Control"] == "no-store"
        assert store.get_by_email("reg@example.com").email_verified is False
        assert mailer.last_code("reg@example.com")

    def test_register_duplicate_returns_409(self, api_client) -> None:
        client, _, _ = api_client
        _register(client, "dup@example.com")
        resp = client.post(f"{BASE}/register", json={"email": "dup@example.com", "password": "other"})
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "duplicate_email"

    def test_register_invalid_email_returns_422(self, api_client) -> None:
        client, _, _ = api_client
        resp = client.post(f"{BASE}/register", json={"email": "not-an-email", "password": PASSWORD})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"

    def test_register_blank_password_returns_422(self, api_client) -> None:
        client, _, _ = api_client
        resp = client.post(f"{BASE}/register", json={"email": "blank@example.com", "password": ""})
        assert resp.status_code == 422

    def test_login_valid(self, api_client) -> None:
        client, _, _ = api_client
        _register(client, "login@example.com")
        resp = _login(client, "login@example.com", PASSWORD)
        assert resp.status_code == 200, resp.text
        assert resp.json()["message"] == "Authentication succeeded."

    def test_login_wrong_password(self, api_client) -> None:
        client, _, _ = api_client
        _register(client, "wrongpw@example.com")
        resp = _login(client, "wrongpw@example.com", "nope")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "invalid_credentials"

    def test_login_unknown_email(self, api_client) -> None:
        client, _, _ = api_client
        resp = _login(client, "ghost@example.com", PASSWORD)
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "user_not_found"


class TestAuthenticatedRoutes:
    def test_user_requires_auth(self, api_client) -> None:
        client, _, _ = api_client
        resp = client.get(f"{BASE}/user")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"

    def test_user_rejects_bad_token(self, api_client) -> None:
        client, _, _ = api_client
        resp = client.get(f"{BASE}/user", headers=_auth("garbage"))
        assert resp.status_code == 401

    def test_user_returns_public_view(self, api_client) -> None:
        client, _, _ = api_client
        token = _register(client, "me@example.com")
        resp = client.get(f"{BASE}/user", headers=_auth(token))
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["email"] == "me@example.com"
        assert data["email_verified"] is False
        assert data["profile_complete"] is False
        assert "hashed_password" not in data
        assert not any("token" in key for key in data)

    def test_cookie_authenticates(self, api_client) -> None:
        client, _, _ = api_client
        token = _register(client, "cookie@example.com")
        resp = client.get(f"{BASE}/user", cookies={"access_token": token})
        assert resp.status_code == 200
        assert resp.json()["email"] == "cookie@example.com"

    def test_verify_email_flow(self, api_client) -> None:
        client, mailer, store = api_client
        token = _register(client, "verify@example.com")
        code = mailer.last_code("verify@example.com")

        resp = client.put(f"{BASE}/validate-email-verification-token", params={"token": code}, headers=_auth(token))
        assert resp.status_code == 202, resp.text
        assert store.get_by_email("verify@example.com").email_verified is True

        resp = client.put(f"{BASE}/validate-email-verification-token", params={"token": code}, headers=_auth(token))
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "token_invalid"

        resp = client.get(f"{BASE}/send-email-verification-token", headers=_auth(token))
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "already_verified_or_not_found"

    def test_resend_verification(self, api_client) -> None:
        client, mailer, _ = api_client
        token = _register(client, "resend@example.com")
        sent_before = len(mailer.sent)
        resp = client.get(f"{BASE}/send-email-verification-token", headers=_auth(token))
        assert resp.status_code == 200, resp.text
        assert len(mailer.sent) == sent_before + 1

    def test_update_profile(self, api_client) -> None:
        client, _, _ = api_client
        token = _register(client, "profile@example.com")
        body = {
            "first_name": "Ada",
            "last_name": "Lovelace",
            "company": "Analytical Engines",
            "position": "Engineer",
            "location": "London",
        }
        resp = client.put(f"{BASE}/profile", json=body, headers=_auth(token))
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["first_name"] == "Ada"
        assert data["profile_complete"] is True

    def test_delete_account(self, api_client) -> None:
        client, _, store = api_client
        token = _register(client, "delete@example.com")
        resp = client.delete(f"{BASE}/delete", headers=_auth(token))
        assert resp.status_code == 200, resp.text
        assert store.get_by_email("delete@example.com") is None
        # The JWT is still well-formed but its subject no longer exists.
        assert client.get(f"{BASE}/user", headers=_auth(token)).status_code == 401


class TestPasswordReset:
    def test_reset_flow(self, api_client) -> None:
        client, mailer, _ = api_client
        _register(client, "reset@example.com")

        resp = client.put(f"{BASE}/send-password-reset-token", params={"email": "reset@example.com"})
        assert resp.status_code == 200, resp.text
        code = mailer.last_code("reset@example.com")

        resp = client.put(
            f"{BASE}/reset-password",
            params={"newPassword": "brand-new-pass", "token": code, "email": "reset@example.com"},
        )
        assert resp.status_code == 200, resp.text

        assert _login(client, "reset@example.com", "brand-new-pass").status_code == 200
        assert _login(client, "reset@example.com", PASSWORD).status_code == 401

    def test_reset_wrong_code(self, api_client) -> None:
        client, mailer, _ = api_client
        _register(client, "resetbad@example.com")
        client.put(f"{BASE}/send-password-reset-token", params={"email": "resetbad@example.com"})
        code = mailer.last_code("resetbad@example.com")
        wrong = f"{(int(code) + 1) % 100000:05d}"
        resp = client.put(
            f"{BASE}/reset-password",
            params={"newPassword": "brand-new-pass", "token": wrong, "email": "resetbad@example.com"},
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "token_invalid"

    def test_reset_token_unknown_email(self, api_client) -> None:
        client, _, _ = api_client
        resp = client.put(f"{BASE}/send-password-reset-token", params={"email": "ghost@example.com"})
        assert resp.status_code == 404

    def test_reset_missing_params(self, api_client) -> None:
        client, _, _ = api_client
        resp = client.put(f"{BASE}/reset-password", params={"email": "x@example.com"})
        assert resp.status_code == 422

    def test_reset_password_keeps_surrounding_whitespace(self, api_client) -> None:
        client, mailer, _ = api_client
        _register(client, "spaces@example.com")
        client.put(f"{BASE}/send-password-reset-token", params={"email": "spaces@example.com"})
        code = mailer.last_code("spaces@example.com")

        resp = client.put(
            f"{BASE}/reset-password",
            params={"newPassword": "newpass ", "token": code, "email": "spaces@example.com"},
        )
        assert resp.status_code == 200, resp.text

        assert _login(client, "spaces@example.com", "newpass ").status_code == 200
        assert _login(client, "spaces@example.com", "newpass").status_code == 401

    def test_reset_password_over_72_bytes_returns_422(self, api_client) -> None:
        client, mailer, _ = api_client
        _register(client, "emojireset@example.com")
        client.put(f"{BASE}/send-password-reset-token", params={"email": "emojireset@example.com"})
        code = mailer.last_code("emojireset@example.com")

        # 20 characters, 80 bytes in UTF-8.
        resp = client.put(
            f"{BASE}/reset-password",
            params={"newPassword": "\U0001F600" * 20, "token": code, "email": "emojireset@example.com"},
        )
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"
        assert _login(client, "emojireset@example.com", PASSWORD).status_code == 200

    def test_reset_matches_registered_email_domain_case(self, api_client) -> None:
        client, mailer, _ = api_client
        _register(client, "Mixed@Example.COM")

        resp = client.put(f"{BASE}/send-password-reset-token", params={"email": "Mixed@Example.COM"})
        assert resp.status_code == 200, resp.text
        code = mailer.last_code("Mixed@example.com")

        resp = client.put(
            f"{BASE}/reset-password",
            params={"newPassword": "case-pass", "token": code, "email": "Mixed@Example.COM"},
        )
        assert resp.status_code == 200, resp.text
        assert _login(client, "Mixed@Example.COM", "case-pass").status_code == 200

    def test_reset_token_rejects_malformed_email(self, api_client) -> None:
        client, _, _ = api_client
        resp = client.put(f"{BASE}/send-password-reset-token", params={"email": "not-an-email"})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"


class TestPasswordLimits:
    def test_register_password_whitespace_is_significant(self, api_client) -> None:
        client, _, _ = api_client
        _register(client, "padded@example.com", password=" padded pass ")
        assert _login(client, "padded@example.com", " padded pass ").status_code == 200
        assert _login(client, "padded@example.com", "padded pass").status_code == 401

    def test_register_email_is_still_trimmed(self, api_client) -> None:
        client, _, store = api_client
        _register(client, "  trimmed@example.com ")
        assert store.get_by_email("trimmed@example.com") is not None

    def test_register_password_over_72_bytes_returns_422(self, api_client) -> None:
        client, _, store = api_client
        resp = client.post(f"{BASE}/register", json={"email": "emoji@example.com", "password": "\U0001F600" * 20})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"
        assert store.get_by_email("emoji@example.com") is None

    def test_login_password_over_72_bytes_returns_422(self, api_client) -> None:
        client, _, _ = api_client
        _register(client, "emojilogin@example.com")
        resp = _login(client, "emojilogin@example.com", "\U0001F600" * 20)
        assert resp.status_code == 422

    def test_register_password_of_exactly_72_bytes(self, api_client) -> None:
        client, _, _ = api_client
        password = "p" * 72
        _register(client, "longpw@example.com", password=password)
        assert _login(client, "longpw@example.com", password).status_code == 200
