"""
tests/test_api_routes.py -- Integration tests for the /api/v1/auth routes.

These tests exercise the full stack: FastAPI routing -> identity dependency
-> AuthService -> SQLite stores -> response model serialization. Unit testing
individual route functions would miss cookie handling, dependency injection
and the error envelope, so integration tests are the right tool here.

Coverage:
  - signup / login: 201 / 200 with tokens, refresh cookie attributes, no-store
  - error envelope: 400 field codes, 409 conflicts, 401 credentials, 403 deactivated
  - refresh: via body and via cookie, reuse rejected, access token rejected
  - logout / logout-all: idempotent logout, cookie cleared, session revocation
  - /me: bearer header, access cookie, anonymous 401, deactivated 404
  - ERROR_STATUS covers every ErrorKind; 422 and 500 never echo secrets

Fixtures used (from conftest.py):
  - api_client: (client, service) -- TestClient wired to a per-test database
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from api.errors import ERROR_STATUS
from api.main import app
from auth.dependencies import ACCESS_COOKIE_NAME
from auth.errors import ErrorKind
from auth.service import REFRESH_COOKIE_NAME, AuthService

SIGNUP = "/api/v1/auth/signup"
LOGIN = "/api/v1/auth/login"
REFRESH = "/api/v1/auth/refresh"
LOGOUT = "/api/v1/auth/logout"
LOGOUT_ALL = "/api/v1/auth/logout-all"
ME = "/api/v1/auth/me"

ALICE = {
    "email": "alice@example.com",
    "username": "alice",
    "first_name": "Alice",
    "last_name": "Liddell",
    "password": "password1",
}


def _signup(client: TestClient, **overrides) -> dict:
    resp = client.post(SIGNUP, json={**ALICE, **overrides})
    assert resp.status_code == 201, resp.text
    return resp.json()


def _bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def _set_cookie_header(resp, name: str) -> str:
    headers = [h for h in resp.headers.get_list("set-cookie") if h.startswith(f"{name}=")]
    assert len(headers) == 1, resp.headers.get_list("set-cookie")
    return headers[0]


# ---------------------------------------------------------------------------
# Signup / login
# ---------------------------------------------------------------------------


class TestSignupRoute:
    def test_signup_returns_user_and_tokens(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _service = api_client
        resp = client.post(SIGNUP, json=ALICE)
        assert resp.status_code == 201
        data = resp.json()
        assert data["user"]["email"] == "alice@example.com"
        assert data["user"]["email_verified"] is False
        assert data["token_type"] == "bearer"
        assert data["expires_in"] == 900
        assert data["access_token"] and data["refresh_token"]
        assert resp.headers["cache-control"] == "no-store"

    def test_signup_sets_refresh_cookie(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _service = api_client
        resp = client.post(SIGNUP, json=ALICE)
        cookie = _set_cookie_header(resp, REFRESH_COOKIE_NAME)
        assert cookie.startswith(f"{REFRESH_COOKIE_NAME}={resp.json()['refresh_token']};")
        attributes = [part.strip().lower() for part in cookie.split(";")[1:]]
        assert "httponly" in attributes
        assert "samesite=strict" in attributes
        assert "max-age=604800" in attributes
        assert "secure" not in attributes

    def test_response_never_contains_password_material(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _service = api_client
        resp = client.post(SIGNUP, json=ALICE)
        assert "password" not in resp.json()["user"]
        assert "$2b$" not in resp.text
        assert "password1" not in resp.text

    def test_duplicate_email_is_409(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _service = api_client
        _signup(client)
        resp = client.post(SIGNUP, json={**ALICE, "username": "alice2"})
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "EMAIL_ALREADY_EXISTS"

    def test_duplicate_username_is_409(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _service = api_client
        _signup(client)
        resp = client.post(SIGNUP, json={**ALICE, "email": "other@example.com"})
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "USERNAME_TAKEN"

    @pytest.mark.parametrize(
        "overrides, field, code",
        [
            ({"email": "nope"}, "email", "INVALID_EMAIL"),
            ({"username": "al"}, "username", "INVALID_USERNAME"),
            ({"first_name": ""}, "first_name", "INVALID_NAME"),
            ({"password": "short"}, "password", "WEAK_PASSWORD"),
        ],
    )
    def test_invalid_input_is_400_with_field_code(
        self, api_client: tuple[TestClient, AuthService], overrides, field, code
    ) -> None:
        client, _service = api_client
        resp = client.post(SIGNUP, json={**ALICE, **overrides})
        assert resp.status_code == 400
        error = resp.json()["error"]
        assert error["code"] == code
        assert error["field"] == field
        assert error["detail"] == "INVALID_INPUT"

    def test_missing_fields_are_422_without_echoing_values(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _service = api_client
        resp = client.post(SIGNUP, json={"email": "a@b.co", "password": "hunter2-secret"})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"
        assert "hunter2-secret" not in resp.text


class TestLoginRoute:
    def test_login_returns_same_user(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _service = api_client
        signed_up = _signup(client)
        resp = client.post(LOGIN, json={"email": ALICE["email"], "password": ALICE["password"]})
        assert resp.status_code == 200
        assert resp.json()["user"]["id"] == signed_up["user"]["id"]
        assert resp.json()["user"]["last_login"] is not None
        assert resp.headers["cache-control"] == "no-store"
        _set_cookie_header(resp, REFRESH_COOKIE_NAME)

    def test_wrong_password_and_unknown_email_are_identical(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _service = api_client
        _signup(client)
        wrong = client.post(LOGIN, json={"email": ALICE["email"], "password": "password2"})
        unknown = client.post(LOGIN, json={"email": "ghost@example.com", "password": "password1"})
        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json() == unknown.json()
        assert wrong.json()["error"]["code"] == "INVALID_CREDENTIALS"

    def test_deactivated_account_is_403(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, service = api_client
        data = _signup(client)
        service.users.set_user_active(data["user"]["id"], False)
        resp = client.post(LOGIN, json={"email": ALICE["email"], "password": ALICE["password"]})
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "ACCOUNT_DEACTIVATED"


# ---------------------------------------------------------------------------
# Refresh
# ---------------------------------------------------------------------------


class TestRefreshRoute:
    def test_refresh_with_body_token(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _service = api_client
        first = _signup(client)
        resp = client.post(REFRESH, json={"refresh_token": first["refresh_token"]})
        assert resp.status_code == 200
        second = resp.json()
        assert second["refresh_token"] != first["refresh_token"]
        assert second["user"]["id"] == first["user"]["id"]
        assert _set_cookie_header(resp, REFRESH_COOKIE_NAME).startswith(
            f"{REFRESH_COOKIE_NAME}={second['refresh_token']}"
        )

    def test_refresh_with_cookie(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _service = api_client
        first = _signup(client)
        client.cookies.clear()
        client.cookies.set(REFRESH_COOKIE_NAME, first["refresh_token"])
        resp = client.post(REFRESH)
        assert resp.status_code == 200
        assert resp.json()["refresh_token"] != first["refresh_token"]

    def test_reused_token_is_rejected(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _service = api_client
        first = _signup(client)
        assert client.post(REFRESH, json={"refresh_token": first["refresh_token"]}).status_code == 200
        replay = client.post(REFRESH, json={"refresh_token": first["refresh_token"]})
        assert replay.status_code == 401
        assert replay.json()["error"]["code"] == "REFRESH_TOKEN_EXPIRED"

    def test_access_token_is_rejected(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _service = api_client
        data = _signup(client)
        resp = client.post(REFRESH, json={"refresh_token": data["access_token"]})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "INVALID_REFRESH_TOKEN"

    def test_missing_token_is_rejected(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _service = api_client
        client.cookies.clear()
        resp = client.post(REFRESH)
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "INVALID_REFRESH_TOKEN"


# ---------------------------------------------------------------------------
# Logout
# ---------------------------------------------------------------------------


class TestLogoutRoutes:
    def test_logout_revokes_and_clears_cookie(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _service = api_client
        data = _signup(client)
        resp = client.post(LOGOUT, json={"refresh_token": data["refresh_token"]})
        assert resp.status_code == 200
        assert "max-age=0" in _set_cookie_header(resp, REFRESH_COOKIE_NAME).lower()
        replay = client.post(REFRESH, json={"refresh_token": data["refresh_token"]})
        assert replay.status_code == 401

    def test_logout_of_unknown_token_is_200(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _service = api_client
        resp = client.post(LOGOUT, json={"refresh_token": "never-issued"})
        assert resp.status_code == 200

    def test_logout_without_any_token_is_200(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _service = api_client
        client.cookies.clear()
        resp = client.post(LOGOUT)
        assert resp.status_code == 200
        _set_cookie_header(resp, REFRESH_COOKIE_NAME)

    def test_logout_all_requires_auth(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _service = api_client
        resp = client.post(LOGOUT_ALL)
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "UNAUTHENTICATED"

    def test_logout_all_revokes_every_session(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _service = api_client
        first = _signup(client)
        second = client.post(LOGIN, json={"email": ALICE["email"], "password": ALICE["password"]}).json()
        resp = client.post(LOGOUT_ALL, headers=_bearer(second["access_token"]))
        assert resp.status_code == 200
        assert resp.json() == {"revoked": 2}
        for token in (first["refresh_token"], second["refresh_token"]):
            assert client.post(REFRESH, json={"refresh_token": token}).status_code == 401


# ---------------------------------------------------------------------------
# /me
# ---------------------------------------------------------------------------


class TestMeRoute:
    def test_me_with_bearer_header(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _service = api_client
        data = _signup(client)
        resp = client.get(ME, headers=_bearer(data["access_token"]))
        assert resp.status_code == 200
        assert resp.json() == data["user"]

    def test_me_with_access_cookie(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _service = api_client
        data = _signup(client)
        client.cookies.set(ACCESS_COOKIE_NAME, data["access_token"])
        resp = client.get(ME)
        assert resp.status_code == 200
        assert resp.json()["id"] == data["user"]["id"]

    def test_anonymous_is_401_with_bearer_challenge(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _service = api_client
        resp = client.get(ME)
        assert resp.status_code == 401
        assert resp.headers["www-authenticate"] == "Bearer"
        assert resp.json()["error"]["code"] == "UNAUTHENTICATED"

    def test_refresh_token_is_not_an_access_token(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _service = api_client
        data = _signup(client)
        resp = client.get(ME, headers=_bearer(data["refresh_token"]))
        assert resp.status_code == 401

    def test_deactivated_user_is_404(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, service = api_client
        data = _signup(client)
        service.users.set_user_active(data["user"]["id"], False)
        resp = client.get(ME, headers=_bearer(data["access_token"]))
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "USER_NOT_FOUND"


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


def test_every_error_kind_has_a_status() -> None:
    assert set(ERROR_STATUS) == set(ErrorKind)


def test_infrastructure_failure_is_a_redacted_500(
    api_client: tuple[TestClient, AuthService], monkeypatch: pytest.MonkeyPatch
) -> None:
    _client, service = api_client

    def broken_login(email: str, password: str):
        raise OperationalError("SELECT secret_table", {}, Exception("disk I/O error"))

    monkeypatch.setattr(service, "login", broken_login)
    client = TestClient(app, raise_server_exceptions=False)
    resp = client.post(LOGIN, json={"email": ALICE["email"], "password": ALICE["password"]})
    assert resp.status_code == 500
    assert resp.json()["error"]["code"] == "internal_error"
    assert "secret_table" not in resp.text
    assert "disk I/O" not in resp.text
