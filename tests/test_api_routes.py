"""
tests/test_api_routes.py -- Integration tests for the auth API routes.

These tests exercise the full stack: FastAPI routing -> request model
validation -> AuthService -> UserStore -> response model serialization and
the exception handlers in api/main.py.

Coverage:
  - End-to-end: register 201, login 200, bad login 400, refresh 200, garbage refresh 401
  - Identical bodies for unknown user vs wrong password
  - Duplicate registration 400 user_exists
  - Validation: missing / blank fields 400 with field list, unparseable JSON 400
  - GET /validate with and without a Bearer token
  - Access and refresh tokens are interchangeable at /validate and /refresh
  - Cache-Control: no-store on token responses

Fixtures used (from conftest.py):
  - api_client: (client, auth_service) -- TestClient on an isolated store
"""

from __future__ import annotations

from fastapi.testclient import TestClient

from auth.service import AuthService

BASE = "/api/v1/auth"


def _register_and_login(client: TestClient, username: str, password: str = "pw1") -> dict:
    assert client.post(f"{BASE}/register", json={"username": username, "password": password}).status_code == 201
    resp = client.post(f"{BASE}/login", json={"username": username, "password": password})
    assert resp.status_code == 200, resp.text
    return resp.json()


class TestEndToEnd:
    def test_full_flow(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, service = api_client

        resp = client.post(f"{BASE}/register", json={"username": "alice", "password": "pw1"})
        assert resp.status_code == 201, resp.text
        user = resp.json()
        assert user["username"] == "alice"
        assert "password" not in user and "hashed_password" not in user

        resp = client.post(f"{BASE}/login", json={"username": "alice", "password": "pw1"})
        assert resp.status_code == 200, resp.text
        tokens = resp.json()
        assert service.verifier.verify(tokens["access_token"]) == user["id"]
        assert service.verifier.verify(tokens["refresh_token"]) == user["id"]

        resp = client.post(f"{BASE}/login", json={"username": "alice", "password": "wrong"})
        assert resp.status_code == 400
        assert resp.json()["code"] == "invalid_credentials"

        resp = client.post(f"{BASE}/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert resp.status_code == 200, resp.text
        assert set(resp.json()) == {"access_token", "refresh_token"}

        resp = client.post(f"{BASE}/refresh", json={"refresh_token": "garbage"})
        assert resp.status_code == 401
        assert resp.json() == {"code": "invalid_token", "message": "invalid token"}


class TestRegister:
    def test_duplicate_username(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _service = api_client
        body = {"username": "dup-user", "password": "pw1"}
        assert client.post(f"{BASE}/register", json=body).status_code == 201
        resp = client.post(f"{BASE}/register", json=body)
        assert resp.status_code == 400
        assert resp.json() == {"code": "user_exists", "message": "user already exists"}

    def test_missing_fields_report_each_field(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _service = api_client
        resp = client.post(f"{BASE}/register", json={})
        assert resp.status_code == 400
        data = resp.json()
        assert data["code"] == "invalid_input"
        assert {e["field"] for e in data["errors"]} == {"username", "password"}

    def test_blank_username(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _service = api_client
        resp = client.post(f"{BASE}/register", json={"username": "   ", "password": "pw1"})
        assert resp.status_code == 400
        assert [e["field"] for e in resp.json()["errors"]] == ["username"]

    def test_multibyte_password_over_bcrypt_limit(self, api_client: tuple[TestClient, AuthService]) -> None:
        """72 characters or fewer, but more than 72 UTF-8 bytes: 400 invalid_input, not 500."""
        client, service = api_client
        resp = client.post(f"{BASE}/register", json={"username": "u1", "password": "é" * 40})
        assert resp.status_code == 400, resp.text
        data = resp.json()
        assert data["code"] == "invalid_input"
        assert [e["field"] for e in data["errors"]] == ["password"]
        assert service.store.get_by_username("u1") is None

    def test_login_with_oversized_password(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _service = api_client
        resp = client.post(f"{BASE}/login", json={"username": "u1", "password": "é" * 40})
        assert resp.status_code == 400
        assert resp.json()["code"] == "invalid_input"

    def test_unparseable_json(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _service = api_client
        resp = client.post(
            f"{BASE}/register",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert resp.status_code == 400
        assert resp.json() == {"code": "bad_request", "message": "bad request"}


class TestLogin:
    def test_unknown_user_and_wrong_password_are_indistinguishable(
        self, api_client: tuple[TestClient, AuthService]
    ) -> None:
        client, _service = api_client
        client.post(f"{BASE}/register", json={"username": "bob", "password": "pw1"})

        wrong_password = client.post(f"{BASE}/login", json={"username": "bob", "password": "nope"})
        unknown_user = client.post(f"{BASE}/login", json={"username": "no-such-user", "password": "pw1"})

        assert wrong_password.status_code == unknown_user.status_code == 400
        assert wrong_password.json() == unknown_user.json()

    def test_token_response_not_cacheable(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _service = api_client
        client.post(f"{BASE}/register", json={"username": "carol", "password": "pw1"})
        resp = client.post(f"{BASE}/login", json={"username": "carol", "password": "pw1"})
        assert resp.headers["cache-control"] == "no-store"


class TestRefresh:
    def test_missing_refresh_token(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _service = api_client
        resp = client.post(f"{BASE}/refresh", json={})
        assert resp.status_code == 400
        assert resp.json()["errors"][0]["field"] == "refresh_token"

    def test_refresh_token_signed_elsewhere(self, api_client: tuple[TestClient, AuthService]) -> None:
        from auth.tokens import TokenIssuer

        client, service = api_client
        user = service.register("dave", "pw1")
        forged = TokenIssuer("some-other-secret-key-with-32-chars!!").issue(user)
        resp = client.post(f"{BASE}/refresh", json={"refresh_token": forged.refresh_token})
        assert resp.status_code == 401

    def test_orphaned_subject(self, api_client: tuple[TestClient, AuthService]) -> None:
        from auth.models import User

        client, service = api_client
        orphan = service.issuer.issue(User(id=987654, username="gone", hashed_password="h"))
        resp = client.post(f"{BASE}/refresh", json={"refresh_token": orphan.refresh_token})
        assert resp.status_code == 401
        assert resp.json()["code"] == "invalid_user"


class TestValidate:
    def test_requires_token(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _service = api_client
        resp = client.get(f"{BASE}/validate")
        assert resp.status_code == 401

    def test_rejects_non_bearer_scheme(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _service = api_client
        resp = client.get(f"{BASE}/validate", headers={"Authorization": "Basic YWxpY2U6cHcx"})
        assert resp.status_code == 401

    def test_echoes_subject(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, service = api_client
        tokens = _register_and_login(client, "erin")
        resp = client.get(f"{BASE}/validate", headers={"Authorization": f"Bearer {tokens['access_token']}"})
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["subject"] == service.store.get_by_username("erin").id
        assert data["message"]

    def test_invalid_token(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _service = api_client
        resp = client.get(f"{BASE}/validate", headers={"Authorization": "Bearer garbage"})
        assert resp.status_code == 401
        assert resp.json()["code"] == "invalid_token"


class TestTokenInterchangeability:
    """Both tokens carry the same {sub, exp} claims, so either works at either endpoint."""

    def test_refresh_token_accepted_by_validate(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, service = api_client
        tokens = _register_and_login(client, "frank")
        resp = client.get(f"{BASE}/validate", headers={"Authorization": f"Bearer {tokens['refresh_token']}"})
        assert resp.status_code == 200, resp.text
        assert resp.json()["subject"] == service.store.get_by_username("frank").id

    def test_access_token_accepted_by_refresh(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, service = api_client
        tokens = _register_and_login(client, "grace")
        resp = client.post(f"{BASE}/refresh", json={"refresh_token": tokens["access_token"]})
        assert resp.status_code == 200, resp.text
        assert service.verifier.verify(resp.json()["access_token"]) == service.store.get_by_username("grace").id
