"""
tests/test_auth_routes.py -- Integration tests for the /auth routes and /health.

These tests exercise the full stack: FastAPI routing -> AdmissionGate ->
SessionManager -> MemoryCredentialStore -> exception handlers -> error
envelope. Each test gets a fresh app state (see conftest.api_client), so
the signup limiter starts full every time.

Coverage:
  - signup / login / validate / logout happy path
  - duplicate signup 409, bad credentials 401 with identical bodies
  - replace-on-login over HTTP
  - logout twice -> 401
  - 4th rapid signup -> 429 with Retry-After
  - missing query params -> 422 envelope
  - Cache-Control: no-store on login
  - /health
"""

from __future__ import annotations

import re

from fastapi.testclient import TestClient


class TestSignup:
    def test_signup_ok(self, api_client: TestClient) -> None:
        resp = api_client.post("/auth/signup", params={"user": "bob", "pass": "x"})
        assert resp.status_code == 200
        assert resp.json() == {"message": "signup successful"}

    def test_duplicate_signup_is_409(self, api_client: TestClient) -> None:
        api_client.post("/auth/signup", params={"user": "bob", "pass": "x"})
        resp = api_client.post("/auth/signup", params={"user": "bob", "pass": "y"})
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "already_exists"

    def test_fourth_rapid_signup_is_429(self, api_client: TestClient) -> None:
        for i in range(3):
            assert api_client.post("/auth/signup", params={"user": f"u{i}", "pass": "pw"}).status_code == 200
        resp = api_client.post("/auth/signup", params={"user": "u3", "pass": "pw"})
        assert resp.status_code == 429
        assert resp.json()["error"]["code"] == "rate_limited"
        assert int(resp.headers["Retry-After"]) >= 1

    def test_missing_password_is_422(self, api_client: TestClient) -> None:
        resp = api_client.post("/auth/signup", params={"user": "bob"})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"


class TestLogin:
    def test_login_returns_token_and_no_store(self, logged_in: tuple[TestClient, str]) -> None:
        _client, token = logged_in
        assert re.fullmatch(r"[0-9a-f]{32}", token)

    def test_login_response_not_cacheable(self, api_client: TestClient) -> None:
        api_client.post("/auth/signup", params={"user": "bob", "pass": "x"})
        resp = api_client.post("/auth/login", params={"user": "bob", "pass": "x"})
        assert resp.headers["Cache-Control"] == "no-store"

    def test_wrong_password_and_unknown_user_look_the_same(self, api_client: TestClient) -> None:
        api_client.post("/auth/signup", params={"user": "bob", "pass": "x"})
        wrong = api_client.post("/auth/login", params={"user": "bob", "pass": "nope"})
        unknown = api_client.post("/auth/login", params={"user": "ghost", "pass": "x"})
        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json() == unknown.json()
        assert wrong.json()["error"]["code"] == "bad_auth"

    def test_second_login_invalidates_first(self, logged_in: tuple[TestClient, str]) -> None:
        client, t1 = logged_in
        t2 = client.post("/auth/login", params={"user": "bob", "pass": "x"}).json()["token"]
        assert client.get("/auth/validate", params={"user": "bob", "token": t1}).status_code == 401
        assert client.get("/auth/validate", params={"user": "bob", "token": t2}).status_code == 200


class TestValidateAndLogout:
    def test_validate_ok(self, logged_in: tuple[TestClient, str]) -> None:
        client, token = logged_in
        resp = client.get("/auth/validate", params={"user": "bob", "token": token})
        assert resp.status_code == 200
        assert resp.json() == {"message": "validate successful"}

    def test_validate_bad_token(self, logged_in: tuple[TestClient, str]) -> None:
        client, _token = logged_in
        resp = client.get("/auth/validate", params={"user": "bob", "token": "bad token"})
        assert resp.status_code == 401

    def test_logout_then_validate_fails(self, logged_in: tuple[TestClient, str]) -> None:
        client, token = logged_in
        resp = client.post("/auth/logout", params={"user": "bob", "token": token})
        assert resp.status_code == 200
        assert resp.json() == {"message": "logout successful"}
        assert client.get("/auth/validate", params={"user": "bob", "token": token}).status_code == 401

    def test_logout_twice(self, logged_in: tuple[TestClient, str]) -> None:
        client, token = logged_in
        assert client.post("/auth/logout", params={"user": "bob", "token": token}).status_code == 200
        assert client.post("/auth/logout", params={"user": "bob", "token": token}).status_code == 401

    def test_validate_and_logout_are_not_rate_limited(self, logged_in: tuple[TestClient, str]) -> None:
        client, token = logged_in
        for _ in range(10):
            assert client.get("/auth/validate", params={"user": "bob", "token": token}).status_code == 200
        for _ in range(10):
            assert client.post("/auth/logout", params={"user": "bob", "token": "x"}).status_code == 401


class TestMisc:
    def test_health(self, api_client: TestClient) -> None:
        resp = api_client.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "ok"
        assert body["components"]["auth_store"] == "ok"
        assert "version" in body

    def test_unknown_route_uses_error_envelope(self, api_client: TestClient) -> None:
        resp = api_client.get("/nope")
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "http_404"

    def test_wrong_method(self, api_client: TestClient) -> None:
        resp = api_client.get("/auth/login", params={"user": "bob", "pass": "x"})
        assert resp.status_code == 405
