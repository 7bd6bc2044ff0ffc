"""Tests for auth/service.py -- SessionManager behaviour and observability.

The session properties are exercised end-to-end over the in-memory store:
signup/login/validate round trip, replace-on-login, logout semantics, and
anti-enumeration. The manager must pass store errors through untouched and
record method/user/outcome in the diagnostic context on every exit path.
"""

from __future__ import annotations

import pytest

from auth.errors import AlreadyExists, BadAuth, StoreUnavailable
from auth.service import SessionManager
from auth.store import MemoryCredentialStore
from core import ctxlog


@pytest.fixture
def sessions() -> SessionManager:
    return SessionManager(MemoryCredentialStore())


class _BrokenRepo:
    def __init__(self, exc: Exception) -> None:
        self.exc = exc

    def create(self, username, password):
        raise self.exc

    def authenticate(self, username, password):
        raise self.exc

    def invalidate(self, username, token):
        raise self.exc

    def check(self, username, token):
        raise self.exc


class TestSessionFlow:
    def test_round_trip(self, sessions: SessionManager) -> None:
        sessions.signup("bob", "x")
        token = sessions.login("bob", "x")
        assert sessions.validate("bob", token) is None

    def test_full_flow_ends_with_bad_auth(self, sessions: SessionManager) -> None:
        sessions.signup("peter", "123456")
        token = sessions.login("peter", "123456")
        sessions.validate("peter", token)
        sessions.logout("peter", token)
        with pytest.raises(BadAuth):
            sessions.validate("peter", token)

    def test_second_signup_already_exists(self, sessions: SessionManager) -> None:
        sessions.signup("u", "p")
        with pytest.raises(AlreadyExists):
            sessions.signup("u", "p2")

    def test_second_login_invalidates_first(self, sessions: SessionManager) -> None:
        sessions.signup("u", "p")
        t1 = sessions.login("u", "p")
        t2 = sessions.login("u", "p")
        with pytest.raises(BadAuth):
            sessions.validate("u", t1)
        sessions.validate("u", t2)

    @pytest.mark.parametrize("user,password", [("u", "wrong"), ("ghost", "p")])
    def test_bad_login_is_bad_auth(self, sessions: SessionManager, user: str, password: str) -> None:
        sessions.signup("u", "p")
        with pytest.raises(BadAuth):
            sessions.login(user, password)

    def test_logout_twice(self, sessions: SessionManager) -> None:
        sessions.signup("u", "p")
        token = sessions.login("u", "p")
        sessions.logout("u", token)
        with pytest.raises(BadAuth):
            sessions.logout("u", token)

    def test_login_again_after_logout(self, sessions: SessionManager) -> None:
        sessions.signup("u", "p")
        sessions.logout("u", sessions.login("u", "p"))
        sessions.validate("u", sessions.login("u", "p"))


class TestErrorPassThrough:
    @pytest.mark.parametrize(
        "call",
        [
            lambda s: s.signup("u", "p"),
            lambda s: s.login("u", "p"),
            lambda s: s.logout("u", "t"),
            lambda s: s.validate("u", "t"),
        ],
    )
    def test_store_error_is_reraised_unchanged(self, call) -> None:
        exc = StoreUnavailable("disk on fire")
        sessions = SessionManager(_BrokenRepo(exc))
        with pytest.raises(StoreUnavailable) as exc_info:
            call(sessions)
        assert exc_info.value is exc


class TestObservability:
    def test_success_is_recorded(self, sessions: SessionManager) -> None:
        with ctxlog.new() as ctx:
            sessions.signup("bob", "x")
        assert ctx.keyvals() == [("auth_method", "signup"), ("auth_user", "bob"), ("auth_err", None)]

    def test_failure_is_recorded(self, sessions: SessionManager) -> None:
        with ctxlog.new(http_path="/auth/validate") as ctx:
            with pytest.raises(BadAuth):
                sessions.validate("bob", "nope")
        kv = dict(ctx.keyvals())
        assert kv["http_path"] == "/auth/validate"
        assert kv["auth_method"] == "validate"
        assert kv["auth_user"] == "bob"
        assert kv["auth_err"] == "BadAuth"

    def test_every_call_records_once(self, sessions: SessionManager) -> None:
        with ctxlog.new() as ctx:
            sessions.signup("bob", "x")
            token = sessions.login("bob", "x")
            sessions.validate("bob", token)
            sessions.logout("bob", token)
        methods = [v for k, v in ctx.keyvals() if k == "auth_method"]
        assert methods == ["signup", "login", "validate", "logout"]

    def test_records_outside_request_context_without_error(self, sessions: SessionManager) -> None:
        sessions.signup("bob", "x")


class TestValidatorCapability:
    def test_validator_only_validates(self, sessions: SessionManager) -> None:
        sessions.signup("bob", "x")
        token = sessions.login("bob", "x")
        v = sessions.validator()
        v.validate("bob", token)
        with pytest.raises(BadAuth):
            v.validate("bob", "other")
        for name in ("signup", "login", "logout"):
            assert not hasattr(v, name)
