"""
auth/service.py -- Session Manager: signup, login, logout, validate.

Most of the auth logic lives in the repository (auth/store.py), so this is a
thin wrapper. Each method delegates 1:1 to the store and returns or raises
exactly what the store did. The one thing it adds is observability: every
call, whatever its outcome, records auth_method / auth_user / auth_err into
the request's diagnostic context (core.ctxlog), counts it in
auth_events_total{method,success} and emits a DEBUG line.

The dependent subsequence service must only ever see validate(); use
validator() to hand it that capability instead of the manager itself.

Layer rule: no imports from api/ or dna/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from prometheus_client import Counter

from auth.store import Repository
from auth.validator import LocalValidator
from core import ctxlog
from core.metrics import AUTH_EVENTS, success_label

logger = logging.getLogger("sessions.auth")


class SessionManager:
    """Session lifecycle operations over a Repository."""

    def __init__(self, repo: Repository, events: Counter = AUTH_EVENTS) -> None:
        self._repo = repo
        self._events = events

    def signup(self, username: str, password: str) -> None:
        """Create a user with the given password. The user still needs to log in."""
        with self._observe("signup", username):
            self._repo.create(username, password)

    def login(self, username: str, password: str) -> str:
        """Log the user in and return a token for logout/validate.

        Any earlier token for the same user stops being valid.
        """
        with self._observe("login", username):
            return self._repo.authenticate(username, password)

    def logout(self, username: str, token: str) -> None:
        """Log the user out, if the token is their current one."""
        with self._observe("logout", username):
            self._repo.invalidate(username, token)

    def validate(self, username: str, token: str) -> None:
        """Return None if the user is logged in with this token, else raise BadAuth."""
        with self._observe("validate", username):
            self._repo.check(username, token)

    def validator(self) -> LocalValidator:
        """Return the validate-only capability for other services."""
        return LocalValidator(self)

    @contextmanager
    def _observe(self, method: str, username: str) -> Iterator[None]:
        err: BaseException | None = None
        try:
            yield
        except BaseException as exc:
            err = exc
            raise
        finally:
            self._record(method, username, err)

    def _record(self, method: str, username: str, err: BaseException | None) -> None:
        outcome = type(err).__name__ if err is not None else None
        ctxlog.log(auth_method=method, auth_user=username, auth_err=outcome)
        self._events.labels(method=method, success=success_label(err)).inc()
        logger.debug("auth %s user=%s err=%s", method, username, outcome)
