"""
auth/validator.py -- The Validator capability handed to other services.

The subsequence service needs exactly one thing from the session service:
"is this (user, token) pair a live session?". Validator is that capability
and nothing more; signup/login/logout are unreachable through it.

Two implementations:
  LocalValidator -- in-process, wraps a SessionManager (monolith wiring).
  HTTPValidator  -- calls GET {base}/auth/validate on a remote session
                    service (split deployment). 200 means valid, 401 means
                    BadAuth, anything else is treated as the upstream being
                    unavailable rather than as a verdict on the token.

Layer rule: no imports from api/ or dna/.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

import requests

from auth.errors import BadAuth, StoreUnavailable

if TYPE_CHECKING:
    from auth.service import SessionManager

logger = logging.getLogger("sessions.auth.validator")


class Validator(Protocol):
    def validate(self, username: str, token: str) -> None: ...


class LocalValidator:
    """Validate-only view of a SessionManager."""

    def __init__(self, manager: SessionManager) -> None:
        self._manager = manager

    def validate(self, username: str, token: str) -> None:
        self._manager.validate(username, token)


class HTTPValidator:
    """Validator backed by a remote session service's /auth/validate route.

    Usage:
        v = HTTPValidator("http://127.0.0.1:8081")
        v.validate("bob", token)   # raises BadAuth / StoreUnavailable
        v.close()
    """

    def __init__(self, base_url: str, timeout: float = 5.0, session: requests.Session | None = None) -> None:
        self._url = base_url.rstrip("/") + "/auth/validate"
        self._timeout = timeout
        self._session = session or requests.Session()
        # Known internal endpoint; no reason to follow long redirect chains.
        self._session.max_redirects = 3

    def validate(self, username: str, token: str) -> None:
        try:
            resp = self._session.get(
                self._url,
                params={"user": username, "token": token},
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            logger.warning("validate request to %s failed: %s", self._url, e)
            raise StoreUnavailable(f"error making validate request: {e}") from e
        if resp.status_code == 200:
            return
        if resp.status_code == 401:
            raise BadAuth()
        raise StoreUnavailable(f"session service returned {resp.status_code}")

    def close(self) -> None:
        self._session.close()
