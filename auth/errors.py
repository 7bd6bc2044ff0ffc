"""
auth/errors.py -- Error taxonomy for the session service.

Every failure the session core can produce is one of these classes. They are
raised, never returned, and the Session Manager re-raises them unchanged. The
API layer maps them onto HTTP status codes in one place (api/main.py).

BadAuth is deliberately overloaded: unknown user, wrong password, and wrong or
revoked token all raise the same class with the same message, so a caller
cannot use it to probe which usernames exist.

Layer rule: no imports from api/, dna/, or core/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for session service failures.

    `code` is a stable machine-readable identifier used in API error bodies.
    """

    code: str = "auth_error"
    message: str = "Authentication service error."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)


class AlreadyExists(AuthError):
    """Signup for a username that already has a credential."""

    code = "already_exists"
    message = "user already exists"


class BadAuth(AuthError):
    """Unknown user, wrong password, or wrong/revoked token (indistinguishable)."""

    code = "bad_auth"
    message = "bad auth"


class RateLimited(AuthError):
    """Admission rejected the call before it reached the store.

    retry_after is the number of seconds after which a retry is expected to
    be admitted (rounded up by the HTTP layer for the Retry-After header).
    """

    code = "rate_limited"
    message = "rate limit exceeded"

    def __init__(self, message: str | None = None, retry_after: float = 1.0) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class StoreUnavailable(AuthError):
    """The backing store (or a remote session service) failed. Never retried here."""

    code = "store_unavailable"
    message = "session store unavailable"
