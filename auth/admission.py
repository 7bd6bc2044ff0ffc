"""
auth/admission.py -- Admission layer: per-operation token-bucket rate limiting.

Two policies guard the session operations before they reach the store:

  signup -- ErroringLimiter. An empty bucket fails the call at once with
            RateLimited. Rejected signups are cheap to retry.
  login  -- DelayingLimiter. An empty bucket makes the caller wait until a
            token matures, so bursts of logins are smoothed rather than
            bounced back into a retry storm. Optional timeout: if the wait
            would be longer, fail immediately instead of waiting.

logout and validate are never limited. validate is the hot read path used by
other services and must not queue behind a delayed login.

Limiter state belongs to the AdmissionGate instance that owns it. The app
builds one gate at startup (process-wide state); tests build a fresh gate per
case. Each TokenBucket holds its own lock only for the arithmetic, so
unrelated operations never serialize on each other and nobody sleeps while
holding it.

Layer rule: no imports from api/ or dna/. Import from core/ is allowed.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from auth.errors import RateLimited
from auth.service import SessionManager
from core import ctxlog

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("sessions.auth.admission")


# ---------------------------------------------------------------------------
# Token bucket
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Reservation:
    """Outcome of TokenBucket.reserve().

    ok=False means nothing was taken because the wait would exceed max_wait;
    delay is still filled in so callers can report a retry hint.
    """

    ok: bool
    delay: float


class TokenBucket:
    """Thread-safe token bucket: `burst` capacity, refilled at `rate` tokens/second.

    The bucket starts full. reserve() may drive the balance negative, which
    is how waiting callers queue up: each one is told how long until its own
    token exists.
    """

    def __init__(self, rate: float, burst: int, clock: Callable[[], float] = time.monotonic) -> None:
        if rate <= 0:
            raise ValueError("rate must be positive")
        if burst < 1:
            raise ValueError("burst must be at least 1")
        self.rate = float(rate)
        self.burst = int(burst)
        self._clock = clock
        self._lock = threading.Lock()
        self._tokens = float(burst)
        self._last = clock()

    def _advance(self) -> float:
        now = self._clock()
        elapsed = max(0.0, now - self._last)
        self._tokens = min(float(self.burst), self._tokens + elapsed * self.rate)
        self._last = now
        return now

    def allow(self) -> bool:
        """Take one token if one is available right now."""
        with self._lock:
            self._advance()
            if self._tokens >= 1.0:
                self._tokens -= 1.0
                return True
            return False

    def retry_after(self) -> float:
        """Seconds until one whole token is available (0 if one is available now)."""
        with self._lock:
            self._advance()
            if self._tokens >= 1.0:
                return 0.0
            return (1.0 - self._tokens) / self.rate

    def reserve(self, max_wait: float | None = None) -> Reservation:
        """Take one token, borrowing against future refill if necessary.

        Returns the delay the caller must wait before acting. If that delay
        exceeds max_wait, nothing is taken and ok is False.
        """
        with self._lock:
            self._advance()
            remaining = self._tokens - 1.0
            delay = 0.0 if remaining >= 0 else -remaining / self.rate
            if max_wait is not None and delay > max_wait:
                return Reservation(ok=False, delay=delay)
            self._tokens = remaining
            return Reservation(ok=True, delay=delay)

    def cancel(self, reservation: Reservation) -> None:
        """Give back a token that was reserved but will not be used."""
        if not reservation.ok:
            return
        with self._lock:
            self._advance()
            self._tokens = min(float(self.burst), self._tokens + 1.0)


# ---------------------------------------------------------------------------
# Limiter policies
# ---------------------------------------------------------------------------


class ErroringLimiter:
    """Reject immediately when the bucket is empty."""

    def __init__(self, bucket: TokenBucket) -> None:
        self.bucket = bucket

    def admit(self) -> None:
        if not self.bucket.allow():
            raise RateLimited(retry_after=self.bucket.retry_after())


class DelayingLimiter:
    """Wait for the bucket to refill instead of rejecting.

    Cancellation of the waiting task (client went away, caller timeout) stops
    the wait at once and returns the reserved token to the bucket.
    """

    def __init__(self, bucket: TokenBucket) -> None:
        self.bucket = bucket

    async def admit(self, timeout: float | None = None) -> None:
        reservation = self.bucket.reserve(max_wait=timeout)
        if not reservation.ok:
            raise RateLimited("rate limit wait would exceed timeout", retry_after=reservation.delay)
        if reservation.delay <= 0:
            return
        try:
            await asyncio.sleep(reservation.delay)
        except asyncio.CancelledError:
            self.bucket.cancel(reservation)
            raise


# ---------------------------------------------------------------------------
# Gate
# ---------------------------------------------------------------------------


class AdmissionGate:
    """Async facade over a SessionManager with admission applied.

    Store calls run in a worker thread so a slow store (or a login waiting on
    its limiter) never blocks the event loop serving validate.
    """

    def __init__(
        self,
        manager: SessionManager,
        signup_limiter: ErroringLimiter,
        login_limiter: DelayingLimiter,
        login_timeout: float | None = None,
    ) -> None:
        self._manager = manager
        self._signup = signup_limiter
        self._login = login_limiter
        self._login_timeout = login_timeout

    @classmethod
    def from_settings(cls, manager: SessionManager, settings: Settings) -> AdmissionGate:
        return cls(
            manager,
            ErroringLimiter(TokenBucket(settings.signup_rate, settings.signup_burst)),
            DelayingLimiter(TokenBucket(settings.login_rate, settings.login_burst)),
            login_timeout=settings.login_wait_timeout,
        )

    async def signup(self, username: str, password: str) -> None:
        try:
            self._signup.admit()
        except RateLimited:
            self._rejected("signup", username)
            raise
        await asyncio.to_thread(self._manager.signup, username, password)

    async def login(self, username: str, password: str, timeout: float | None = None) -> str:
        await self.admit_login(username, timeout=timeout)
        return await self.finish_login(username, password)

    async def admit_login(self, username: str, timeout: float | None = None) -> None:
        """Wait on the login limiter. Cancelling here consumes nothing."""
        wait = timeout if timeout is not None else self._login_timeout
        try:
            await self._login.admit(timeout=wait)
        except RateLimited:
            self._rejected("login", username)
            raise

    async def finish_login(self, username: str, password: str) -> str:
        """Run an admitted login against the store.

        Once this starts the session row is replaced even if the awaiting
        task is cancelled, so callers should not cancel it.
        """
        return await asyncio.to_thread(self._manager.login, username, password)

    async def logout(self, username: str, token: str) -> None:
        await asyncio.to_thread(self._manager.logout, username, token)

    async def validate(self, username: str, token: str) -> None:
        await asyncio.to_thread(self._manager.validate, username, token)

    @staticmethod
    def _rejected(method: str, username: str) -> None:
        ctxlog.log(admission_method=method, admission_user=username, admission_err="RateLimited")
        logger.info("admission rejected %s for user=%s", method, username)
