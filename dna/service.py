"""
dna/service.py -- Subsequence lookup service.

Users store one DNA sequence each (add) and later ask whether a subsequence
occurs in it (check). Both operations are gated on the session service
through the Validator capability only; this service can never sign users up
or log them in.

Any validator failure is reported as this service's own BadAuth, so callers
see one error family regardless of whether the session service is local or
remote.

check() is timed into dna_check_duration_seconds{success}.

Layer rule: no imports from api/. auth/ is used only for the Validator type.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Protocol

from prometheus_client import Histogram

from auth.errors import AuthError
from auth.validator import Validator
from core import ctxlog
from core.metrics import DNA_CHECK_DURATION, success_label

logger = logging.getLogger("sessions.dna")

_ALPHABET = frozenset("gatc")


class DNAError(Exception):
    code: str = "dna_error"
    message: str = "DNA service error."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)


class BadAuth(DNAError):
    code = "bad_auth"
    message = "bad auth"


class InvalidSequence(DNAError):
    code = "invalid_sequence"
    message = "invalid DNA sequence"


class SubsequenceNotFound(DNAError):
    code = "subsequence_not_found"
    message = "subsequence doesn't appear in the DNA sequence"


class SequenceStoreError(DNAError):
    """The repository refused the operation (duplicate user, unknown user, backend failure)."""

    code = "sequence_store_error"
    message = "sequence repository error"


class SequenceRepository(Protocol):
    def insert(self, username: str, sequence: str) -> None: ...

    def select(self, username: str) -> str: ...


def valid_sequence(sequence: str) -> bool:
    """Return True if sequence consists only of g, a, t, c (empty is valid)."""
    return all(c in _ALPHABET for c in sequence)


class SubsequenceService:
    def __init__(
        self,
        repo: SequenceRepository,
        validator: Validator,
        check_duration: Histogram = DNA_CHECK_DURATION,
    ) -> None:
        self._repo = repo
        self._validator = validator
        self._check_duration = check_duration

    def add(self, username: str, token: str, sequence: str) -> None:
        """Store a user's DNA sequence."""
        with self._observe(dna_method="add", dna_user=username):
            self._authorize(username, token)
            if not valid_sequence(sequence):
                raise InvalidSequence()
            try:
                self._repo.insert(username, sequence)
            except SequenceStoreError as exc:
                raise SequenceStoreError(f"error adding new user: {exc}") from exc

    def check(self, username: str, token: str, subsequence: str) -> None:
        """Return None if subsequence occurs in the user's stored sequence."""
        with self._timed_check(), self._observe(dna_method="check", dna_user=username, dna_subseq=subsequence):
            self._authorize(username, token)
            try:
                sequence = self._repo.select(username)
            except SequenceStoreError as exc:
                raise SequenceStoreError(f"error reading DNA sequence from repository: {exc}") from exc
            if subsequence not in sequence:
                raise SubsequenceNotFound()

    def _authorize(self, username: str, token: str) -> None:
        try:
            self._validator.validate(username, token)
        except AuthError as exc:
            raise BadAuth() from exc

    @contextmanager
    def _timed_check(self) -> Iterator[None]:
        start = time.perf_counter()
        err: BaseException | None = None
        try:
            yield
        except BaseException as exc:
            err = exc
            raise
        finally:
            self._check_duration.labels(success=success_label(err)).observe(time.perf_counter() - start)

    @contextmanager
    def _observe(self, **keyvals: object) -> Iterator[None]:
        err: BaseException | None = None
        try:
            yield
        except BaseException as exc:
            err = exc
            raise
        finally:
            outcome = type(err).__name__ if err is not None else None
            ctxlog.log(**keyvals, dna_err=outcome)
            logger.debug("dna %s user=%s err=%s", keyvals.get("dna_method"), keyvals.get("dna_user"), outcome)
