"""Tests for auth/validator.py -- HTTPValidator against a mocked requests.Session."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import requests

from auth.errors import BadAuth, StoreUnavailable
from auth.validator import HTTPValidator


def _session(status_code: int | None = None, exc: Exception | None = None) -> MagicMock:
    session = MagicMock(spec=requests.Session)
    if exc is not None:
        session.get.side_effect = exc
    else:
        session.get.return_value = MagicMock(status_code=status_code)
    return session


def test_ok_on_200() -> None:
    session = _session(200)
    v = HTTPValidator("http://auth.local:8081/", timeout=2.0, session=session)
    v.validate("bob", "t0k")
    session.get.assert_called_once_with(
        "http://auth.local:8081/auth/validate",
        params={"user": "bob", "token": "t0k"},
        timeout=2.0,
    )


def test_401_is_bad_auth() -> None:
    v = HTTPValidator("http://auth.local", session=_session(401))
    with pytest.raises(BadAuth):
        v.validate("bob", "t0k")


@pytest.mark.parametrize("status", [404, 429, 500, 503])
def test_other_status_is_store_unavailable(status: int) -> None:
    v = HTTPValidator("http://auth.local", session=_session(status))
    with pytest.raises(StoreUnavailable, match=str(status)):
        v.validate("bob", "t0k")


@pytest.mark.parametrize("exc", [requests.ConnectionError("refused"), requests.Timeout("slow")])
def test_transport_error_is_store_unavailable(exc: Exception) -> None:
    v = HTTPValidator("http://auth.local", session=_session(exc=exc))
    with pytest.raises(StoreUnavailable) as exc_info:
        v.validate("bob", "t0k")
    assert exc_info.value.__cause__ is exc


def test_close_closes_session() -> None:
    session = _session(200)
    HTTPValidator("http://auth.local", session=session).close()
    session.close.assert_called_once()
