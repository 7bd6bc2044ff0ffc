"""
api/routes/auth.py -- Session service REST endpoints.

Routes:
  POST /auth/signup    ?user=&pass=    -- create credential (erroring limiter)
  POST /auth/login     ?user=&pass=    -- issue token (delaying limiter)
  GET  /auth/validate  ?user=&token=   -- check a session (never limited)
  POST /auth/logout    ?user=&token=   -- revoke a session (never limited)

Errors are raised as auth.errors exceptions and turned into the shared
error envelope by the handlers in api/main.py: BadAuth 401, AlreadyExists
409, RateLimited 429, StoreUnavailable 503.

Security:
  BadAuth is the only failure for unknown user, wrong password, and
  wrong/revoked token, so responses do not reveal which usernames exist.
  Cache-Control: no-store on login responses (the body carries a token).
  A login waiting on its limiter is cancelled if the client disconnects.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse

from api.models import MessageResponse, TokenResponse
from auth.admission import AdmissionGate

router = APIRouter()

T = TypeVar("T")

_User = Query(..., min_length=1, max_length=255, description="Username")
_Pass = Query(..., alias="pass", max_length=255, description="Password")
_Token = Query(..., max_length=255, description="Session token returned by /auth/login")


class ClientDisconnected(Exception):
    """The client went away while its request was still waiting."""


async def _until_disconnected(request: Request, poll: float = 0.25) -> None:
    while not await request.is_disconnected():
        await asyncio.sleep(poll)


async def _unless_disconnected(request: Request, work: Awaitable[T]) -> T:
    """Await work, cancelling it if the client disconnects first."""
    task = asyncio.ensure_future(work)
    watcher = asyncio.ensure_future(_until_disconnected(request))
    finished = False
    try:
        await asyncio.wait({task, watcher}, return_when=asyncio.FIRST_COMPLETED)
        finished = task.done()
    finally:
        watcher.cancel()
        if not task.done():
            task.cancel()
    if not finished:
        raise ClientDisconnected()
    return task.result()


def _gate(request: Request) -> AdmissionGate:
    return request.app.state.gate


@router.post("/auth/signup", response_model=MessageResponse)
async def signup(request: Request, user: str = _User, password: str = _Pass) -> MessageResponse:
    """Create a user with the given password. The user still needs to log in."""
    await _gate(request).signup(user, password)
    return MessageResponse(message="signup successful")


@router.post("/auth/login", response_model=TokenResponse)
async def login(request: Request, user: str = _User, password: str = _Pass) -> JSONResponse:
    """Log in and return a fresh token. Any earlier token for the user stops working."""
    gate = _gate(request)
    # Only the limiter wait is abandoned on disconnect; an admitted login runs
    # to completion so the session row and the returned token agree.
    await _unless_disconnected(request, gate.admit_login(user))
    token = await gate.finish_login(user, password)
    resp = JSONResponse(status_code=200, content=TokenResponse(token=token).model_dump())
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.get("/auth/validate", response_model=MessageResponse)
async def validate(request: Request, user: str = _User, token: str = _Token) -> MessageResponse:
    """Succeed only if token is the user's current session token."""
    await _gate(request).validate(user, token)
    return MessageResponse(message="validate successful")


@router.post("/auth/logout", response_model=MessageResponse)
async def logout(request: Request, user: str = _User, token: str = _Token) -> MessageResponse:
    """Revoke the user's session, if token is the current one."""
    await _gate(request).logout(user, token)
    return MessageResponse(message="logout successful")
