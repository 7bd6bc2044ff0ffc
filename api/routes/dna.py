"""
api/routes/dna.py -- Subsequence service REST endpoints.

Routes:
  POST /dna/add    ?user=&token=&sequence=      -- store the user's sequence
  GET  /dna/check  ?user=&token=&subsequence=   -- 200 if found, 404 if not

Both require a live session: the token is checked through the Validator
capability (local or remote), never through the session manager directly.
The service is synchronous (SQL store, possibly a remote HTTP validator),
so calls run in a worker thread.
"""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, Query, Request

from api.models import MessageResponse
from dna.service import SubsequenceService

router = APIRouter()


def _dna(request: Request) -> SubsequenceService:
    return request.app.state.dna


@router.post("/dna/add", response_model=MessageResponse)
async def add(
    request: Request,
    user: str = Query(..., min_length=1, max_length=255),
    token: str = Query(..., max_length=255),
    sequence: str = Query("", max_length=100_000),
) -> MessageResponse:
    """Store a DNA sequence (letters g, a, t, c only) for the authenticated user."""
    await asyncio.to_thread(_dna(request).add, user, token, sequence)
    return MessageResponse(message="Add OK")


@router.get("/dna/check", response_model=MessageResponse)
async def check(
    request: Request,
    user: str = Query(..., min_length=1, max_length=255),
    token: str = Query(..., max_length=255),
    subsequence: str = Query("", max_length=100_000),
) -> MessageResponse:
    """Report whether subsequence occurs in the authenticated user's sequence."""
    await asyncio.to_thread(_dna(request).check, user, token, subsequence)
    return MessageResponse(message="Subsequence found")
