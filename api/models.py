"""
API response models for the sessions REST endpoints.

These Pydantic v2 models define the HTTP transport contract. Tokens and
messages are the only data that cross it; stored credentials never do.

Request inputs are query parameters (user, pass, token, sequence,
subsequence), so there are no request body models.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict

# ---------------------------------------------------------------------------
# Success responses
# ---------------------------------------------------------------------------


class MessageResponse(BaseModel):
    """Acknowledgement for operations that return nothing but success."""

    model_config = ConfigDict(frozen=True)

    message: str


class TokenResponse(BaseModel):
    """Response for POST /auth/login. The token is opaque; pass it back as-is."""

    model_config = ConfigDict(frozen=True)

    token: str


class HealthResponse(BaseModel):
    """Response for GET /health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
    components: dict[str, str] = {}


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail
