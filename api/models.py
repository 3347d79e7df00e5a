"""
API response models for simpleauth's JSON endpoints.

Only /health and error responses are JSON. Forward-auth responses are raw
status + headers + login page bytes built from auth.engine.Decision.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 429/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /health.

    error is only present when status is "unhealthy".
    """

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    users: int
    secret_set: bool
    uptime: str
    error: Optional[str] = None
