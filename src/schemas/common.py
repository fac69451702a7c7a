"""
Envelopes shared by every endpoint.
"""

from typing import Any, Literal, Optional

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Body of every non-2xx answer."""

    detail: str
    code: str


class SuccessResponse(BaseModel):
    message: str
    data: Optional[Any] = None


class HealthResponse(BaseModel):
    status: Literal["ok", "degraded"] = "ok"
    version: str
    database: Literal["connected", "unreachable"] = "connected"
