# src/essay_grader/schemas/common.py
"""Error payloads shared by every endpoint."""

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Body returned for any operational error."""

    error: str = Field(..., description="Machine-readable error kind")
    detail: str = Field(..., description="Human-readable message")


class ThrottledResponse(ErrorResponse):
    """Body returned when a credential endpoint rejects an attempt."""

    allowed: bool = False
    retry_after_ms: int = Field(..., ge=0, description="Milliseconds until the window resets")
