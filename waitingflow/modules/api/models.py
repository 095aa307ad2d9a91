"""
waitingflow API data models.

These models define the JSON bodies returned by the queue endpoints.
"""

from typing import Optional

from pydantic import BaseModel, Field


class RegisterUserResponse(BaseModel):
    """Response to a successful registration."""

    rank: int = Field(..., description="1-based position in the wait set")


class AllowUserResponse(BaseModel):
    """Response to a manual promotion."""

    requested_count: int = Field(..., description="Users asked to admit")
    allowed_count: int = Field(..., description="Users actually admitted", ge=0)


class AllowedUserResponse(BaseModel):
    """Whether a presented token admits the user."""

    allowed: bool


class RankNumberResponse(BaseModel):
    """Current rank in the wait set."""

    rank: int = Field(..., description="1-based rank, -1 when not waiting")


class TouchResponse(BaseModel):
    """Admission token minted for a user."""

    token: str = Field(..., min_length=64, max_length=64)


class ErrorResponse(BaseModel):
    """Error body for application errors."""

    code: str
    reason: str
    rank: Optional[int] = None
