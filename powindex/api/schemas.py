# powindex/api/schemas.py
"""
Pydantic models for API requests and responses.
"""

from typing import Optional

from pydantic import BaseModel, Field, validator


class ProfileRequest(BaseModel):
    """Request model for profile generation."""

    mode: str = Field(
        default="fast",
        description="Ingestion mode: 'fast' (event feed) or 'full' (per-repository history)",
        examples=["fast"]
    )
    months_back: Optional[int] = Field(
        default=None,
        ge=1,
        le=60,
        description="Activity window in months; the configured default when omitted",
        examples=[12]
    )

    @validator('mode')
    def validate_mode(cls, v):
        """Only the two ingestion modes are accepted."""
        v = (v or "").strip().lower()
        if v not in ("fast", "full"):
            raise ValueError("mode must be 'fast' or 'full'")
        return v


class ErrorResponse(BaseModel):
    """Response model for error cases."""

    error: str = Field(
        ...,
        description="Error type or category",
        examples=["validation_error"]
    )
    detail: str = Field(
        ...,
        description="Detailed error message",
        examples=["A subject login is required"]
    )
