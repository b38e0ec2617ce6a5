"""Structured error response schemas."""
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class ErrorDetail(BaseModel):
    """Detailed error information."""

    code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    field: str | None = Field(default=None, description="Field that caused the error (for validation errors)")
    value: Any | None = Field(default=None, description="Invalid value (for validation errors)")


class ErrorResponse(BaseModel):
    """Standard error response structure."""

    error: str = Field(..., description="Error type (e.g., 'ValidationError', 'NotFound')")
    message: str = Field(..., description="Primary error message")
    details: list[ErrorDetail] | None = Field(default=None, description="Detailed error information")
    request_id: str | None = Field(default=None, description="Request ID for tracing")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="Error timestamp")


class ErrorCode:
    """Standard error codes used across the API."""

    VALIDATION_ERROR = "validation_error"
    INSTANCE_NOT_FOUND = "instance_not_found"
    MESSAGING_API_ERROR = "messaging_api_error"
    DATABASE_ERROR = "database_error"
    INTERNAL_ERROR = "internal_error"
