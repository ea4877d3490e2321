"""
Standardized error envelope.

    {
        "error": {
            "code": "ERROR_CODE",
            "message": "Human-readable message",
            "details": {...}  # Optional extra context
        },
        "status": "error"
    }

The chat endpoint adds a top-level "message" so the widget always has
something to show the client.
"""

from typing import Any, Optional

from pydantic import BaseModel


class ErrorDetail(BaseModel):
    """Structured error information."""
    code: str
    message: str
    details: Optional[dict[str, Any]] = None


class ErrorCodes:
    """Standard error codes for API responses."""

    INTERNAL_ERROR = "INTERNAL_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"


def error_response(
    code: str,
    message: str,
    details: Optional[dict] = None,
) -> dict:
    """Create a standardized error response dict."""
    response = {
        "error": ErrorDetail(code=code, message=message).model_dump(exclude_none=True),
        "status": "error",
    }
    if details:
        response["error"]["details"] = details
    return response
