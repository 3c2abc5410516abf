"""
Response schemas for API endpoints.

This module defines the unified error format for API endpoints:
- BaseResponse: Common fields for all responses
- ErrorResponse: Error response with error details
"""

from typing import Optional
from pydantic import BaseModel, Field


class BaseResponse(BaseModel):
    """Base response model with common fields."""

    success: bool = Field(..., description="Indicates whether the request was successful")
    message: Optional[str] = Field(None, description="Optional message for additional context")


class ErrorResponse(BaseResponse):
    """Error response with detailed error information."""

    success: bool = Field(False, description="Always false for error responses")
    data: None = Field(None, description="Always null for error responses")
    error: Optional[dict] = Field(
        None,
        description="Error details including code and optional details",
        examples=[
            {"code": "NOT_FOUND"},
            {"code": "VALIDATION_ERROR", "details": [{"loc": ["body", "command"], "msg": "Field required"}]}
        ]
    )
