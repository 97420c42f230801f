"""Pydantic schemas for API requests/responses."""

from creativehub.schemas.common import ErrorResponse, SuccessResponse

__all__ = [
    "ErrorResponse",
    "SuccessResponse",
]
