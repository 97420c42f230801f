"""Common schemas used across the API."""

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response.

    ``attempts_left`` and ``wait_seconds`` are the only counters ever
    surfaced, so clients can render retry guidance.
    """

    detail: str
    code: str | None = None
    attempts_left: int | None = None
    wait_seconds: int | None = None


class SuccessResponse(BaseModel):
    """Standard success response."""

    success: bool = True
    message: str
