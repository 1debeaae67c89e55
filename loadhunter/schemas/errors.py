"""
schemas/errors.py — Structured error response model

Shared by the exception handlers in main.py.
"""

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    error: str
    status_code: int
    reason: str | None = None
    detail: list | None = None
