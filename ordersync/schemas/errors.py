"""
schemas/errors.py — Structured error response model

Shared by the OrderSyncError and RequestValidationError handlers in main.py.
"""

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    error: str
    status_code: int
    kind: str = ""
    detail: list | None = None
