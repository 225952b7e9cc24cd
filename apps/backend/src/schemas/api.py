"""Response envelopes for the non-planner routes (health, error handling)."""

from __future__ import annotations

from typing import Any, Generic, TypeVar

from pydantic import BaseModel


T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Envelope used by the health route and by normalized error responses.

    ``error`` is only populated on failures and carries the correlation id
    plus whatever diagnostic fields the environment allows.
    """

    success: bool = True
    data: T | None = None
    message: str = "Operation completed successfully"
    error: dict[str, Any] | None = None


class ErrorResponse(ApiResponse[None]):
    success: bool = False
    message: str = "An error occurred"
