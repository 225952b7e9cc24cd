"""Error taxonomy for the plan generation pipeline.

Every failure that can end a planner run is one of these. Each carries a
stable `error_code` for log tagging, the HTTP status the buffered endpoint
answers with, and an optional `detail` value that is echoed to the caller
next to the human readable message (the streamed path puts both into the
terminal `error` event).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


RAW_PREFIX_LIMIT = 500


@dataclass(slots=True)
class PlannerError(Exception):
    """Base class for planner domain errors."""

    message: str
    error_code: str
    status_code: int = 500
    detail: Any = None

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.error_code}: {self.message}"

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.message}
        if self.detail is not None:
            payload["detail"] = self.detail
        return payload


class PlanValidationError(PlannerError):
    def __init__(self, message: str, detail: Any = None) -> None:
        super().__init__(
            message=message,
            error_code="validation_error",
            status_code=400,
            detail=detail,
        )


class UpstreamTimeout(PlannerError):
    def __init__(self, model: str, timeout_seconds: float) -> None:
        super().__init__(
            message=f"Ollama call to {model} timed out after {timeout_seconds:g}s",
            error_code="upstream_timeout",
        )


class UpstreamTransportError(PlannerError):
    """Non-success status, unreadable body, or empty content from Ollama."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message=message, error_code="upstream_error")
        self.status = status

    @classmethod
    def from_response(cls, status: int, body: str) -> UpstreamTransportError:
        return cls(f"Ollama error ({status}): {body}", status=status)


class ExtractionFailure(PlannerError):
    """Neither the primary nor the repair output contained parseable JSON."""

    def __init__(self, primary_raw: str, repair_raw: str) -> None:
        super().__init__(
            message=(
                "Model returned non-JSON after attempt+repair. "
                f"A1={primary_raw[:RAW_PREFIX_LIMIT]} | "
                f"R={repair_raw[:RAW_PREFIX_LIMIT]}"
            ),
            error_code="extraction_failed",
        )
        self.primary_raw = primary_raw
        self.repair_raw = repair_raw


class StepContentError(PlannerError):
    """Parsed output is missing content fields the step row requires."""

    def __init__(self, message: str, detail: Any = None) -> None:
        super().__init__(message=message, error_code="invalid_content", detail=detail)


class PersistenceError(PlannerError):
    def __init__(self, message: str, detail: Any = None) -> None:
        super().__init__(
            message=message, error_code="persistence_error", detail=detail
        )


class PlanNotFound(PlannerError):
    def __init__(self, message: str = "Plan not found", detail: Any = None) -> None:
        super().__init__(
            message=message, error_code="not_found", status_code=404, detail=detail
        )


class StepNotFound(PlannerError):
    def __init__(self, message: str = "Step not found", detail: Any = None) -> None:
        super().__init__(
            message=message, error_code="not_found", status_code=404, detail=detail
        )
