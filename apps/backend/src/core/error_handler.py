"""Request-scoped logging and the error envelope returned by the API.

Every log line carries the correlation id of the request that produced it,
including lines written by a streamed planner run that outlives the HTTP
exchange (the id lives in a ``ContextVar`` that ``asyncio.create_task``
copies). Extra fields passed to ``StructuredLogger`` are scrubbed with
``core.security_config`` before they are logged.

Errors that escape a route are rendered as ``ErrorResponse``; which
diagnostic fields appear depends on ``ENVIRONMENT``.
"""

import logging
import sys
import traceback
import uuid
from contextvars import ContextVar
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from core.config import get_settings
from core.security_config import get_allowed_error_fields, is_sensitive_key
from schemas.api import ErrorResponse
from services.ai.exceptions import PlannerError


REDACTED = "[REDACTED]"

_correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)


def get_correlation_id() -> str:
    """Return the current correlation id, minting one if none is set."""
    current = _correlation_id_var.get()
    if not current:
        current = str(uuid.uuid4())
        _correlation_id_var.set(current)
    return current


def set_correlation_id(correlation_id: str | None) -> None:
    _correlation_id_var.set(correlation_id)


class StructuredLogger:
    """``logging.Logger`` wrapper that attaches correlation id and scrubbed fields.

    Keyword arguments become ``record.structured_data``; the production JSON
    formatter serializes them, the development formatter ignores them and
    the correlation id is prefixed to the message instead.
    """

    def __init__(self, logger_name: str):
        self.logger = logging.getLogger(logger_name)

    def _log(
        self,
        level: int,
        message: str,
        fields: dict[str, Any],
        exc_info: bool = False,
    ) -> None:
        correlation_id = get_correlation_id()
        structured = {
            "correlation_id": correlation_id,
            "message": message,
            **self._sanitize_data(fields),
        }
        if get_settings().ENVIRONMENT != "production":
            message = f"[{correlation_id}] {message}"
        self.logger.log(
            level, message, extra={"structured_data": structured}, exc_info=exc_info
        )

    def _sanitize_data(self, data: dict[str, Any]) -> dict[str, Any]:
        """Mask values under sensitive keys, recursing into dicts and lists."""
        if not isinstance(data, dict) or not data:
            return {}

        header = self._redact_header_like(data)
        if header is not None:
            return header

        return {
            key: REDACTED if is_sensitive_key(key) else self._sanitize_value(value)
            for key, value in data.items()
        }

    def _sanitize_value(self, value: Any) -> Any:
        if isinstance(value, dict):
            return self._sanitize_data(value)
        if isinstance(value, list):
            return [self._sanitize_value(item) for item in value]
        return value

    def _redact_header_like(self, data: dict[str, Any]) -> dict[str, Any] | None:
        """Redact ``{"name"|"key": <sensitive>, "value": ...}`` pairs.

        Returns None when ``data`` is not such a pair or names a harmless header.
        """
        if "value" not in data:
            return None
        header_name = data.get("name") or data.get("key")
        if not isinstance(header_name, str) or not is_sensitive_key(header_name):
            return None

        redacted: dict[str, Any] = {}
        for key, value in data.items():
            if key.lower() in {"value", "val", "v"} or is_sensitive_key(key):
                redacted[key] = REDACTED
            elif isinstance(value, dict):
                redacted[key] = self._sanitize_data(value)
            else:
                redacted[key] = value
        return redacted

    def info(self, message: str, **fields: Any) -> None:
        self._log(logging.INFO, message, fields)

    def warning(self, message: str, **fields: Any) -> None:
        self._log(logging.WARNING, message, fields)

    def error(self, message: str, **fields: Any) -> None:
        self._log(logging.ERROR, message, fields)

    def exception(self, message: str, **fields: Any) -> None:
        self._log(logging.ERROR, message, fields, exc_info=True)


structured_logger = StructuredLogger(__name__)


class ExceptionNormalizationMiddleware(BaseHTTPMiddleware):
    """Turn anything a route lets escape into an ``ErrorResponse``."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:  # noqa: BLE001
            return await global_exception_handler(request, exc)


def _build_error_response(
    *,
    correlation_id: str,
    error_type: str,
    message: str,
    environment: str,
    details: dict[str, Any] | None = None,
    traceback_str: str | None = None,
    exception_type: str | None = None,
    validation_errors: Any | None = None,
    status_code: int = 500,
) -> JSONResponse:
    """Render an ``ErrorResponse``, dropping fields ``environment`` does not allow."""
    optional = {
        "details": details,
        "traceback": traceback_str,
        "exception_type": exception_type,
        "validation_errors": validation_errors,
    }
    allowed = get_allowed_error_fields(environment)
    error_body: dict[str, Any] = {"correlation_id": correlation_id, "type": error_type}
    error_body.update(
        (field, value)
        for field, value in optional.items()
        if field in allowed and value is not None and value != {}
    )
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(message=message, error=error_body).model_dump(),
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Map an exception to a status code and a sanitized ``ErrorResponse``."""
    environment = get_settings().ENVIRONMENT
    correlation_id = get_correlation_id()
    verbose = environment != "production"

    if isinstance(exc, StarletteHTTPException):
        return _build_error_response(
            correlation_id=correlation_id,
            error_type="http_error",
            message="An HTTP error occurred",
            environment=environment,
            details={"detail": exc.detail},
            exception_type=exc.__class__.__name__,
            status_code=exc.status_code,
        )

    if isinstance(exc, ValidationError | RequestValidationError):
        errors = exc.errors()
        structured_logger.warning("Request validation failed", error_count=len(errors))
        return _build_error_response(
            correlation_id=correlation_id,
            error_type="validation_error",
            message="Invalid request data provided",
            environment=environment,
            validation_errors=errors,
            status_code=422,
        )

    if isinstance(exc, PlannerError):
        structured_logger.warning(
            "Planner error",
            error_code=exc.error_code,
            error_type=exc.__class__.__name__,
            domain_message=exc.message,
        )
        return _build_error_response(
            correlation_id=correlation_id,
            error_type=exc.error_code,
            message=exc.message,
            environment=environment,
            details=None if exc.detail is None else {"detail": exc.detail},
            status_code=exc.status_code,
        )

    if isinstance(exc, SQLAlchemyError):
        structured_logger.error("Datastore error", error=str(exc))
        return _build_error_response(
            correlation_id=correlation_id,
            error_type="persistence_error",
            message="A datastore error occurred",
            environment=environment,
        )

    structured_logger.exception(
        "Unhandled exception", exception_type=exc.__class__.__name__, error=str(exc)
    )
    return _build_error_response(
        correlation_id=correlation_id,
        error_type="internal_server_error",
        message="An internal error occurred",
        environment=environment,
        traceback_str="".join(traceback.format_exception(exc)).strip()
        if verbose
        else None,
        exception_type=exc.__class__.__name__ if verbose else None,
    )


def setup_logging() -> None:
    """Install one stdout handler on the root logger; JSON lines in production.

    Does nothing when the root logger already has handlers (uvicorn --reload,
    pytest), so it is safe to call at import time.
    """
    root_logger = logging.getLogger()
    if root_logger.handlers:
        return

    environment = get_settings().ENVIRONMENT
    level = logging.DEBUG if environment == "development" else logging.INFO

    formatter: logging.Formatter
    if environment == "production":
        from pythonjsonlogger.jsonlogger import JsonFormatter  # type: ignore

        formatter = JsonFormatter(fmt="%(asctime)s %(levelname)s %(name)s %(message)s")
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.setLevel(level)
    root_logger.setLevel(level)
    root_logger.addHandler(handler)

    # The Ollama client logs one summary line per call
    logging.getLogger("httpx").setLevel(logging.WARNING)
    if environment == "production":
        logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
