"""Middleware for request correlation ID tracking."""

import uuid
from collections.abc import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from core.config import get_settings
from core.error_handler import set_correlation_id


CORRELATION_HEADER = "X-Correlation-ID"
BUILD_MARKER_HEADER = "X-Build-Marker"


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Attach a correlation id (and the deployed build marker) to every request.

    The id is taken from the incoming header when the caller supplies one so
    a client can stitch its own logs to ours, and echoed on the response.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())

        set_correlation_id(correlation_id)
        request.state.correlation_id = correlation_id

        response = await call_next(request)

        response.headers[CORRELATION_HEADER] = correlation_id
        response.headers[BUILD_MARKER_HEADER] = get_settings().BUILD_MARKER
        return response
