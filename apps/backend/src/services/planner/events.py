"""Bridge between a planner run and an SSE response body.

A run pushes named events through an ``EventSink``. ``EventRelay`` renders
each one to the wire format and hands it to the response iterator through
an unbounded queue; ``run_streamed`` drives one run and guarantees that the
stream ends with exactly one ``done`` or ``error`` record and is closed
exactly once, whatever happens inside the run, cancellation included.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

from core.error_handler import StructuredLogger
from schemas.streaming import StreamEvent
from services.ai.client import DeltaSink
from services.ai.exceptions import PlannerError


logger = StructuredLogger(__name__)

# emit(event_name, data); must not block
EventSink = Callable[[str, Any], None]


def discard_event(event: str, data: Any) -> None:
    """Sink for buffered (non-streamed) runs."""


def token_forwarder(emit: EventSink, **fields: Any) -> DeltaSink:
    """Delta sink that emits ``token`` events tagged with ``fields``.

    Whitespace-only deltas are dropped.
    """

    def forward(delta: str) -> None:
        if delta.strip():
            emit("token", {**fields, "delta": delta})

    return forward


class StreamClosedError(RuntimeError):
    pass


class EventRelay:
    def __init__(self) -> None:
        self._queue: asyncio.Queue[str | None] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def emit(self, event: str, data: Any) -> None:
        if self._closed:
            raise StreamClosedError(f"emit({event!r}) after the stream was closed")
        record = StreamEvent.model_validate({"event": event, "data": data})
        self._queue.put_nowait(record.to_sse())

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(None)

    async def __aiter__(self) -> AsyncIterator[str]:
        while True:
            chunk = await self._queue.get()
            if chunk is None:
                return
            yield chunk


def internal_error_payload(exc: BaseException) -> dict[str, Any]:
    return {"error": "Internal server error", "detail": str(exc) or repr(exc)}


async def run_streamed(
    relay: EventRelay,
    producer: Callable[[EventSink], Awaitable[dict[str, Any]]],
) -> None:
    """Run ``producer`` against ``relay``; its return value becomes ``done``."""
    try:
        payload = await producer(relay.emit)
        relay.emit("done", payload)
    except PlannerError as exc:
        logger.warning(
            "Streamed run failed", error_code=exc.error_code, error=exc.message
        )
        relay.emit("error", exc.to_payload())
    except Exception as exc:  # noqa: BLE001
        logger.exception("Streamed run crashed", exception_type=type(exc).__name__)
        relay.emit("error", internal_error_payload(exc))
    except asyncio.CancelledError:
        logger.warning("Streamed run cancelled")
        relay.emit("error", {"error": "Run cancelled"})
        raise
    finally:
        relay.close()
