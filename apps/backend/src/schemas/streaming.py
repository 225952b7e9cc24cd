"""Schemas for planner SSE streaming."""

from __future__ import annotations

import json
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict
from pydantic_core import to_jsonable_python


SSE_HEADERS: dict[str, str] = {
    "Content-Type": "text/event-stream; charset=utf-8",
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
}

EventName = Literal["status", "token", "done", "error"]


class StreamEvent(BaseModel):
    """One named event on the planner stream.

    ``status`` marks phase transitions, ``token`` carries a non-blank model
    delta, and exactly one of ``done`` / ``error`` ends every stream.
    """

    event: EventName
    data: Any = None

    model_config = ConfigDict(extra="forbid")

    @property
    def is_terminal(self) -> bool:
        return self.event in ("done", "error")

    def to_sse(self) -> str:
        """Render as ``event:`` line, single-line JSON ``data:`` line, blank line."""
        # json.dumps escapes embedded newlines, so the data line stays one line
        payload = json.dumps(
            to_jsonable_python(self.data), ensure_ascii=False, separators=(",", ":")
        )
        return f"event: {self.event}\ndata: {payload}\n\n"
