"""Ollama ``/api/chat`` client used for every plan generation call.

Two modes share one request shape:

* ``generate``: a single blocking call returning ``message.content``.
* ``generate_stream``: the same call with ``stream: true``; the NDJSON body
  is decoded incrementally and each non-empty content delta is pushed to the
  caller's sink as it arrives.

Both are bounded by the request's own deadline. On expiry the HTTP exchange
is cancelled and ``UpstreamTimeout`` is raised.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from core.observability import get_tracer
from services.ai.exceptions import UpstreamTimeout, UpstreamTransportError


logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)

SYSTEM_INSTRUCTION = (
    "Return ONLY valid MINIFIED JSON (single line). "
    "No markdown. No commentary. No trailing commas."
)
TEMPERATURE = 0

# Receives each content delta synchronously, in arrival order.
DeltaSink = Callable[[str], None]


@dataclass(frozen=True, slots=True)
class GenerationRequest:
    """One call to the inference service. Sampling is always deterministic."""

    model: str
    prompt: str
    num_predict: int
    timeout_seconds: float

    def to_payload(self, *, stream: bool) -> dict[str, Any]:
        return {
            "model": self.model,
            "stream": stream,
            "options": {"temperature": TEMPERATURE, "num_predict": self.num_predict},
            "messages": [
                {"role": "system", "content": SYSTEM_INSTRUCTION},
                {"role": "user", "content": self.prompt},
            ],
            "format": "json",
        }


class GenerationClient(Protocol):
    """What the repair controller needs from an inference backend."""

    async def generate(self, request: GenerationRequest) -> str: ...

    async def generate_stream(
        self, request: GenerationRequest, on_delta: DeltaSink
    ) -> str: ...


class NdjsonDeltaDecoder:
    """Incremental decoder for Ollama's newline-delimited streaming body.

    Chunks may split a record anywhere; partial lines stay buffered until
    their newline arrives. Lines that are not valid JSON are skipped. Once a
    record carries ``done: true`` everything after it is ignored.
    """

    def __init__(self) -> None:
        self._buffer = ""
        self._parts: list[str] = []
        self.done = False

    @property
    def text(self) -> str:
        return "".join(self._parts)

    def feed(self, chunk: str) -> list[str]:
        """Consume ``chunk`` and return the deltas of every completed line."""
        if self.done:
            return []
        self._buffer += chunk
        deltas: list[str] = []
        while not self.done:
            newline = self._buffer.find("\n")
            if newline == -1:
                break
            line = self._buffer[:newline]
            self._buffer = self._buffer[newline + 1 :]
            delta = self._decode_line(line)
            if delta:
                deltas.append(delta)
        return deltas

    def flush(self) -> list[str]:
        """Decode a final record the server did not newline-terminate."""
        if self.done or not self._buffer.strip():
            return []
        line, self._buffer = self._buffer, ""
        delta = self._decode_line(line)
        return [delta] if delta else []

    def _decode_line(self, line: str) -> str:
        line = line.strip()
        if not line:
            return ""
        try:
            record = json.loads(line)
        except ValueError:
            return ""
        if not isinstance(record, dict):
            return ""

        message = record.get("message")
        delta = message.get("content") if isinstance(message, dict) else None
        if record.get("done"):
            self.done = True
        if isinstance(delta, str) and delta:
            self._parts.append(delta)
            return delta
        return ""


class OllamaClient:
    """httpx-backed ``GenerationClient``.

    A fresh ``AsyncClient`` is opened per call; the deadline is enforced with
    ``asyncio.timeout`` around the whole exchange rather than httpx's
    per-phase timeouts so a slow trickle of tokens is still cut off.
    """

    def __init__(
        self, url: str, *, transport: httpx.AsyncBaseTransport | None = None
    ) -> None:
        self._url = url
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=None)

    async def generate(self, request: GenerationRequest) -> str:
        started = time.perf_counter()
        with tracer.start_as_current_span("ollama.generate") as span:
            span.set_attribute("llm.model", request.model)
            span.set_attribute("llm.prompt_chars", len(request.prompt))
            try:
                async with asyncio.timeout(request.timeout_seconds):
                    async with self._client() as client:
                        response = await client.post(
                            self._url, json=request.to_payload(stream=False)
                        )
            except TimeoutError as exc:
                raise UpstreamTimeout(request.model, request.timeout_seconds) from exc
            except httpx.HTTPError as exc:
                raise UpstreamTransportError(f"Ollama request failed: {exc}") from exc

            if not response.is_success:
                raise UpstreamTransportError.from_response(
                    response.status_code, response.text
                )
            content = _message_content(response)
            if not content:
                raise UpstreamTransportError(
                    "Ollama returned no message.content", status=response.status_code
                )

        logger.info(
            "Ollama call model=%s stream=False prompt_chars=%d output_chars=%d "
            "elapsed_ms=%d",
            request.model,
            len(request.prompt),
            len(content),
            (time.perf_counter() - started) * 1000,
        )
        return content

    async def generate_stream(
        self, request: GenerationRequest, on_delta: DeltaSink
    ) -> str:
        started = time.perf_counter()
        decoder = NdjsonDeltaDecoder()
        with tracer.start_as_current_span("ollama.generate_stream") as span:
            span.set_attribute("llm.model", request.model)
            span.set_attribute("llm.prompt_chars", len(request.prompt))
            try:
                async with asyncio.timeout(request.timeout_seconds):
                    async with self._client() as client:
                        async with client.stream(
                            "POST", self._url, json=request.to_payload(stream=True)
                        ) as response:
                            if not response.is_success:
                                body = await response.aread()
                                raise UpstreamTransportError.from_response(
                                    response.status_code,
                                    body.decode("utf-8", errors="replace"),
                                )
                            async for chunk in response.aiter_text():
                                for delta in decoder.feed(chunk):
                                    on_delta(delta)
                                if decoder.done:
                                    break
                            for delta in decoder.flush():
                                on_delta(delta)
            except TimeoutError as exc:
                raise UpstreamTimeout(request.model, request.timeout_seconds) from exc
            except httpx.HTTPError as exc:
                raise UpstreamTransportError(f"Ollama request failed: {exc}") from exc

        logger.info(
            "Ollama call model=%s stream=True prompt_chars=%d output_chars=%d "
            "elapsed_ms=%d",
            request.model,
            len(request.prompt),
            len(decoder.text),
            (time.perf_counter() - started) * 1000,
        )
        return decoder.text


def _message_content(response: httpx.Response) -> str | None:
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    message = body.get("message")
    if not isinstance(message, dict):
        return None
    content = message.get("content")
    return content if isinstance(content, str) else None
