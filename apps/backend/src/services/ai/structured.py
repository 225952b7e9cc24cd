"""Structured output with a single repair round.

The primary call runs against the requested model (blocking or streamed).
If its text yields no JSON, or only a falsy scalar, one blocking repair
call is made against the repair model with the malformed text embedded in
the prompt.
If the primary call itself times out or fails at the transport level, the
second call re-issues the original prompt on the repair model instead.
Either way there are at most two upstream calls; when the second one does
not produce JSON either the run ends with ``ExtractionFailure``.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from services.ai.client import DeltaSink, GenerationClient, GenerationRequest
from services.ai.exceptions import (
    ExtractionFailure,
    UpstreamTimeout,
    UpstreamTransportError,
)
from services.ai.extraction import try_parse_json


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CallBudget:
    """Output-token and wall-clock allowance for one generation call."""

    num_predict: int
    timeout_seconds: float


def build_repair_prompt(raw: str, required_keys: Sequence[str] | None = None) -> str:
    if required_keys:
        keys_line = (
            "Fix the JSON so it parses and contains these keys: "
            f"{', '.join(required_keys)}."
        )
    else:
        keys_line = "Fix the JSON so it parses."
    return (
        "Return ONLY corrected MINIFIED JSON on one line.\n"
        "No extra keys. No markdown.\n\n"
        f"{keys_line}\n\n"
        "MALFORMED OUTPUT:\n"
        f"{raw}"
    )


def _usable(parsed: Any) -> bool:
    """Containers always count; a scalar only when truthy.

    ``0``, ``false`` and ``""`` are repaired like unparseable text.
    """
    return isinstance(parsed, dict | list) or bool(parsed)


class StructuredCaller:
    """Repair-on-failure wrapper around a ``GenerationClient``."""

    def __init__(
        self,
        client: GenerationClient,
        *,
        repair_model: str,
        repair_budget: CallBudget,
    ) -> None:
        self._client = client
        self._repair_model = repair_model
        self._repair_budget = repair_budget

    async def call(
        self,
        request: GenerationRequest,
        *,
        required_keys: Sequence[str] | None = None,
        repair_budget: CallBudget | None = None,
    ) -> Any:
        budget = repair_budget or self._repair_budget
        try:
            raw = await self._client.generate(request)
        except (UpstreamTimeout, UpstreamTransportError) as exc:
            return await self._retry_on_repair_model(request, exc, budget)
        return await self._parse_or_repair(raw, request, required_keys, budget)

    async def call_stream(
        self,
        request: GenerationRequest,
        on_delta: DeltaSink,
        *,
        required_keys: Sequence[str] | None = None,
        repair_budget: CallBudget | None = None,
    ) -> Any:
        budget = repair_budget or self._repair_budget
        try:
            raw = await self._client.generate_stream(request, on_delta)
        except (UpstreamTimeout, UpstreamTransportError) as exc:
            return await self._retry_on_repair_model(request, exc, budget)
        return await self._parse_or_repair(raw, request, required_keys, budget)

    async def generate(
        self,
        request: GenerationRequest,
        on_delta: DeltaSink | None = None,
        *,
        required_keys: Sequence[str] | None = None,
        repair_budget: CallBudget | None = None,
    ) -> Any:
        """Streamed primary call when a delta sink is given, blocking otherwise."""
        if on_delta is None:
            return await self.call(
                request, required_keys=required_keys, repair_budget=repair_budget
            )
        return await self.call_stream(
            request, on_delta, required_keys=required_keys, repair_budget=repair_budget
        )

    def _repair_request(self, prompt: str, budget: CallBudget) -> GenerationRequest:
        return GenerationRequest(
            model=self._repair_model,
            prompt=prompt,
            num_predict=budget.num_predict,
            timeout_seconds=budget.timeout_seconds,
        )

    async def _parse_or_repair(
        self,
        raw: str,
        request: GenerationRequest,
        required_keys: Sequence[str] | None,
        budget: CallBudget,
    ) -> Any:
        parsed = try_parse_json(raw)
        if _usable(parsed):
            return parsed

        logger.warning(
            "Unparseable output from %s (%d chars); repairing with %s",
            request.model,
            len(raw),
            self._repair_model,
        )
        repaired_raw = await self._client.generate(
            self._repair_request(build_repair_prompt(raw, required_keys), budget)
        )
        repaired = try_parse_json(repaired_raw)
        if _usable(repaired):
            return repaired

        logger.error(
            "Repair output from %s still unparseable (%d chars)",
            self._repair_model,
            len(repaired_raw),
        )
        raise ExtractionFailure(raw, repaired_raw)

    async def _retry_on_repair_model(
        self, request: GenerationRequest, cause: Exception, budget: CallBudget
    ) -> Any:
        logger.warning(
            "Primary call to %s failed (%s); retrying prompt on %s",
            request.model,
            cause,
            self._repair_model,
        )
        retried_raw = await self._client.generate(
            self._repair_request(request.prompt, budget)
        )
        parsed = try_parse_json(retried_raw)
        if _usable(parsed):
            return parsed
        raise ExtractionFailure("", retried_raw)
