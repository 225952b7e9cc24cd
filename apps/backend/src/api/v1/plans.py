"""Plan generation endpoint.

One route serves every planner operation; the body's ``mode`` selects the
operation and whether the result is streamed as Server-Sent Events or
returned as a single JSON document.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Annotated, Any

from fastapi import APIRouter, Body
from fastapi.responses import JSONResponse, StreamingResponse

from core.error_handler import StructuredLogger
from dependencies.planner import (
    PlanRepositoryDep,
    PlannerConfigDep,
    StructuredCallerDep,
)
from schemas.plans import (
    ApplyPlanRequest,
    DeepDiveRequest,
    GeneratePlanRequest,
    PlanRequest,
    RegenerateStepRequest,
)
from schemas.streaming import SSE_HEADERS
from services.ai.exceptions import PlannerError
from services.ai.structured import StructuredCaller
from services.planner.apply_plan import PlanApplier
from services.planner.config import PlannerConfig
from services.planner.deep_dive import DeepDiveService
from services.planner.events import (
    EventRelay,
    EventSink,
    discard_event,
    internal_error_payload,
    run_streamed,
)
from services.planner.interfaces import PlanRepository
from services.planner.orchestrator import PlanOrchestrator
from services.planner.regenerate import StepRegenerator


logger = StructuredLogger(__name__)

router = APIRouter(tags=["plans"])

Operation = Callable[[EventSink], Awaitable[dict[str, Any]]]

# Streamed runs keep going after the client disconnects; hold a reference
# until each one finishes.
_background_runs: set[asyncio.Task[None]] = set()


def _operation_for(
    body: PlanRequest,
    config: PlannerConfig,
    caller: StructuredCaller,
    repository: PlanRepository,
) -> Operation:
    if isinstance(body, GeneratePlanRequest):
        orchestrator = PlanOrchestrator(config, caller, repository)
        return lambda emit: orchestrator.generate_plan(body, emit)
    if isinstance(body, RegenerateStepRequest):
        regenerator = StepRegenerator(config, caller, repository)
        return lambda emit: regenerator.regenerate_step(body, emit)
    if isinstance(body, DeepDiveRequest):
        deep_dive = DeepDiveService(config, caller, repository)
        return lambda emit: deep_dive.deep_dive(body, emit)
    if isinstance(body, ApplyPlanRequest):
        applier = PlanApplier(config, repository)
        return lambda emit: applier.apply_plan(body, emit)
    raise TypeError(f"unsupported planner request {type(body).__name__}")


def _stream(operation: Operation) -> StreamingResponse:
    relay = EventRelay()
    task = asyncio.create_task(run_streamed(relay, operation))
    _background_runs.add(task)
    task.add_done_callback(_background_runs.discard)
    return StreamingResponse(relay, headers=SSE_HEADERS)


async def _buffered(operation: Operation, build_marker: str) -> JSONResponse:
    try:
        payload = await operation(discard_event)
    except PlannerError as exc:
        logger.warning(
            "Planner request failed", error_code=exc.error_code, error=exc.message
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={**exc.to_payload(), "build_marker": build_marker},
        )
    except Exception as exc:  # noqa: BLE001
        logger.exception("Planner request crashed", exception_type=type(exc).__name__)
        return JSONResponse(
            status_code=500,
            content={**internal_error_payload(exc), "build_marker": build_marker},
        )
    return JSONResponse(content=payload)


@router.post(
    "/ai-generate-plan",
    summary="Generate, regenerate, deep-dive or apply an onboarding plan",
    response_model=None,
)
async def ai_generate_plan(
    body: Annotated[PlanRequest, Body()],
    config: PlannerConfigDep,
    caller: StructuredCallerDep,
    repository: PlanRepositoryDep,
) -> StreamingResponse | JSONResponse:
    """Run one planner operation.

    Streamed modes answer with ``text/event-stream``. Events are ``status``
    (``{"phase": ...}`` progress markers), ``token`` (model output deltas
    tagged with a ``scope``), and exactly one terminal ``done`` or
    ``error`` record. Buffered modes return the ``done`` payload as JSON,
    or ``{"error", "detail"?, "build_marker"}`` with the failure's status.
    """
    operation = _operation_for(body, config, caller, repository)
    if body.streamed:
        return _stream(operation)
    return await _buffered(operation, config.build_marker)
