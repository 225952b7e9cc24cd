"""Regenerate the content of a single stored step."""

from __future__ import annotations

import logging
from typing import Any

from schemas.plans import STEP_CONTENT_KEYS, RegenerateStepRequest
from services.ai.client import GenerationRequest
from services.ai.exceptions import (
    PersistenceError,
    PlanValidationError,
    StepContentError,
)
from services.ai.structured import StructuredCaller
from services.planner.config import PlannerConfig
from services.planner.events import EventSink, discard_event, token_forwarder
from services.planner.interfaces import PlanRepository
from services.planner.lookups import load_plan, load_step
from services.planner.normalize import normalize_step_content
from services.planner.prompts import regenerate_prompt


logger = logging.getLogger(__name__)


class StepRegenerator:
    def __init__(
        self,
        config: PlannerConfig,
        caller: StructuredCaller,
        repository: PlanRepository,
    ) -> None:
        self.config = config
        self.caller = caller
        self.repository = repository

    async def regenerate_step(
        self, request: RegenerateStepRequest, emit: EventSink = discard_event
    ) -> dict[str, Any]:
        cfg = self.config
        plan_id = (request.plan_id or "").strip()
        step_key = (request.step_key or "").strip()

        emit("status", {"phase": "start", "build_marker": cfg.build_marker})
        if not plan_id or not step_key:
            raise PlanValidationError("plan_id and step_key are required")

        emit("status", {"phase": "db_fetch_step"})
        step = await load_step(self.repository, plan_id, step_key)
        emit("status", {"phase": "db_fetch_plan"})
        plan = await load_plan(self.repository, plan_id)

        emit(
            "status",
            {
                "phase": "context_ready",
                "plan_id": plan_id,
                "step_key": step_key,
                "step_title": step.title,
            },
        )
        emit("status", {"phase": "model_call_start", "model": cfg.fast_model})
        raw = await self.caller.generate(
            GenerationRequest(
                model=cfg.fast_model,
                prompt=regenerate_prompt(
                    plan=plan,
                    step=step,
                    user_feedback=request.user_feedback,
                    constraints=request.constraints,
                ),
                num_predict=cfg.step_budget.num_predict,
                timeout_seconds=cfg.step_budget.timeout_seconds,
            ),
            token_forwarder(emit, scope="regenerate_step", step_key=step_key)
            if request.streamed
            else None,
            required_keys=STEP_CONTENT_KEYS,
            repair_budget=cfg.step_repair_budget,
        )
        emit("status", {"phase": "model_call_done"})

        content = normalize_step_content(raw, default_minutes=step.estimated_minutes)
        if content is None:
            raise StepContentError("Model returned invalid step content", detail=raw)

        emit("status", {"phase": "db_update_step"})
        updated = await self.repository.update_step(plan.id, step_key, content)
        if not updated.ok:
            raise PersistenceError("Failed to update step", detail=updated.error)
        logger.info("Regenerated %s for plan %s", step_key, plan.id)

        return {
            "mode": request.mode,
            "plan_id": plan_id,
            "step_key": step_key,
            "updated_step": content.model_dump(),
            "build_marker": cfg.build_marker,
        }
