"""Deep-dive playbook for one step, generated with the larger model."""

from __future__ import annotations

from typing import Any

from schemas.plans import DeepDiveRequest
from services.ai.client import GenerationRequest
from services.ai.exceptions import PlanValidationError
from services.ai.structured import StructuredCaller
from services.planner.best_effort import best_effort
from services.planner.config import PlannerConfig
from services.planner.events import EventSink, discard_event, token_forwarder
from services.planner.interfaces import PlanRepository
from services.planner.lookups import load_plan, load_step
from services.planner.prompts import deep_dive_prompt


class DeepDiveService:
    def __init__(
        self,
        config: PlannerConfig,
        caller: StructuredCaller,
        repository: PlanRepository,
    ) -> None:
        self.config = config
        self.caller = caller
        self.repository = repository

    async def deep_dive(
        self, request: DeepDiveRequest, emit: EventSink = discard_event
    ) -> dict[str, Any]:
        """The playbook is returned exactly as parsed; its shape is not enforced."""
        cfg = self.config
        plan_id = (request.plan_id or "").strip()
        step_key = (request.step_key or "").strip()

        emit("status", {"phase": "start", "build_marker": cfg.build_marker})
        if not plan_id or not step_key:
            raise PlanValidationError("plan_id and step_key are required")

        emit("status", {"phase": "db_fetch_plan"})
        plan = await load_plan(self.repository, plan_id)
        emit("status", {"phase": "db_fetch_step"})
        step = await load_step(self.repository, plan_id, step_key)

        emit(
            "status",
            {
                "phase": "context_ready",
                "plan_id": plan_id,
                "step_key": step_key,
                "step_title": step.title,
                "company_name": plan.company_name,
            },
        )
        emit("status", {"phase": "model_call_start", "model": cfg.smart_model})
        playbook = await self.caller.generate(
            GenerationRequest(
                model=cfg.smart_model,
                prompt=deep_dive_prompt(plan=plan, step=step),
                num_predict=cfg.deep_dive_budget.num_predict,
                timeout_seconds=cfg.deep_dive_budget.timeout_seconds,
            ),
            token_forwarder(emit, scope="deep_dive") if request.streamed else None,
            repair_budget=cfg.deep_dive_repair_budget,
        )
        emit("status", {"phase": "model_call_done"})

        emit("status", {"phase": "db_upsert_details"})
        await best_effort(
            f"store deep dive for {step_key}",
            self.repository.upsert_step_detail(
                plan.id, step_key, playbook, cfg.smart_model
            ),
        )

        return {
            "mode": request.mode,
            "plan_id": plan_id,
            "step_key": step_key,
            "model_used": cfg.smart_model,
            "deep_dive": playbook,
            "build_marker": cfg.build_marker,
        }
