"""Plan generation workflow.

One run: create the plan row, generate an outline, insert placeholder
step rows, then generate each step's content one call at a time and fill
the placeholders in. If placeholder insertion or any in-place update
fails the run keeps going and, at the end, replaces whatever partial rows
exist with a single bulk insert of every generated step.

Streamed and buffered requests go through the same code; a buffered run
simply emits into ``discard_event``.
"""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from schemas.plans import (
    STEP_CONTENT_KEYS,
    GeneratePlanRequest,
    OutlineStep,
    PlanCreate,
    PlanOutline,
    PlanStepRow,
)
from services.ai.client import GenerationRequest
from services.ai.exceptions import PersistenceError, PlanValidationError
from services.ai.structured import StructuredCaller
from services.planner.best_effort import best_effort
from services.planner.config import PlannerConfig
from services.planner.events import EventSink, discard_event, token_forwarder
from services.planner.interfaces import PlanRepository
from services.planner.normalize import (
    normalize_outline,
    repair_titles,
    require_step_content,
)
from services.planner.prompts import outline_prompt, step_prompt


logger = logging.getLogger(__name__)

REQUIRED_FIELDS_MESSAGE = (
    "company_name, company_title, and short_description are required"
)


class PlanOrchestrator:
    def __init__(
        self,
        config: PlannerConfig,
        caller: StructuredCaller,
        repository: PlanRepository,
    ) -> None:
        self.config = config
        self.caller = caller
        self.repository = repository

    async def generate_plan(
        self, request: GeneratePlanRequest, emit: EventSink = discard_event
    ) -> dict[str, Any]:
        """Run the whole workflow and return the ``done`` payload."""
        cfg = self.config
        streamed = request.streamed
        emit("status", {"phase": "start", "build_marker": cfg.build_marker})

        company_name = (request.company_name or "").strip()
        company_title = (request.company_title or "").strip()
        short_description = (request.short_description or "").strip()
        if not (company_name and company_title and short_description):
            raise PlanValidationError(REQUIRED_FIELDS_MESSAGE)
        long_description = (request.long_description or "").strip() or None

        emit("status", {"phase": "db_create_plan"})
        plan_id = await self._create_plan(request, long_description)
        emit("status", {"phase": "plan_created", "plan_id": str(plan_id)})

        emit("status", {"phase": "outline_model_call"})
        raw_outline = await self.caller.generate(
            GenerationRequest(
                model=cfg.fast_model,
                prompt=outline_prompt(
                    company_name=company_name,
                    company_title=company_title,
                    short_description=short_description,
                    long_description=long_description,
                    min_steps=cfg.min_steps,
                    max_steps=cfg.max_steps,
                ),
                num_predict=cfg.step_budget.num_predict,
                timeout_seconds=cfg.step_budget.timeout_seconds,
            ),
            token_forwarder(emit, scope="outline") if streamed else None,
            repair_budget=cfg.step_repair_budget,
        )
        outline = repair_titles(
            normalize_outline(raw_outline, cfg.min_steps, cfg.max_steps)
        )
        logger.info("Plan %s outline has %d steps", plan_id, outline.step_count)
        emit(
            "status",
            {
                "phase": "outline_done",
                "step_count": outline.step_count,
                "steps": [s.model_dump() for s in outline.steps],
            },
        )

        incremental = await self._insert_placeholders(plan_id, outline)

        generated: list[PlanStepRow] = []
        for index, outline_step in enumerate(outline.steps, start=1):
            emit(
                "status",
                {
                    "phase": "step_start",
                    "step_key": outline_step.step_key,
                    "title": outline_step.title,
                    "index": index,
                    "total": outline.step_count,
                },
            )
            row = await self._generate_step(
                plan_id,
                index,
                outline_step,
                outline.step_count,
                request,
                emit if streamed else None,
            )
            generated.append(row)

            if incremental:
                updated = await self.repository.update_step(
                    plan_id, row.step_key, row.content()
                )
                if not updated.ok:
                    logger.warning(
                        "Step update failed for plan %s %s; deferring to bulk "
                        "insert: %s",
                        plan_id,
                        row.step_key,
                        updated.error,
                    )
                    incremental = False
            emit("status", {"phase": "step_done", "step_key": outline_step.step_key})

        if not incremental:
            emit("status", {"phase": "db_insert_steps_bulk"})
            await self._bulk_insert(plan_id, generated)

        return {
            "mode": request.mode,
            "plan_id": str(plan_id),
            "model_used": cfg.fast_model,
            "step_count": outline.step_count,
            "steps": [row.model_dump(mode="json") for row in generated],
            "build_marker": cfg.build_marker,
        }

    async def _create_plan(
        self, request: GeneratePlanRequest, long_description: str | None
    ) -> UUID:
        user_id = request.user_id or UUID(self.config.dev_user_id)
        created = await self.repository.insert_plan(
            PlanCreate(
                user_id=user_id,
                person_name=(request.person_name or "").strip() or None,
                company_name=(request.company_name or "").strip(),
                company_title=(request.company_title or "").strip(),
                short_description=(request.short_description or "").strip(),
                long_description=long_description,
                model=self.config.fast_model,
            )
        )
        if not created.ok or created.data is None:
            raise PersistenceError("Failed to insert plan", detail=created.error)
        return created.data

    async def _insert_placeholders(self, plan_id: UUID, outline: PlanOutline) -> bool:
        """Insert empty rows for every outline entry; False means bulk mode."""
        placeholders = [
            PlanStepRow(
                plan_id=plan_id,
                step_key=s.step_key,
                order_index=i,
                title=s.title,
            )
            for i, s in enumerate(outline.steps, start=1)
        ]
        inserted = await self.repository.insert_steps(placeholders)
        if not inserted.ok:
            logger.warning(
                "Placeholder insert failed for plan %s; using bulk insert: %s",
                plan_id,
                inserted.error,
            )
        return inserted.ok

    async def _generate_step(
        self,
        plan_id: UUID,
        index: int,
        outline_step: OutlineStep,
        step_count: int,
        request: GeneratePlanRequest,
        emit: EventSink | None,
    ) -> PlanStepRow:
        cfg = self.config
        raw = await self.caller.generate(
            GenerationRequest(
                model=cfg.fast_model,
                prompt=step_prompt(
                    company_name=request.company_name or "",
                    company_title=request.company_title or "",
                    short_description=request.short_description or "",
                    long_description=request.long_description,
                    step_key=outline_step.step_key,
                    title=outline_step.title,
                    step_count=step_count,
                ),
                num_predict=cfg.step_budget.num_predict,
                timeout_seconds=cfg.step_budget.timeout_seconds,
            ),
            token_forwarder(emit, scope="step", step_key=outline_step.step_key)
            if emit is not None
            else None,
            required_keys=STEP_CONTENT_KEYS,
            repair_budget=cfg.step_repair_budget,
        )
        content = require_step_content(raw, outline_step.step_key)
        # Identity fields always come from the outline, never from the model.
        return PlanStepRow(
            plan_id=plan_id,
            step_key=outline_step.step_key,
            order_index=index,
            title=outline_step.title,
            **content.model_dump(),
        )

    async def _bulk_insert(self, plan_id: UUID, rows: list[PlanStepRow]) -> None:
        await best_effort(
            f"delete partial steps for plan {plan_id}",
            self.repository.delete_steps(plan_id),
        )
        inserted = await self.repository.insert_steps(rows)
        if not inserted.ok:
            raise PersistenceError(
                "Failed to insert generated steps", detail=inserted.error
            )
        logger.info("Bulk inserted %d steps for plan %s", len(rows), plan_id)
