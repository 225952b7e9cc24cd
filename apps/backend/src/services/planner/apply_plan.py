"""Apply a stored plan as dated tasks.

Task ``i`` (0-based, in step order) is due ``start_date + i * cadence_days``
at 09:00 UTC. Applying a plan that already has tasks is a no-op that
reports the existing ids. The audit note and default dashboard widgets are
best-effort; only the task insert itself can fail the operation.
"""

from __future__ import annotations

import logging
import math
from datetime import UTC, date, datetime, time, timedelta
from typing import Any
from uuid import UUID

from schemas.plans import ApplyPlanRequest, PlanRecord, PlanStepRow
from schemas.tasks import NoteCreate, TaskCreate, WidgetCreate
from services.ai.exceptions import (
    PersistenceError,
    PlanValidationError,
    StepNotFound,
)
from services.planner.best_effort import best_effort
from services.planner.config import PlannerConfig
from services.planner.events import EventSink, discard_event
from services.planner.interfaces import PlanRepository
from services.planner.lookups import load_plan


logger = logging.getLogger(__name__)

DEFAULT_CADENCE_DAYS = 2
MIN_CADENCE_DAYS = 1
MAX_CADENCE_DAYS = 14
DEFAULT_LABELS: tuple[str, ...] = ("ai-plan", "onboarding")
DUE_TIME = time(9, 0, tzinfo=UTC)


def normalize_cadence(value: Any) -> int:
    if value is None:
        return DEFAULT_CADENCE_DAYS
    try:
        number = float(value)
    except (TypeError, ValueError):
        return DEFAULT_CADENCE_DAYS
    if not math.isfinite(number):
        return DEFAULT_CADENCE_DAYS
    return max(MIN_CADENCE_DAYS, min(MAX_CADENCE_DAYS, math.trunc(number)))


def due_at(start: date, index: int, cadence_days: int) -> datetime:
    return datetime.combine(start + timedelta(days=index * cadence_days), DUE_TIME)


def build_tasks(
    *,
    plan_id: UUID,
    steps: list[PlanStepRow],
    start: date,
    cadence_days: int,
    owner_user_id: UUID,
    company_id: UUID | None,
    project_key: str,
    labels: list[str],
) -> list[TaskCreate]:
    return [
        TaskCreate(
            company_id=company_id,
            title=step.title.strip() or f"Complete {step.step_key}",
            due_at=due_at(start, index, cadence_days),
            created_by=owner_user_id,
            owner_user_id=owner_user_id,
            details=step.details,
            success_criteria=step.success_criteria,
            priority=step.priority,
            estimated_minutes=step.estimated_minutes,
            plan_id=plan_id,
            step_key=step.step_key,
            project_key=project_key,
            labels=labels,
        )
        for index, step in enumerate(steps)
    ]


def audit_note_body(
    plan: PlanRecord, task_count: int, project_key: str, labels: list[str]
) -> str:
    return (
        "Applied plan to tasks.\n"
        f"Plan: {plan.company_name or ''} ({plan.company_title or ''})\n"
        f"Tasks created: {task_count}\n"
        f"Project: {project_key}\n"
        f"Labels: {', '.join(labels)}"
    )


def default_widgets(
    *, plan_id: UUID, owner_user_id: UUID, company_id: UUID | None, project_key: str
) -> list[WidgetCreate]:
    return [
        WidgetCreate(
            title="Tasks due soon",
            kind="tasks_due_soon",
            config={"days": 7, "project_key": project_key},
            owner_user_id=owner_user_id,
            company_id=company_id,
        ),
        WidgetCreate(
            title="Plan progress",
            kind="plan_progress",
            config={"plan_id": str(plan_id)},
            owner_user_id=owner_user_id,
            company_id=company_id,
        ),
    ]


def _ids(values: list[UUID] | None) -> list[str]:
    return [str(v) for v in values or []]


class PlanApplier:
    def __init__(self, config: PlannerConfig, repository: PlanRepository) -> None:
        self.config = config
        self.repository = repository

    async def apply_plan(
        self, request: ApplyPlanRequest, emit: EventSink = discard_event
    ) -> dict[str, Any]:
        cfg = self.config
        emit("status", {"phase": "start", "build_marker": cfg.build_marker})

        plan_id_text = (request.plan_id or "").strip()
        if not plan_id_text:
            raise PlanValidationError("plan_id is required")

        cadence_days = normalize_cadence(request.cadence_days)
        start = request.start_date or datetime.now(UTC).date()

        emit("status", {"phase": "db_fetch_plan"})
        plan = await load_plan(self.repository, plan_id_text)

        emit("status", {"phase": "db_fetch_steps"})
        listed = await self.repository.list_steps(plan.id)
        if not listed.ok or not listed.data:
            raise StepNotFound("No plan steps found", detail=listed.error)
        steps = listed.data

        owner_user_id = request.owner_user_id or plan.user_id
        if owner_user_id is None:
            raise PlanValidationError(
                "owner_user_id is required (or plan.user_id must be set)"
            )

        company_id = request.company_id
        project_key = (request.project_key or "").strip() or f"plan:{plan.id}"
        labels = (
            [str(label) for label in request.labels]
            if request.labels is not None
            else list(DEFAULT_LABELS)
        )
        summary = {
            "plan_id": str(plan.id),
            "company_id": str(company_id) if company_id else None,
            "owner_user_id": str(owner_user_id),
            "project_key": project_key,
        }

        emit("status", {"phase": "db_check_existing_tasks"})
        existing = await self.repository.list_task_ids(plan.id)
        if not existing.ok:
            raise PersistenceError(
                "Failed to check existing tasks", detail=existing.error
            )
        if existing.data:
            emit("status", {"phase": "tasks_existing", "count": len(existing.data)})
            return {
                "mode": request.mode,
                **summary,
                "existing_task_ids": _ids(existing.data),
                "created_task_ids": [],
                "created_note_ids": [],
                "created_widget_ids": [],
                "build_marker": cfg.build_marker,
            }

        emit(
            "status",
            {
                "phase": "context_ready",
                **summary,
                "cadence_days": cadence_days,
                "start_date": start.isoformat(),
                "step_count": len(steps),
            },
        )
        tasks = build_tasks(
            plan_id=plan.id,
            steps=steps,
            start=start,
            cadence_days=cadence_days,
            owner_user_id=owner_user_id,
            company_id=company_id,
            project_key=project_key,
            labels=labels,
        )

        if request.dry_run:
            return {
                "mode": request.mode,
                **summary,
                "dry_run": True,
                "cadence_days": cadence_days,
                "start_date": start.isoformat(),
                "tasks_preview": [t.model_dump(mode="json") for t in tasks],
                "build_marker": cfg.build_marker,
            }

        emit("status", {"phase": "db_insert_tasks"})
        created = await self.repository.insert_tasks(tasks)
        if not created.ok:
            raise PersistenceError("Failed to create tasks", detail=created.error)
        created_task_ids = _ids(created.data)
        emit("status", {"phase": "tasks_created", "count": len(created_task_ids)})
        logger.info("Applied plan %s as %d tasks", plan.id, len(created_task_ids))

        emit("status", {"phase": "db_insert_note"})
        note_id = await best_effort(
            f"audit note for plan {plan.id}",
            self.repository.insert_note(
                NoteCreate(
                    title="Plan applied",
                    body=audit_note_body(
                        plan, len(created_task_ids), project_key, labels
                    ),
                    owner_user_id=owner_user_id,
                    company_id=company_id,
                    plan_id=plan.id,
                )
            ),
        )

        emit("status", {"phase": "db_insert_widgets"})
        widget_ids = await best_effort(
            f"dashboard widgets for plan {plan.id}",
            self.repository.insert_widgets(
                default_widgets(
                    plan_id=plan.id,
                    owner_user_id=owner_user_id,
                    company_id=company_id,
                    project_key=project_key,
                )
            ),
        )

        return {
            "mode": request.mode,
            **summary,
            "created_task_ids": created_task_ids,
            "created_note_ids": [str(note_id)] if note_id else [],
            "created_widget_ids": _ids(widget_ids),
            "build_marker": cfg.build_marker,
        }
