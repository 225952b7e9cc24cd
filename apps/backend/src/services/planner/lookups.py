"""Fetch helpers shared by the operations that act on an existing plan."""

from __future__ import annotations

from uuid import UUID

from schemas.plans import PlanRecord, PlanStepRow
from services.ai.exceptions import PlanNotFound, StepNotFound
from services.planner.interfaces import PlanRepository


def _parse_id(plan_id: str) -> UUID | None:
    try:
        return UUID(plan_id)
    except ValueError:
        return None


async def load_plan(repository: PlanRepository, plan_id: str) -> PlanRecord:
    parsed = _parse_id(plan_id)
    if parsed is None:
        raise PlanNotFound(detail=f"invalid plan id {plan_id!r}")
    result = await repository.get_plan(parsed)
    if not result.ok or result.data is None:
        raise PlanNotFound(detail=result.error)
    return result.data


async def load_step(
    repository: PlanRepository, plan_id: str, step_key: str
) -> PlanStepRow:
    parsed = _parse_id(plan_id)
    if parsed is None:
        raise StepNotFound(detail=f"invalid plan id {plan_id!r}")
    result = await repository.get_step(parsed, step_key)
    if not result.ok or result.data is None:
        raise StepNotFound(detail=result.error)
    return result.data
