"""Datastore protocol for the planner.

Every repository method reports failure as a value (``StoreResult.error``)
rather than raising, so the planner can branch on a failed write and
degrade instead of unwinding the whole run.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Generic, Protocol, TypeVar
from uuid import UUID

from schemas.plans import PlanCreate, PlanRecord, PlanStepRow, StepContent
from schemas.tasks import NoteCreate, TaskCreate, WidgetCreate


T = TypeVar("T")


@dataclass(slots=True)
class StoreResult(Generic[T]):  # noqa: UP046
    """Outcome of one datastore operation."""

    data: T | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failed(cls, error: str) -> StoreResult[T]:
        return cls(data=None, error=error)


class PlanRepository(Protocol):
    async def insert_plan(self, values: PlanCreate) -> StoreResult[UUID]: ...

    async def get_plan(self, plan_id: UUID) -> StoreResult[PlanRecord]:
        """``data`` is None when no plan has that id."""
        ...

    async def insert_steps(self, rows: Sequence[PlanStepRow]) -> StoreResult[None]: ...

    async def update_step(
        self, plan_id: UUID, step_key: str, values: StepContent
    ) -> StoreResult[None]:
        """Fails when no row matches as well as on database errors."""
        ...

    async def delete_steps(self, plan_id: UUID) -> StoreResult[None]: ...

    async def get_step(
        self, plan_id: UUID, step_key: str
    ) -> StoreResult[PlanStepRow]: ...

    async def list_steps(self, plan_id: UUID) -> StoreResult[list[PlanStepRow]]:
        """Steps ordered by ``order_index``."""
        ...

    async def upsert_step_detail(
        self, plan_id: UUID, step_key: str, details_json: Any, model: str
    ) -> StoreResult[None]: ...

    async def list_task_ids(self, plan_id: UUID) -> StoreResult[list[UUID]]: ...

    async def insert_tasks(
        self, rows: Sequence[TaskCreate]
    ) -> StoreResult[list[UUID]]: ...

    async def insert_note(self, values: NoteCreate) -> StoreResult[UUID]: ...

    async def insert_widgets(
        self, rows: Sequence[WidgetCreate]
    ) -> StoreResult[list[UUID]]: ...
