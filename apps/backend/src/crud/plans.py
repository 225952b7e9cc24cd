"""SQLAlchemy implementation of the planner datastore.

Each method runs in its own short session and commits on its own; there is
no transaction spanning a planner run. Database errors are caught, the
session is rolled back, and the error text is returned in ``StoreResult``.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from models.plans import Plan, PlanStep, PlanStepDetail
from models.tasks import DashboardWidget, Note, Task
from schemas.plans import PlanCreate, PlanRecord, PlanStepRow, StepContent
from schemas.tasks import NoteCreate, TaskCreate, WidgetCreate
from services.planner.interfaces import StoreResult


logger = logging.getLogger(__name__)


def _failure(operation: str, exc: SQLAlchemyError) -> StoreResult[Any]:
    logger.warning("Datastore %s failed: %s", operation, exc)
    return StoreResult.failed(str(exc.__cause__ or exc))


class SqlPlanRepository:
    """``PlanRepository`` over an async session factory."""

    def __init__(self, sessions: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = sessions

    async def insert_plan(self, values: PlanCreate) -> StoreResult[UUID]:
        async with self._sessions() as db:
            try:
                plan = Plan(**values.model_dump())
                db.add(plan)
                await db.commit()
                return StoreResult(data=plan.id)
            except SQLAlchemyError as exc:
                await db.rollback()
                return _failure("insert_plan", exc)

    async def get_plan(self, plan_id: UUID) -> StoreResult[PlanRecord]:
        async with self._sessions() as db:
            try:
                plan = await db.get(Plan, plan_id)
            except SQLAlchemyError as exc:
                return _failure("get_plan", exc)
            if plan is None:
                return StoreResult(data=None)
            return StoreResult(data=PlanRecord.model_validate(plan))

    async def insert_steps(self, rows: Sequence[PlanStepRow]) -> StoreResult[None]:
        async with self._sessions() as db:
            try:
                db.add_all(PlanStep(**row.model_dump()) for row in rows)
                await db.commit()
                return StoreResult()
            except SQLAlchemyError as exc:
                await db.rollback()
                return _failure("insert_steps", exc)

    async def update_step(
        self, plan_id: UUID, step_key: str, values: StepContent
    ) -> StoreResult[None]:
        async with self._sessions() as db:
            try:
                result = await db.execute(
                    update(PlanStep)
                    .where(PlanStep.plan_id == plan_id, PlanStep.step_key == step_key)
                    .values(**values.model_dump())
                )
                await db.commit()
            except SQLAlchemyError as exc:
                await db.rollback()
                return _failure("update_step", exc)
        if result.rowcount == 0:
            return StoreResult.failed(f"no step {step_key} for plan {plan_id}")
        return StoreResult()

    async def delete_steps(self, plan_id: UUID) -> StoreResult[None]:
        async with self._sessions() as db:
            try:
                await db.execute(delete(PlanStep).where(PlanStep.plan_id == plan_id))
                await db.commit()
                return StoreResult()
            except SQLAlchemyError as exc:
                await db.rollback()
                return _failure("delete_steps", exc)

    async def get_step(
        self, plan_id: UUID, step_key: str
    ) -> StoreResult[PlanStepRow]:
        async with self._sessions() as db:
            try:
                result = await db.execute(
                    select(PlanStep).where(
                        PlanStep.plan_id == plan_id, PlanStep.step_key == step_key
                    )
                )
                step = result.scalar_one_or_none()
            except SQLAlchemyError as exc:
                return _failure("get_step", exc)
            if step is None:
                return StoreResult(data=None)
            return StoreResult(data=PlanStepRow.model_validate(step))

    async def list_steps(self, plan_id: UUID) -> StoreResult[list[PlanStepRow]]:
        async with self._sessions() as db:
            try:
                result = await db.execute(
                    select(PlanStep)
                    .where(PlanStep.plan_id == plan_id)
                    .order_by(PlanStep.order_index)
                )
                steps = result.scalars().all()
            except SQLAlchemyError as exc:
                return _failure("list_steps", exc)
            return StoreResult(data=[PlanStepRow.model_validate(s) for s in steps])

    async def upsert_step_detail(
        self, plan_id: UUID, step_key: str, details_json: Any, model: str
    ) -> StoreResult[None]:
        async with self._sessions() as db:
            try:
                # merge() selects by primary key and updates or inserts
                await db.merge(
                    PlanStepDetail(
                        plan_id=plan_id,
                        step_key=step_key,
                        details_json=details_json,
                        model=model,
                    )
                )
                await db.commit()
                return StoreResult()
            except SQLAlchemyError as exc:
                await db.rollback()
                return _failure("upsert_step_detail", exc)

    async def list_task_ids(self, plan_id: UUID) -> StoreResult[list[UUID]]:
        async with self._sessions() as db:
            try:
                result = await db.execute(
                    select(Task.id).where(Task.plan_id == plan_id)
                )
                return StoreResult(data=list(result.scalars().all()))
            except SQLAlchemyError as exc:
                return _failure("list_task_ids", exc)

    async def insert_tasks(
        self, rows: Sequence[TaskCreate]
    ) -> StoreResult[list[UUID]]:
        async with self._sessions() as db:
            try:
                tasks = [
                    Task(**row.model_dump(exclude={"due_at"}), due_at=row.due_at)
                    for row in rows
                ]
                db.add_all(tasks)
                await db.commit()
                return StoreResult(data=[task.id for task in tasks])
            except SQLAlchemyError as exc:
                await db.rollback()
                return _failure("insert_tasks", exc)

    async def insert_note(self, values: NoteCreate) -> StoreResult[UUID]:
        async with self._sessions() as db:
            try:
                note = Note(**values.model_dump())
                db.add(note)
                await db.commit()
                return StoreResult(data=note.id)
            except SQLAlchemyError as exc:
                await db.rollback()
                return _failure("insert_note", exc)

    async def insert_widgets(
        self, rows: Sequence[WidgetCreate]
    ) -> StoreResult[list[UUID]]:
        async with self._sessions() as db:
            try:
                widgets = [DashboardWidget(**row.model_dump()) for row in rows]
                db.add_all(widgets)
                await db.commit()
                return StoreResult(data=[widget.id for widget in widgets])
            except SQLAlchemyError as exc:
                await db.rollback()
                return _failure("insert_widgets", exc)
