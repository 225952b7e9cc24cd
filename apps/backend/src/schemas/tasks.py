"""Rows written when a plan is applied as tasks."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field, field_serializer

from services.ai.sanitizer import Priority


APPLY_SOURCE = "ai_plan_apply"


class TaskCreate(BaseModel):
    company_id: UUID | None = None
    title: str
    status: Literal["todo"] = "todo"
    due_at: datetime
    created_by: UUID
    owner_user_id: UUID
    details: str
    success_criteria: str
    priority: Priority
    estimated_minutes: int
    plan_id: UUID
    step_key: str
    project_key: str
    labels: list[str] = Field(default_factory=list)

    @field_serializer("due_at")
    def _serialize_due_at(self, value: datetime) -> str:
        return value.strftime("%Y-%m-%dT%H:%M:%S.000Z")


class NoteCreate(BaseModel):
    title: str
    body: str
    owner_user_id: UUID
    company_id: UUID | None = None
    source: str = APPLY_SOURCE
    plan_id: UUID | None = None


class WidgetCreate(BaseModel):
    title: str
    kind: Literal["tasks_due_soon", "plan_progress"]
    config: dict[str, Any] = Field(default_factory=dict)
    owner_user_id: UUID
    company_id: UUID | None = None
    source: str = APPLY_SOURCE
