"""Plan request bodies and plan/step records."""

from __future__ import annotations

from datetime import date
from typing import Annotated, Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from services.ai.sanitizer import Priority


StepStatus = Literal["not_started", "in_progress", "done"]

STEP_CONTENT_KEYS: tuple[str, ...] = (
    "details",
    "success_criteria",
    "priority",
    "estimated_minutes",
)


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


# ---------------------------------------------------------------------------
# Request bodies (one endpoint, discriminated on ``mode``)
# ---------------------------------------------------------------------------


class GeneratePlanRequest(BaseModel):
    """Generate a new plan. Required text fields are checked by the run itself
    so the streamed variant can report them as an ``error`` event."""

    mode: Literal["generate_plan", "generate_plan_stream"]
    company_name: str | None = None
    company_title: str | None = None
    short_description: str | None = None
    long_description: str | None = None
    person_name: str | None = None
    user_id: UUID | None = None

    _blank_user = field_validator("user_id", mode="before")(_blank_to_none)

    @property
    def streamed(self) -> bool:
        return self.mode == "generate_plan_stream"


class RegenerateStepRequest(BaseModel):
    mode: Literal["regenerate_step"]
    stream: bool = True
    plan_id: str | None = None
    step_key: str | None = None
    user_feedback: str | None = None
    constraints: dict[str, Any] | None = None

    @property
    def streamed(self) -> bool:
        return self.stream


class DeepDiveRequest(BaseModel):
    mode: Literal["deep_dive", "deep_dive_stream"]
    plan_id: str | None = None
    step_key: str | None = None

    @property
    def streamed(self) -> bool:
        return self.mode == "deep_dive_stream"


class ApplyPlanRequest(BaseModel):
    """Turn a stored plan into dated tasks."""

    mode: Literal["apply_plan"]
    stream: bool = True
    plan_id: str | None = None
    company_id: UUID | None = None
    owner_user_id: UUID | None = None
    start_date: date | None = None
    # Anything non-numeric falls back to the default cadence
    cadence_days: Any = None
    project_key: str | None = None
    labels: list[str] | None = None
    dry_run: bool = False

    _blank_ids = field_validator(
        "company_id", "owner_user_id", "start_date", mode="before"
    )(_blank_to_none)

    @property
    def streamed(self) -> bool:
        return self.stream


PlanRequest = Annotated[
    GeneratePlanRequest | RegenerateStepRequest | DeepDiveRequest | ApplyPlanRequest,
    Field(discriminator="mode"),
]


# ---------------------------------------------------------------------------
# Domain records
# ---------------------------------------------------------------------------


class OutlineStep(BaseModel):
    step_key: str
    title: str


class PlanOutline(BaseModel):
    step_count: int
    steps: list[OutlineStep]


class StepContent(BaseModel):
    """The content fields a model call is allowed to fill."""

    details: str
    success_criteria: str
    priority: Priority = "medium"
    estimated_minutes: int = Field(30, ge=10, le=90)


class PlanCreate(BaseModel):
    user_id: UUID
    person_name: str | None = None
    company_name: str
    company_title: str
    short_description: str
    long_description: str | None = None
    model: str


class PlanRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID | None = None
    person_name: str | None = None
    company_name: str | None = None
    company_title: str | None = None
    short_description: str | None = None
    long_description: str | None = None
    model: str | None = None


class PlanStepRow(BaseModel):
    """A ``plan_steps`` row.

    Empty ``details``/``success_criteria`` mark a placeholder.
    """

    model_config = ConfigDict(from_attributes=True)

    plan_id: UUID
    step_key: str
    order_index: int = Field(ge=1)
    title: str
    details: str = ""
    success_criteria: str = ""
    priority: Priority = "medium"
    estimated_minutes: int = 30
    status: StepStatus = "not_started"

    def content(self) -> StepContent:
        return StepContent(
            details=self.details,
            success_criteria=self.success_criteria,
            priority=self.priority,
            estimated_minutes=self.estimated_minutes,
        )
