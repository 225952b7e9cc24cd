"""Explicit configuration threaded into every planner component."""

from __future__ import annotations

from dataclasses import dataclass

from core.config import Settings
from services.ai.structured import CallBudget


# Outline, per-step and regenerate calls
STEP_BUDGET = CallBudget(num_predict=260, timeout_seconds=35)
STEP_REPAIR_BUDGET = CallBudget(num_predict=260, timeout_seconds=20)

# Deep-dive playbooks are long and use the larger model
DEEP_DIVE_BUDGET = CallBudget(num_predict=1200, timeout_seconds=80)
DEEP_DIVE_REPAIR_BUDGET = CallBudget(num_predict=900, timeout_seconds=35)


@dataclass(frozen=True, slots=True)
class PlannerConfig:
    ollama_url: str
    fast_model: str
    smart_model: str
    repair_model: str
    min_steps: int
    max_steps: int
    dev_user_id: str
    build_marker: str
    step_budget: CallBudget = STEP_BUDGET
    step_repair_budget: CallBudget = STEP_REPAIR_BUDGET
    deep_dive_budget: CallBudget = DEEP_DIVE_BUDGET
    deep_dive_repair_budget: CallBudget = DEEP_DIVE_REPAIR_BUDGET

    def __post_init__(self) -> None:
        if not 1 <= self.min_steps <= self.max_steps:
            raise ValueError(
                f"invalid step bounds min_steps={self.min_steps} "
                f"max_steps={self.max_steps}"
            )

    @classmethod
    def from_settings(cls, settings: Settings) -> PlannerConfig:
        return cls(
            ollama_url=settings.OLLAMA_URL,
            fast_model=settings.FAST_MODEL,
            smart_model=settings.SMART_MODEL,
            repair_model=settings.REPAIR_MODEL,
            min_steps=settings.MIN_STEPS,
            max_steps=settings.MAX_STEPS,
            dev_user_id=settings.DEV_USER_ID,
            build_marker=settings.BUILD_MARKER,
        )
