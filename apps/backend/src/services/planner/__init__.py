"""Onboarding plan workflows."""

from .apply_plan import PlanApplier
from .config import PlannerConfig
from .deep_dive import DeepDiveService
from .orchestrator import PlanOrchestrator
from .regenerate import StepRegenerator


__all__ = [
    "DeepDiveService",
    "PlanApplier",
    "PlanOrchestrator",
    "PlannerConfig",
    "StepRegenerator",
]
