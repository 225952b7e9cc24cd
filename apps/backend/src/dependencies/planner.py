"""FastAPI providers for the planner services.

Every provider is a plain function so tests can replace any layer through
``app.dependency_overrides``.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends

from core.config import Settings, get_settings
from crud.plans import SqlPlanRepository
from dependencies.db import get_session_factory
from services.ai.client import GenerationClient, OllamaClient
from services.ai.structured import StructuredCaller
from services.planner.config import PlannerConfig
from services.planner.interfaces import PlanRepository


def get_planner_config(
    settings: Annotated[Settings, Depends(get_settings)],
) -> PlannerConfig:
    return PlannerConfig.from_settings(settings)


def get_generation_client(
    config: Annotated[PlannerConfig, Depends(get_planner_config)],
) -> GenerationClient:
    return OllamaClient(config.ollama_url)


def get_structured_caller(
    config: Annotated[PlannerConfig, Depends(get_planner_config)],
    client: Annotated[GenerationClient, Depends(get_generation_client)],
) -> StructuredCaller:
    return StructuredCaller(
        client,
        repair_model=config.repair_model,
        repair_budget=config.step_repair_budget,
    )


def get_plan_repository() -> PlanRepository:
    # Sessions are opened per operation; a streamed run outlives the request
    return SqlPlanRepository(get_session_factory())


PlannerConfigDep = Annotated[PlannerConfig, Depends(get_planner_config)]
StructuredCallerDep = Annotated[StructuredCaller, Depends(get_structured_caller)]
PlanRepositoryDep = Annotated[PlanRepository, Depends(get_plan_repository)]
