import uuid

import pytest

from conftest import ollama_reply, ollama_stream, step_json
from schemas.plans import RegenerateStepRequest
from services.ai.exceptions import (
    PersistenceError,
    PlanNotFound,
    PlanValidationError,
    StepContentError,
    StepNotFound,
)
from services.planner.regenerate import StepRegenerator


@pytest.fixture
def regenerator(planner_config, caller, repository) -> StepRegenerator:
    return StepRegenerator(planner_config, caller, repository)


@pytest.fixture
def seeded(repository):
    plan = repository.seed_plan()
    repository.seed_steps(plan)
    return plan


def _request(plan, step_key="step_2", **overrides) -> RegenerateStepRequest:
    values = {
        "mode": "regenerate_step",
        "stream": False,
        "plan_id": str(plan.id),
        "step_key": step_key,
    }
    values.update(overrides)
    return RegenerateStepRequest(**values)


@pytest.mark.asyncio
async def test_regenerate_updates_the_step(regenerator, ollama, repository, seeded):
    ollama.replies = [ollama_reply(step_json("Pair with the payments lead"))]

    result = await regenerator.regenerate_step(
        _request(
            seeded, user_feedback="Make it concrete", constraints={"max_minutes": 30}
        )
    )

    assert result["mode"] == "regenerate_step"
    assert result["step_key"] == "step_2"
    assert result["updated_step"]["details"] == "Pair with the payments lead."
    stored = repository.steps[seeded.id]["step_2"]
    assert stored.details == "Pair with the payments lead."
    assert stored.title == "Onboarding task number 2"

    prompt = ollama.prompts()[0]
    assert "Make it concrete" in prompt
    assert "max_minutes" in prompt
    assert "Acme" in prompt


@pytest.mark.asyncio
async def test_minutes_default_to_current_value(regenerator, ollama, seeded):
    ollama.replies = [
        ollama_reply('{"details": "Do it", "success_criteria": "Done"}')
    ]
    result = await regenerator.regenerate_step(_request(seeded))
    # seeded step_2 has 22 minutes
    assert result["updated_step"]["estimated_minutes"] == 22


@pytest.mark.asyncio
async def test_streamed_regenerate_tags_tokens(
    regenerator, ollama, seeded, recorded_events
):
    events, emit = recorded_events
    ollama.replies = [ollama_stream(step_json())]
    await regenerator.regenerate_step(_request(seeded, stream=True), emit)

    phases = [d["phase"] for n, d in events if n == "status"]
    assert phases == [
        "start",
        "db_fetch_step",
        "db_fetch_plan",
        "context_ready",
        "model_call_start",
        "model_call_done",
        "db_update_step",
    ]
    tokens = [d for n, d in events if n == "token"]
    assert tokens[0]["scope"] == "regenerate_step"
    assert tokens[0]["step_key"] == "step_2"


@pytest.mark.asyncio
async def test_invalid_content_is_rejected(regenerator, ollama, repository, seeded):
    ollama.replies = [ollama_reply('{"details": "   "}')]
    with pytest.raises(StepContentError, match="Model returned invalid step content"):
        await regenerator.regenerate_step(_request(seeded))
    assert "update_step" not in repository.log


@pytest.mark.asyncio
async def test_missing_ids_are_a_validation_error(regenerator, seeded):
    with pytest.raises(PlanValidationError, match="plan_id and step_key are required"):
        await regenerator.regenerate_step(_request(seeded, step_key="  "))


@pytest.mark.asyncio
async def test_unknown_step_and_plan(regenerator, repository, seeded):
    with pytest.raises(StepNotFound):
        await regenerator.regenerate_step(_request(seeded, step_key="step_99"))
    with pytest.raises(StepNotFound):
        await regenerator.regenerate_step(_request(seeded, plan_id="not-a-uuid"))

    orphan_id = uuid.uuid4()
    repository.steps[orphan_id] = dict(repository.steps[seeded.id])
    with pytest.raises(PlanNotFound):
        await regenerator.regenerate_step(_request(seeded, plan_id=str(orphan_id)))


@pytest.mark.asyncio
async def test_update_failure_is_terminal(regenerator, ollama, repository, seeded):
    repository.fail.add("update_step")
    ollama.replies = [ollama_reply(step_json())]
    with pytest.raises(PersistenceError, match="Failed to update step"):
        await regenerator.regenerate_step(_request(seeded))
