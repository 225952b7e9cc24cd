"""Shared test fixtures for pytest.

ENVIRONMENT is forced to ``test`` before any app module is imported so
settings load without an env file. Planner tests run against an in-memory
repository and a scripted Ollama served through ``httpx.MockTransport``.
"""

import json
import os
import uuid
from collections.abc import AsyncGenerator, Callable, Sequence
from typing import Any

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient


os.environ["ENVIRONMENT"] = "test"

from core.config import get_settings
from dependencies.planner import get_generation_client, get_plan_repository
from main import app
from schemas.plans import PlanCreate, PlanRecord, PlanStepRow, StepContent
from schemas.tasks import NoteCreate, TaskCreate, WidgetCreate
from services.ai.client import OllamaClient
from services.ai.structured import CallBudget, StructuredCaller
from services.planner.config import PlannerConfig
from services.planner.interfaces import StoreResult


OLLAMA_URL = "http://ollama.test/api/chat"


# ---------------------------------------------------------------------------
# Scripted Ollama
# ---------------------------------------------------------------------------


def ollama_reply(content: str) -> httpx.Response:
    """A non-streamed /api/chat response carrying ``content``."""
    return httpx.Response(200, json={"message": {"content": content}, "done": True})


def ollama_stream(*deltas: str) -> httpx.Response:
    """A streamed /api/chat NDJSON body, one record per delta plus ``done``."""
    lines = [json.dumps({"message": {"content": d}, "done": False}) for d in deltas]
    lines.append(json.dumps({"message": {"content": ""}, "done": True}))
    return httpx.Response(
        200,
        content=("\n".join(lines) + "\n").encode(),
        headers={"Content-Type": "application/x-ndjson"},
    )


Reply = httpx.Response | Callable[[httpx.Request], httpx.Response]


class ScriptedOllama:
    """Answers each /api/chat call with the next scripted reply.

    Replies may be responses or callables; every received payload is kept
    in ``calls`` for assertions.
    """

    def __init__(self, replies: Sequence[Reply] = ()) -> None:
        self.replies: list[Reply] = list(replies)
        self.calls: list[dict[str, Any]] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(json.loads(request.content))
        if not self.replies:
            raise AssertionError("unexpected Ollama call")
        reply = self.replies.pop(0)
        return reply(request) if callable(reply) else reply

    def client(self) -> OllamaClient:
        return OllamaClient(OLLAMA_URL, transport=httpx.MockTransport(self.handler))

    def prompts(self) -> list[str]:
        return [c["messages"][-1]["content"] for c in self.calls]

    def models(self) -> list[str]:
        return [c["model"] for c in self.calls]


def step_json(
    details: str = "Meet the team lead and review goals", **extra: Any
) -> str:
    body = {
        "details": details,
        "success_criteria": "Goals written down and agreed",
        "priority": "high",
        "estimated_minutes": 45,
        **extra,
    }
    return json.dumps(body)


def outline_json(titles: Sequence[str], step_count: int | None = None) -> str:
    return json.dumps(
        {
            "step_count": len(titles) if step_count is None else step_count,
            "steps": [
                {"step_key": f"step_{i}", "title": t}
                for i, t in enumerate(titles, start=1)
            ],
        }
    )


# ---------------------------------------------------------------------------
# In-memory repository
# ---------------------------------------------------------------------------


class FakePlanRepository:
    """``PlanRepository`` kept in dicts.

    Name an operation in ``fail`` to make every call to it return an error,
    or in ``raise_on`` to make it raise.
    """

    def __init__(self) -> None:
        self.plans: dict[uuid.UUID, PlanRecord] = {}
        self.steps: dict[uuid.UUID, dict[str, PlanStepRow]] = {}
        self.details: dict[tuple[uuid.UUID, str], tuple[Any, str]] = {}
        self.tasks: dict[uuid.UUID, TaskCreate] = {}
        self.notes: dict[uuid.UUID, NoteCreate] = {}
        self.widgets: dict[uuid.UUID, WidgetCreate] = {}
        self.fail: set[str] = set()
        self.raise_on: set[str] = set()
        self.log: list[str] = []

    def _check(self, operation: str) -> StoreResult[Any] | None:
        self.log.append(operation)
        if operation in self.raise_on:
            raise RuntimeError(f"{operation} exploded")
        if operation in self.fail:
            return StoreResult.failed(f"{operation} failed")
        return None

    async def insert_plan(self, values: PlanCreate) -> StoreResult[uuid.UUID]:
        if (failure := self._check("insert_plan")) is not None:
            return failure
        plan_id = uuid.uuid4()
        self.plans[plan_id] = PlanRecord(id=plan_id, **values.model_dump())
        return StoreResult(data=plan_id)

    async def get_plan(self, plan_id: uuid.UUID) -> StoreResult[PlanRecord]:
        if (failure := self._check("get_plan")) is not None:
            return failure
        return StoreResult(data=self.plans.get(plan_id))

    async def insert_steps(self, rows: Sequence[PlanStepRow]) -> StoreResult[None]:
        if (failure := self._check("insert_steps")) is not None:
            return failure
        for row in rows:
            existing = self.steps.setdefault(row.plan_id, {})
            if row.step_key in existing:
                return StoreResult.failed("duplicate step_key")
            existing[row.step_key] = row
        return StoreResult()

    async def update_step(
        self, plan_id: uuid.UUID, step_key: str, values: StepContent
    ) -> StoreResult[None]:
        if (failure := self._check("update_step")) is not None:
            return failure
        row = self.steps.get(plan_id, {}).get(step_key)
        if row is None:
            return StoreResult.failed("no such step")
        self.steps[plan_id][step_key] = row.model_copy(update=values.model_dump())
        return StoreResult()

    async def delete_steps(self, plan_id: uuid.UUID) -> StoreResult[None]:
        if (failure := self._check("delete_steps")) is not None:
            return failure
        self.steps.pop(plan_id, None)
        return StoreResult()

    async def get_step(
        self, plan_id: uuid.UUID, step_key: str
    ) -> StoreResult[PlanStepRow]:
        if (failure := self._check("get_step")) is not None:
            return failure
        return StoreResult(data=self.steps.get(plan_id, {}).get(step_key))

    async def list_steps(self, plan_id: uuid.UUID) -> StoreResult[list[PlanStepRow]]:
        if (failure := self._check("list_steps")) is not None:
            return failure
        rows = sorted(self.steps.get(plan_id, {}).values(), key=lambda r: r.order_index)
        return StoreResult(data=rows)

    async def upsert_step_detail(
        self, plan_id: uuid.UUID, step_key: str, details_json: Any, model: str
    ) -> StoreResult[None]:
        if (failure := self._check("upsert_step_detail")) is not None:
            return failure
        self.details[(plan_id, step_key)] = (details_json, model)
        return StoreResult()

    async def list_task_ids(self, plan_id: uuid.UUID) -> StoreResult[list[uuid.UUID]]:
        if (failure := self._check("list_task_ids")) is not None:
            return failure
        return StoreResult(
            data=[tid for tid, t in self.tasks.items() if t.plan_id == plan_id]
        )

    async def insert_tasks(
        self, rows: Sequence[TaskCreate]
    ) -> StoreResult[list[uuid.UUID]]:
        if (failure := self._check("insert_tasks")) is not None:
            return failure
        ids = []
        for row in rows:
            task_id = uuid.uuid4()
            self.tasks[task_id] = row
            ids.append(task_id)
        return StoreResult(data=ids)

    async def insert_note(self, values: NoteCreate) -> StoreResult[uuid.UUID]:
        if (failure := self._check("insert_note")) is not None:
            return failure
        note_id = uuid.uuid4()
        self.notes[note_id] = values
        return StoreResult(data=note_id)

    async def insert_widgets(
        self, rows: Sequence[WidgetCreate]
    ) -> StoreResult[list[uuid.UUID]]:
        if (failure := self._check("insert_widgets")) is not None:
            return failure
        ids = []
        for row in rows:
            widget_id = uuid.uuid4()
            self.widgets[widget_id] = row
            ids.append(widget_id)
        return StoreResult(data=ids)

    # Seeding helpers -------------------------------------------------------

    def seed_plan(self, **overrides: Any) -> PlanRecord:
        values = {
            "id": uuid.uuid4(),
            "user_id": uuid.uuid4(),
            "person_name": "Jordan",
            "company_name": "Acme",
            "company_title": "Backend Engineer",
            "short_description": "Payments platform team",
            "long_description": None,
            "model": "phi3:mini",
        }
        values.update(overrides)
        plan = PlanRecord(**values)
        self.plans[plan.id] = plan
        return plan

    def seed_steps(self, plan: PlanRecord, count: int = 3) -> list[PlanStepRow]:
        rows = [
            PlanStepRow(
                plan_id=plan.id,
                step_key=f"step_{i}",
                order_index=i,
                title=f"Onboarding task number {i}",
                details=f"Do the work for step {i}.",
                success_criteria=f"Step {i} is verified.",
                priority="medium",
                estimated_minutes=20 + i,
            )
            for i in range(1, count + 1)
        ]
        self.steps[plan.id] = {row.step_key: row for row in rows}
        return rows


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def planner_config() -> PlannerConfig:
    return PlannerConfig(
        ollama_url=OLLAMA_URL,
        fast_model="fast-model",
        smart_model="smart-model",
        repair_model="repair-model",
        min_steps=3,
        max_steps=10,
        dev_user_id="00000000-0000-0000-0000-000000000000",
        build_marker="test-build",
    )


@pytest.fixture
def repository() -> FakePlanRepository:
    return FakePlanRepository()


@pytest.fixture
def ollama() -> ScriptedOllama:
    return ScriptedOllama()


@pytest.fixture
def caller(ollama: ScriptedOllama, planner_config: PlannerConfig) -> StructuredCaller:
    return StructuredCaller(
        ollama.client(),
        repair_model=planner_config.repair_model,
        repair_budget=CallBudget(num_predict=260, timeout_seconds=5),
    )


@pytest.fixture
def recorded_events() -> tuple[list[tuple[str, Any]], Callable[[str, Any], None]]:
    """An event sink that records ``(event, data)`` pairs."""
    events: list[tuple[str, Any]] = []

    def emit(event: str, data: Any) -> None:
        events.append((event, data))

    return events, emit


def parse_sse(text: str) -> list[tuple[str, Any]]:
    """Split an SSE body into ``(event, data)`` pairs."""
    events = []
    for block in text.split("\n\n"):
        if not block.strip():
            continue
        name = None
        data = None
        for line in block.split("\n"):
            if line.startswith("event: "):
                name = line[len("event: ") :]
            elif line.startswith("data: "):
                data = json.loads(line[len("data: ") :])
        events.append((name, data))
    return events


@pytest_asyncio.fixture
async def async_client(
    repository: FakePlanRepository, ollama: ScriptedOllama
) -> AsyncGenerator[AsyncClient, None]:
    """Async client with the repository and Ollama client overridden."""
    get_settings.cache_clear()
    app.dependency_overrides[get_plan_repository] = lambda: repository
    app.dependency_overrides[get_generation_client] = ollama.client
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
    app.dependency_overrides.pop(get_plan_repository, None)
    app.dependency_overrides.pop(get_generation_client, None)
