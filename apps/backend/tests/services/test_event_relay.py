import asyncio

import pytest

from conftest import parse_sse
from schemas.streaming import StreamEvent
from services.ai.exceptions import PlanNotFound
from services.planner.events import (
    EventRelay,
    StreamClosedError,
    run_streamed,
    token_forwarder,
)


async def _drain(relay: EventRelay) -> str:
    return "".join([chunk async for chunk in relay])


def test_stream_event_renders_single_data_line():
    text = StreamEvent(event="token", data={"delta": "a\nb"}).to_sse()
    assert text == 'event: token\ndata: {"delta":"a\\nb"}\n\n'


def test_stream_event_rejects_unknown_names():
    with pytest.raises(ValueError):
        StreamEvent(event="progress", data={})


def test_token_forwarder_drops_blank_deltas():
    seen = []
    forward = token_forwarder(
        lambda e, d: seen.append((e, d)), scope="step", step_key="step_1"
    )
    for delta in ("{", "  ", "\n", '"a"'):
        forward(delta)
    assert seen == [
        ("token", {"scope": "step", "step_key": "step_1", "delta": "{"}),
        ("token", {"scope": "step", "step_key": "step_1", "delta": '"a"'}),
    ]


@pytest.mark.asyncio
async def test_relay_preserves_order_and_closes_once():
    relay = EventRelay()
    relay.emit("status", {"phase": "start"})
    relay.emit("done", {"ok": True})
    relay.close()
    relay.close()

    events = parse_sse(await _drain(relay))
    assert events == [("status", {"phase": "start"}), ("done", {"ok": True})]
    with pytest.raises(StreamClosedError):
        relay.emit("status", {})


@pytest.mark.asyncio
async def test_run_streamed_success_ends_with_done():
    relay = EventRelay()

    async def producer(emit):
        emit("status", {"phase": "start"})
        await asyncio.sleep(0)
        return {"plan_id": "p1"}

    await run_streamed(relay, producer)
    events = parse_sse(await _drain(relay))
    assert events[-1] == ("done", {"plan_id": "p1"})
    assert relay.closed


@pytest.mark.asyncio
async def test_run_streamed_planner_error_becomes_error_event():
    relay = EventRelay()

    async def producer(emit):
        emit("status", {"phase": "start"})
        raise PlanNotFound(detail="missing")

    await run_streamed(relay, producer)
    events = parse_sse(await _drain(relay))
    assert events == [
        ("status", {"phase": "start"}),
        ("error", {"error": "Plan not found", "detail": "missing"}),
    ]


@pytest.mark.asyncio
async def test_run_streamed_unexpected_error_is_internal():
    relay = EventRelay()

    async def producer(emit):
        raise KeyError("boom")

    await run_streamed(relay, producer)
    events = parse_sse(await _drain(relay))
    assert len(events) == 1
    name, data = events[0]
    assert name == "error"
    assert data["error"] == "Internal server error"
    assert "boom" in data["detail"]


@pytest.mark.asyncio
async def test_cancelled_run_ends_with_error_event():
    relay = EventRelay()
    started = asyncio.Event()

    async def producer(emit):
        emit("status", {"phase": "start"})
        started.set()
        await asyncio.sleep(3600)
        return {}

    task = asyncio.create_task(run_streamed(relay, producer))
    await started.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    events = parse_sse(await _drain(relay))
    assert events == [
        ("status", {"phase": "start"}),
        ("error", {"error": "Run cancelled"}),
    ]
    assert relay.closed

@pytest.mark.asyncio
async def test_consumer_sees_events_while_run_is_in_flight():
    relay = EventRelay()
    gate = asyncio.Event()

    async def producer(emit):
        emit("status", {"phase": "start"})
        await gate.wait()
        return {}

    task = asyncio.create_task(run_streamed(relay, producer))
    iterator = relay.__aiter__()
    first = await asyncio.wait_for(iterator.__anext__(), timeout=1)
    assert first.startswith("event: status\n")
    gate.set()
    await task
    rest = "".join([chunk async for chunk in iterator])
    assert parse_sse(rest) == [("done", {})]
