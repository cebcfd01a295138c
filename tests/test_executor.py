import asyncio

import pytest

from agentmode.errors import ErrorKind, ToolHardFailure, ToolSoftFailure
from agentmode.executor import PlanExecutor
from agentmode.planner import build_plan
from agentmode.schemas import ClassificationResult, StepStatus, ToolKind
from tests.fakes import FakeToolInvoker, make_resources


def _plan(pages, tools=(ToolKind.SEARCH,), goal="find it"):
    resources = make_resources(*pages)
    classification = ClassificationResult(reasoning="r", tools=tuple(tools), resources=tuple(resources))
    return build_plan(goal, classification)


@pytest.mark.asyncio
async def test_outcomes_follow_plan_order_not_completion_order():
    steps = _plan(["A", "B", "C"])
    invoker = FakeToolInvoker(delays={"A": 0.05, "B": 0.02, "C": 0.0})
    outcomes = await PlanExecutor(invoker, max_parallel=3).execute(steps)

    assert [o.step.step_id for o in outcomes] == [1, 2, 3]
    finished = [sid for kind, sid in invoker.events if kind == "end"]
    assert finished == [3, 2, 1]
    assert all(o.ok and o.step.status is StepStatus.COMPLETED for o in outcomes)


@pytest.mark.asyncio
async def test_steps_of_one_resource_run_serially():
    steps = _plan(["A", "B"], tools=(ToolKind.SEARCH, ToolKind.CODE_ASSISTANT))
    invoker = FakeToolInvoker(delays={"A": 0.01, "B": 0.01})
    await PlanExecutor(invoker, max_parallel=2).execute(steps)

    a_events = [(kind, sid) for kind, sid in invoker.events if sid in (1, 2)]
    assert a_events == [("start", 1), ("end", 1), ("start", 2), ("end", 2)]


@pytest.mark.asyncio
async def test_sequential_when_max_parallel_is_one():
    steps = _plan(["A", "B", "C"])
    invoker = FakeToolInvoker(delays={"A": 0.02})
    await PlanExecutor(invoker, max_parallel=1).execute(steps)
    assert [s.step_id for s in invoker.calls] == [1, 2, 3]


@pytest.mark.asyncio
async def test_failures_are_isolated_and_classified():
    steps = _plan(["A", "B", "C"], tools=(ToolKind.SEARCH, ToolKind.VIDEO_SUMMARIZER))
    invoker = FakeToolInvoker(
        failures={
            ("B", ToolKind.SEARCH): ToolHardFailure("/search timed out"),
            ("A", ToolKind.VIDEO_SUMMARIZER): ToolSoftFailure("no video"),
            ("C", ToolKind.VIDEO_SUMMARIZER): RuntimeError("boom"),
        }
    )
    outcomes = await PlanExecutor(invoker).execute(steps)

    assert len(outcomes) == len(steps) == 6
    by_key = {(o.step.resource.page, o.step.tool): o for o in outcomes}
    assert by_key[("A", ToolKind.SEARCH)].ok
    assert by_key[("A", ToolKind.VIDEO_SUMMARIZER)].error_kind is ErrorKind.TOOL_SOFT_FAILURE
    assert by_key[("B", ToolKind.SEARCH)].error_kind is ErrorKind.TOOL_HARD_FAILURE
    assert by_key[("B", ToolKind.SEARCH)].error == "/search timed out"
    assert by_key[("B", ToolKind.VIDEO_SUMMARIZER)].ok
    assert by_key[("C", ToolKind.VIDEO_SUMMARIZER)].error == "RuntimeError: boom"
    assert by_key[("C", ToolKind.VIDEO_SUMMARIZER)].step.status is StepStatus.FAILED


@pytest.mark.asyncio
async def test_progress_is_floor_percentage_and_monotonic():
    steps = _plan(["A", "B", "C"])
    seen = []
    invoker = FakeToolInvoker(delays={"A": 0.03, "B": 0.01})
    await PlanExecutor(invoker).execute(steps, lambda pct, outcome: seen.append(pct))
    assert seen == [33, 66, 100]


@pytest.mark.asyncio
async def test_progress_callback_errors_do_not_stop_execution():
    steps = _plan(["A", "B"])

    def _explode(pct, outcome):
        raise ValueError("listener bug")

    outcomes = await PlanExecutor(FakeToolInvoker()).execute(steps, _explode)
    assert all(o.ok for o in outcomes)


@pytest.mark.asyncio
async def test_empty_plan():
    assert await PlanExecutor(FakeToolInvoker()).execute([]) == []


@pytest.mark.asyncio
async def test_cancellation_stops_in_flight_calls():
    steps = _plan(["A", "B"], tools=(ToolKind.SEARCH, ToolKind.CODE_ASSISTANT))
    invoker = FakeToolInvoker(gate=asyncio.Event())
    task = asyncio.create_task(PlanExecutor(invoker).execute(steps))
    await asyncio.sleep(0.01)
    assert len(invoker.calls) == 2
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    invoker.gate.set()
    await asyncio.sleep(0.01)
    assert len(invoker.calls) == 2
