from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime
from typing import Any, Callable, List, Optional

from .aggregator import aggregate
from .classifier import GoalClassifier
from .config import AgentSettings, load_settings
from .errors import GoalValidationError, RunSupersededError
from .executor import PlanExecutor
from .goal_analysis import build_goal_analyzer
from .mcp_tools import load_mcp_tools
from .metrics import MetricsTracker, RunMetric
from .planner import build_plan
from .schemas import (
    AggregatedAnswer,
    ClassificationResult,
    ExecutionOutcome,
    RunPhase,
    RunRequest,
    RunState,
)
from .tool_client import BackendToolClient, ToolInvoker
from .tool_runner import ToolRunner

logger = logging.getLogger(__name__)

StateListener = Callable[[RunState], None]


# ============================================================================
# RUN CONTROLLER
# ============================================================================

class RunController:
    """
    Owns the run state machine: Idle -> Analyzing -> Executing -> Completed, or
    Analyzing -> Failed. Tool failures never fail a run; they are embedded in the
    answer instead.

    A new valid submission supersedes the run in flight: its task is cancelled and
    the generation counter moves on, so nothing the old run produces is published.
    Listeners receive an immutable RunState snapshot after every transition.
    """

    def __init__(
        self,
        classifier: GoalClassifier,
        executor: PlanExecutor,
        *,
        split_instructions: bool = False,
        metrics: Optional[MetricsTracker] = None,
    ) -> None:
        self.classifier = classifier
        self.executor = executor
        self.split_instructions = split_instructions
        self.metrics = metrics
        self.last_answer: Optional[AggregatedAnswer] = None
        self._state = RunState()
        self._generation = 0
        self._task: Optional[asyncio.Task] = None
        self._listeners: List[StateListener] = []

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def generation(self) -> int:
        return self._generation

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    @staticmethod
    def validate(request: RunRequest) -> None:
        if not request.goal or not request.goal.strip():
            raise GoalValidationError("Please provide a goal.")
        if not request.resources:
            raise GoalValidationError("Please select at least one page.")
        if any(not r.workspace.strip() for r in request.resources):
            raise GoalValidationError("Please select a workspace.")

    async def submit(self, request: RunRequest) -> AggregatedAnswer:
        """
        Run one goal to completion and return its answer.

        Raises GoalValidationError before any state change, RunSupersededError when a
        newer submission replaced this run, and the classification error when the
        run ends in Failed.
        """
        self.validate(request)

        previous = self._task
        self._generation += 1
        generation = self._generation
        if previous is not None and not previous.done():
            logger.info("Superseding run %d with run %d", generation - 1, generation)
            previous.cancel()

        task = asyncio.create_task(self._run(request, generation))
        self._task = task
        try:
            return await task
        except asyncio.CancelledError:
            if generation != self._generation:
                raise RunSupersededError("This run was replaced by a newer goal.") from None
            raise

    async def cancel(self) -> None:
        """Abort the run in flight, if any, and return to Idle."""
        task = self._task
        self._generation += 1
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        self._publish(self._generation, phase=RunPhase.IDLE)

    async def _run(self, request: RunRequest, generation: int) -> AggregatedAnswer:
        started = time.time()
        self._publish(generation, phase=RunPhase.ANALYZING)

        try:
            classification = await self.classifier.classify(request.goal, request.resources)
        except Exception as e:
            message = getattr(e, "message", None) or str(e)
            logger.error("Goal classification failed: %s", message)
            self._publish(generation, phase=RunPhase.FAILED, message=message)
            self._record(request, None, [], started, completed=False, errors=[message])
            raise

        steps = build_plan(request.goal, classification, split_goal=self.split_instructions)
        logger.info(
            "Run %d: intent=%s tools=%s steps=%d",
            generation,
            classification.intent,
            [t.value for t in classification.tools],
            len(steps),
        )
        self._publish(generation, phase=RunPhase.EXECUTING, total_steps=len(steps))

        def _on_progress(percent: int, outcome: ExecutionOutcome) -> None:
            self._publish(
                generation,
                phase=RunPhase.EXECUTING,
                progress_percent=percent,
                current_step_index=outcome.step.step_id - 1,
                total_steps=len(steps),
            )

        outcomes = await self.executor.execute(steps, _on_progress)
        answer = aggregate(classification, outcomes)

        if generation == self._generation:
            self.last_answer = answer
        self._publish(
            generation,
            phase=RunPhase.COMPLETED,
            progress_percent=100,
            current_step_index=len(steps) - 1 if steps else None,
            total_steps=len(steps),
        )
        self._record(
            request,
            classification,
            outcomes,
            started,
            completed=True,
            errors=[f"{e.resource.page}: {e.message}" for e in answer.errors],
        )
        return answer

    def _publish(self, generation: int, **fields: Any) -> None:
        if generation != self._generation:
            return  # superseded run
        self._state = RunState(generation=generation, **fields)
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception:
                logger.exception("Run state listener failed")

    def _record(
        self,
        request: RunRequest,
        classification: Optional[ClassificationResult],
        outcomes: List[ExecutionOutcome],
        started: float,
        *,
        completed: bool,
        errors: List[str],
    ) -> None:
        if self.metrics is None:
            return
        entry = RunMetric(
            timestamp=datetime.now().isoformat(),
            goal=request.goal,
            intent=classification.intent if classification else "unclassified",
            resource_count=len(request.resources),
            step_count=len(outcomes),
            failed_steps=sum(1 for o in outcomes if not o.ok),
            execution_time_seconds=time.time() - started,
            completed=completed,
            errors=errors,
            tools_used=sorted({o.step.tool.value for o in outcomes if o.ok}),
            fallback_used=bool(classification and classification.fallback_used),
        )
        try:
            self.metrics.log(entry)
        except OSError:
            logger.exception("Could not write run metrics to %s", self.metrics.storage_path)


# ============================================================================
# WIRING
# ============================================================================

async def build_invoker(settings: AgentSettings) -> ToolInvoker:
    if settings.tool_backend == "mcp":
        tools, _ = await load_mcp_tools(settings.mcp_config)
        runner = ToolRunner(tools)
        logger.info("Loaded MCP tools: %s", runner.list_tools())
        return runner
    return BackendToolClient(settings.backend_url, timeout=settings.timeout_s)


def create_controller(settings: AgentSettings, invoker: ToolInvoker) -> RunController:
    classifier = GoalClassifier(
        analyzer=build_goal_analyzer(settings),
        allow_fallback=settings.classification_fallback,
    )
    return RunController(
        classifier,
        PlanExecutor(invoker, max_parallel=settings.max_parallel),
        split_instructions=settings.split_instructions,
        metrics=MetricsTracker(settings.metrics_path) if settings.metrics_path else None,
    )


async def close_clients(*clients: Any) -> None:
    for client in clients:
        close = getattr(client, "close", None)
        if close is not None:
            await close()


async def run_orchestration(
    goal: str,
    workspace: str,
    pages: List[str],
    settings: Optional[AgentSettings] = None,
) -> AggregatedAnswer:
    """One-shot helper: build the wiring from settings, run a single goal, close clients."""
    settings = settings or load_settings()
    invoker = await build_invoker(settings)
    controller = create_controller(settings, invoker)
    try:
        return await controller.submit(RunRequest.for_pages(goal, workspace, pages))
    finally:
        await close_clients(invoker, controller.classifier.analyzer)
