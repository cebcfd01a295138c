from __future__ import annotations

import asyncio
import logging
from typing import Callable, Dict, List, Optional, Sequence

from .errors import ErrorKind, ToolHardFailure, ToolSoftFailure
from .schemas import ExecutionOutcome, PlanStep, Resource, StepStatus
from .tool_client import ToolInvoker

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, ExecutionOutcome], None]


class PlanExecutor:
    """
    Runs plan steps through a tool invoker.

    Steps of one resource run serially in emission order; different resources run
    concurrently, at most `max_parallel` at a time. Outcomes are returned in plan
    order whatever order they complete in, one per step. Tool failures become
    failed outcomes and never stop sibling steps.
    """

    def __init__(self, invoker: ToolInvoker, *, max_parallel: int = 4) -> None:
        self.invoker = invoker
        self.max_parallel = max(1, max_parallel)

    async def execute(
        self, steps: Sequence[PlanStep], on_progress: Optional[ProgressCallback] = None
    ) -> List[ExecutionOutcome]:
        steps = list(steps)
        total = len(steps)
        if total == 0:
            return []

        slots: List[Optional[ExecutionOutcome]] = [None] * total
        groups: Dict[Resource, List[int]] = {}
        for index, step in enumerate(steps):
            groups.setdefault(step.resource, []).append(index)

        semaphore = asyncio.Semaphore(self.max_parallel)
        completed = 0
        last_percent = 0

        def _report(outcome: ExecutionOutcome) -> None:
            nonlocal completed, last_percent
            completed += 1
            last_percent = max(last_percent, completed * 100 // total)
            if on_progress is None:
                return
            try:
                on_progress(last_percent, outcome)
            except Exception:
                logger.exception("Progress callback failed")

        async def _run_group(indices: List[int]) -> None:
            async with semaphore:
                for index in indices:
                    outcome = await self._run_step(steps[index])
                    slots[index] = outcome
                    _report(outcome)

        logger.debug("Executing %d step(s) across %d resource(s)", total, len(groups))
        tasks = [asyncio.create_task(_run_group(indices)) for indices in groups.values()]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        return [outcome for outcome in slots if outcome is not None]

    async def _run_step(self, step: PlanStep) -> ExecutionOutcome:
        running = step.with_status(StepStatus.RUNNING)
        try:
            text = await self.invoker.invoke(running)
        except ToolSoftFailure as e:
            logger.info("Step %d (%s on %s) found nothing: %s", step.step_id, step.tool.value, step.resource.page, e.message)
            return ExecutionOutcome.failed(running, ErrorKind.TOOL_SOFT_FAILURE, e.message)
        except ToolHardFailure as e:
            logger.warning("Step %d (%s on %s) failed: %s", step.step_id, step.tool.value, step.resource.page, e.message)
            return ExecutionOutcome.failed(running, ErrorKind.TOOL_HARD_FAILURE, e.message)
        except Exception as e:
            logger.warning("Step %d (%s on %s) raised %r", step.step_id, step.tool.value, step.resource.page, e)
            return ExecutionOutcome.failed(running, ErrorKind.TOOL_HARD_FAILURE, f"{type(e).__name__}: {e}")
        return ExecutionOutcome.succeeded(running, text)
