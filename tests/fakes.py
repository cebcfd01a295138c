import asyncio
from typing import Dict, List, Optional, Tuple

from agentmode.errors import ClassificationUnavailable
from agentmode.goal_analysis import GoalAnalysis
from agentmode.schemas import PlanStep, Resource, ToolKind


def make_resources(*pages: str, workspace: str = "ENG") -> List[Resource]:
    return [Resource(workspace=workspace, page=p) for p in pages]


class FakeToolInvoker:
    """Scripted tool backend. Keys are (page, ToolKind)."""

    def __init__(
        self,
        responses: Optional[Dict[Tuple[str, ToolKind], str]] = None,
        failures: Optional[Dict[Tuple[str, ToolKind], Exception]] = None,
        delays: Optional[Dict[str, float]] = None,
        gate: Optional[asyncio.Event] = None,
    ) -> None:
        self.responses = responses or {}
        self.failures = failures or {}
        self.delays = delays or {}
        self.gate = gate
        self.calls: List[PlanStep] = []
        self.events: List[Tuple[str, int]] = []

    async def invoke(self, step: PlanStep) -> str:
        self.calls.append(step)
        self.events.append(("start", step.step_id))
        try:
            if self.gate is not None:
                await self.gate.wait()
            delay = self.delays.get(step.resource.page, 0.0)
            if delay:
                await asyncio.sleep(delay)
            key = (step.resource.page, step.tool)
            if key in self.failures:
                raise self.failures[key]
            return self.responses.get(key, f"{step.tool.value} output for {step.resource.page}")
        finally:
            self.events.append(("end", step.step_id))


class FakeGoalAnalyzer:
    def __init__(self, analysis: Optional[GoalAnalysis] = None, error: Optional[Exception] = None) -> None:
        self.analysis = analysis or GoalAnalysis(reasoning="fake", tools=["search"])
        self.error = error
        self.calls = 0

    async def analyze(self, goal, resources) -> GoalAnalysis:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.analysis


class UnreachableAnalyzer(FakeGoalAnalyzer):
    def __init__(self) -> None:
        super().__init__(error=ClassificationUnavailable("connection refused"))


class FakeChatModel:
    """Stands in for ChatOpenAI: ainvoke returns an object with .content."""

    class _Reply:
        def __init__(self, content: str) -> None:
            self.content = content

    def __init__(self, content: str = "", error: Optional[Exception] = None) -> None:
        self.content = content
        self.error = error
        self.prompts: List[str] = []

    async def ainvoke(self, prompt: str):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self._Reply(self.content)
