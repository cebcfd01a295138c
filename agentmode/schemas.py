from __future__ import annotations
from enum import Enum
from pydantic import BaseModel, Field, model_validator
from typing import Any, Dict, List, Optional, Tuple

from .errors import ErrorKind


class ToolKind(str, Enum):
    SEARCH = "search"
    CODE_ASSISTANT = "code_assistant"
    VIDEO_SUMMARIZER = "video_summarizer"
    CHART_BUILDER = "chart_builder"
    IMPACT_ANALYZER = "impact_analyzer"
    TEST_SUPPORT = "test_support"
    IMAGE_INSIGHTS = "image_insights"
    NO_ACTION = "no_action"

    @property
    def heading(self) -> str:
        return TOOL_TITLES[self]

    @property
    def required_arity(self) -> int:
        return 2 if self is ToolKind.IMPACT_ANALYZER else 1


# Section headings used when rendering per-page answers
TOOL_TITLES: Dict[ToolKind, str] = {
    ToolKind.SEARCH: "Search Results",
    ToolKind.CODE_ASSISTANT: "Code Assistant",
    ToolKind.VIDEO_SUMMARIZER: "Video Analysis",
    ToolKind.CHART_BUILDER: "Chart Builder",
    ToolKind.IMPACT_ANALYZER: "Impact Analysis",
    ToolKind.TEST_SUPPORT: "Test Strategy",
    ToolKind.IMAGE_INSIGHTS: "Image Insights",
    ToolKind.NO_ACTION: "No Action",
}


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class RunPhase(str, Enum):
    IDLE = "idle"
    ANALYZING = "analyzing"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (RunPhase.COMPLETED, RunPhase.FAILED)


class Resource(BaseModel):
    workspace: str = Field(..., description="Workspace (space) key")
    page: str = Field(..., description="Page title inside the workspace")

    model_config = {"frozen": True}

    @property
    def key(self) -> str:
        return f"{self.workspace}/{self.page}"

    def __str__(self) -> str:
        return self.page


class RunRequest(BaseModel):
    """Immutable input of one run. Resources keep selection order, duplicates removed."""

    goal: str = ""
    resources: Tuple[Resource, ...] = ()

    model_config = {"frozen": True}

    @model_validator(mode="before")
    @classmethod
    def dedupe_resources(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        seen = set()
        unique = []
        for item in data.get("resources") or ():
            res = item if isinstance(item, Resource) else Resource.model_validate(item)
            if res in seen:
                continue
            seen.add(res)
            unique.append(res)
        return {**data, "resources": tuple(unique)}

    @classmethod
    def for_pages(cls, goal: str, workspace: Optional[str], pages: List[str]) -> "RunRequest":
        return cls(
            goal=goal,
            resources=[Resource(workspace=workspace or "", page=p) for p in pages],
        )


class ClassificationResult(BaseModel):
    reasoning: str
    tools: Tuple[ToolKind, ...] = Field(..., min_length=1)
    resources: Tuple[Resource, ...]
    intent: str = Field("search", description="Name of the trigger rule the goal matched")
    fallback_used: bool = False

    model_config = {"frozen": True}


class PlanStep(BaseModel):
    step_id: int = Field(..., description="Sequential step number, 1-based")
    resource: Resource
    tool: ToolKind
    instruction: str
    status: StepStatus = StepStatus.PENDING
    related_resource: Optional[Resource] = Field(None, description="Second page of an impact comparison")
    label: Optional[str] = Field(None, description="Instruction label when the goal was split")
    target_language: Optional[str] = None
    chart_type: Optional[str] = None

    model_config = {"frozen": True}

    def with_status(self, status: StepStatus) -> "PlanStep":
        return self.model_copy(update={"status": status})


class ExecutionOutcome(BaseModel):
    step: PlanStep
    text: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    error: Optional[str] = None

    model_config = {"frozen": True}

    @property
    def ok(self) -> bool:
        return self.error_kind is None

    @classmethod
    def succeeded(cls, step: PlanStep, text: str) -> "ExecutionOutcome":
        return cls(step=step.with_status(StepStatus.COMPLETED), text=text)

    @classmethod
    def failed(cls, step: PlanStep, kind: ErrorKind, message: str) -> "ExecutionOutcome":
        return cls(step=step.with_status(StepStatus.FAILED), error_kind=kind, error=message)


class ResourceAnswer(BaseModel):
    resource: Resource
    text: str

    model_config = {"frozen": True}


class AnswerError(BaseModel):
    resource: Resource
    tool: ToolKind
    kind: ErrorKind
    message: str

    model_config = {"frozen": True}


class AggregatedAnswer(BaseModel):
    answers: Tuple[ResourceAnswer, ...] = ()
    reasoning: str = ""
    tools_used: Tuple[ToolKind, ...] = ()
    errors: Tuple[AnswerError, ...] = ()

    model_config = {"frozen": True}

    @property
    def per_resource_text(self) -> Dict[Resource, str]:
        return {a.resource: a.text for a in self.answers}

    @property
    def selected_resources(self) -> List[Resource]:
        return [a.resource for a in self.answers]

    def text_for(self, resource: Resource) -> str:
        for answer in self.answers:
            if answer.resource == resource:
                return answer.text
        raise KeyError(resource.key)

    def errors_for(self, resource: Resource) -> List[AnswerError]:
        return [e for e in self.errors if e.resource == resource]


class RunState(BaseModel):
    phase: RunPhase = RunPhase.IDLE
    progress_percent: int = Field(0, ge=0, le=100)
    current_step_index: Optional[int] = None
    total_steps: int = 0
    generation: int = 0
    message: Optional[str] = None

    model_config = {"frozen": True}


# Identifiers the backend and model analyzers use besides the enum values
TOOL_ALIASES: Dict[str, ToolKind] = {
    **{kind.value: kind for kind in ToolKind},
    "code": ToolKind.CODE_ASSISTANT,
    "video": ToolKind.VIDEO_SUMMARIZER,
    "video_summary": ToolKind.VIDEO_SUMMARIZER,
    "chart": ToolKind.CHART_BUILDER,
    "impact": ToolKind.IMPACT_ANALYZER,
    "impact_analysis": ToolKind.IMPACT_ANALYZER,
    "test": ToolKind.TEST_SUPPORT,
    "test_strategy": ToolKind.TEST_SUPPORT,
    "image": ToolKind.IMAGE_INSIGHTS,
    "image_summary": ToolKind.IMAGE_INSIGHTS,
    "none": ToolKind.NO_ACTION,
}


def parse_tool_id(value: str) -> Optional[ToolKind]:
    key = str(value or "").strip().lower().replace("-", "_").replace(" ", "_")
    return TOOL_ALIASES.get(key)
