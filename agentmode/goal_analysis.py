from __future__ import annotations

import logging
from typing import Any, List, Optional, Protocol, Sequence

import httpx
from langchain_openai import ChatOpenAI
from pydantic import AliasChoices, BaseModel, Field, ValidationError

from .config import AgentSettings
from .errors import AnalyzerConfigurationError, ClassificationUnavailable
from .schemas import Resource, ToolKind

logger = logging.getLogger(__name__)


class GoalAnalysis(BaseModel):
    reasoning: str = ""
    tools: List[str] = Field(default_factory=list, description="Tool identifiers in execution order")
    resources: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("resources", "pages", "page_titles"),
        description="Page titles the goal applies to",
    )


class GoalAnalyzer(Protocol):
    async def analyze(self, goal: str, resources: Sequence[Resource]) -> GoalAnalysis: ...


def _strip_fences(raw: str) -> str:
    raw = raw.strip()
    if raw.startswith("```"):
        raw = raw.strip("`").strip()
        if raw.lower().startswith("json"):
            raw = raw[4:].strip()
    return raw


class HttpGoalAnalyzer:
    """Delegates classification to the backend's goal analysis endpoint."""

    def __init__(self, base_url: str, timeout: float = 60, client: Optional[httpx.AsyncClient] = None):
        self.base_url = (base_url or "").rstrip("/")
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def analyze(self, goal: str, resources: Sequence[Resource]) -> GoalAnalysis:
        if not self.base_url:
            raise AnalyzerConfigurationError("Goal analyzer has no backend URL configured")
        payload = {
            "goal": goal,
            "space_key": resources[0].workspace if resources else None,
            "page_titles": [r.page for r in resources],
        }
        try:
            resp = await self.client.post(f"{self.base_url}/analyze-goal", json=payload)
            resp.raise_for_status()
            return GoalAnalysis.model_validate(resp.json())
        except httpx.HTTPStatusError as e:
            raise ClassificationUnavailable(f"Goal analysis returned HTTP {e.response.status_code}") from e
        except httpx.RequestError as e:
            raise ClassificationUnavailable(f"Goal analysis request failed: {e}") from e
        except (ValueError, ValidationError) as e:
            raise ClassificationUnavailable(f"Goal analysis returned a malformed response: {e}") from e

    async def close(self) -> None:
        if not self.client.is_closed:
            await self.client.aclose()


class LlmGoalAnalyzer:
    """Asks a chat model to pick tools for the goal and return strict JSON."""

    def __init__(self, model: str = "gpt-4o-mini", api_key: Optional[str] = None, llm: Optional[Any] = None):
        self.model = model
        self.api_key = api_key
        self._llm = llm

    def _get_llm(self) -> Any:
        if self._llm is None:
            if not self.api_key:
                raise AnalyzerConfigurationError("OPENAI_API_KEY is not set for the LLM goal analyzer")
            self._llm = ChatOpenAI(model=self.model, temperature=0, api_key=self.api_key)
        return self._llm

    def _prompt(self, goal: str, resources: Sequence[Resource]) -> str:
        tool_ids = [kind.value for kind in ToolKind if kind is not ToolKind.NO_ACTION]
        return (
            "You route a user's goal to page analysis tools.\n"
            "Return ONLY valid JSON that matches this schema exactly:\n"
            f"{GoalAnalysis.model_json_schema()}\n\n"
            f"Allowed tool identifiers: {', '.join(tool_ids)}\n"
            "Use 'impact_analyzer' only when at least two pages are selected.\n"
            "List in 'resources' only page titles taken from the selection below.\n\n"
            f"SELECTED PAGES:\n{[r.page for r in resources]}\n\n"
            f"GOAL:\n{goal}\n"
        )

    async def analyze(self, goal: str, resources: Sequence[Resource]) -> GoalAnalysis:
        llm = self._get_llm()
        try:
            reply = await llm.ainvoke(self._prompt(goal, resources))
        except Exception as e:
            raise ClassificationUnavailable(f"Goal analysis model call failed: {e}") from e
        raw = _strip_fences(str(getattr(reply, "content", reply)))
        try:
            return GoalAnalysis.model_validate_json(raw)
        except ValidationError as e:
            raise ClassificationUnavailable(f"Goal analysis model returned invalid JSON: {e}") from e


def build_goal_analyzer(settings: AgentSettings) -> Optional[GoalAnalyzer]:
    if settings.goal_analyzer == "http":
        return HttpGoalAnalyzer(settings.backend_url, timeout=settings.timeout_s)
    if settings.goal_analyzer == "llm":
        return LlmGoalAnalyzer(model=settings.openai_model, api_key=settings.openai_api_key)
    logger.debug("No external goal analyzer configured")
    return None
