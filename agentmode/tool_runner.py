from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

from .errors import ToolHardFailure, ToolSoftFailure
from .schemas import PlanStep, ToolKind

logger = logging.getLogger(__name__)


# MCP tool name serving each tool kind
DEFAULT_TOOL_NAMES: Dict[ToolKind, str] = {
    ToolKind.SEARCH: "search_pages",
    ToolKind.CODE_ASSISTANT: "code_assistant",
    ToolKind.VIDEO_SUMMARIZER: "summarize_video",
    ToolKind.CHART_BUILDER: "build_chart",
    ToolKind.IMPACT_ANALYZER: "analyze_impact",
    ToolKind.TEST_SUPPORT: "test_strategy",
    ToolKind.IMAGE_INSIGHTS: "image_insights",
}


def step_arguments(step: PlanStep) -> Dict[str, Any]:
    args: Dict[str, Any] = {"space_key": step.resource.workspace}
    if step.tool is ToolKind.SEARCH:
        args.update({"page_titles": [step.resource.page], "query": step.instruction})
    elif step.tool is ToolKind.IMPACT_ANALYZER:
        args.update(
            {
                "old_page_title": step.resource.page,
                "new_page_title": step.related_resource.page if step.related_resource else step.resource.page,
                "question": step.instruction,
            }
        )
    else:
        args.update({"page_title": step.resource.page, "instruction": step.instruction})
    if step.target_language:
        args["target_language"] = step.target_language
    if step.chart_type:
        args["chart_type"] = step.chart_type
    return args


class ToolRunner:
    """Invokes LangChain tools (typically loaded from MCP servers) by name."""

    def __init__(self, tools: List[Any], tool_names: Optional[Dict[ToolKind, str]] = None):
        self.tools = tools
        self.tool_names = dict(tool_names or DEFAULT_TOOL_NAMES)
        self.by_name = {}
        for t in tools:
            name = getattr(t, "name", None)
            if name:
                self.by_name[name] = t

    def list_tools(self) -> List[str]:
        return sorted(self.by_name.keys())

    async def call(self, tool_name: str, args: Dict[str, Any]) -> Any:
        if tool_name not in self.by_name:
            raise KeyError(f"Tool '{tool_name}' not found. Available: {self.list_tools()}")

        tool = self.by_name[tool_name]

        # LangChain tools support ainvoke for async calls
        if hasattr(tool, "ainvoke"):
            return await tool.ainvoke(args)
        # Fallback (rare)
        if hasattr(tool, "invoke"):
            return tool.invoke(args)

        raise TypeError(f"Tool '{tool_name}' is not invokable")

    async def invoke(self, step: PlanStep) -> str:
        tool_name = self.tool_names.get(step.tool)
        if not tool_name:
            raise ToolHardFailure(f"No MCP tool mapped for '{step.tool.value}'")
        try:
            result = await self.call(tool_name, step_arguments(step))
        except KeyError as e:
            raise ToolHardFailure(str(e.args[0]) if e.args else str(e)) from e
        except Exception as e:
            raise ToolHardFailure(f"{tool_name} failed: {e}") from e

        text = _result_text(result).strip()
        if not text:
            raise ToolSoftFailure(f"{tool_name} returned no content for '{step.resource.page}'")
        return text


def _result_text(result: Any) -> str:
    if result is None:
        return ""
    if isinstance(result, str):
        return result
    # MCP content blocks come back as a list of {"type": "text", "text": ...}
    if isinstance(result, list):
        return "\n".join(_result_text(item) for item in result)
    if isinstance(result, dict) and "text" in result:
        return str(result["text"])
    return str(result)
