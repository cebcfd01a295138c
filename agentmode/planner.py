from __future__ import annotations

import re
from typing import Dict, List, Optional, Sequence

from .schemas import ClassificationResult, PlanStep, Resource, ToolKind

RAW_CODE_DIRECTIVE = "Return only the raw code, without explanations or markdown fences."
NO_META_DIRECTIVE = "Answer directly, without meta commentary about the request or how the answer was produced."

# Intents whose Search steps are summaries and get the no-meta directive.
SUMMARY_INTENTS = {"summary"}

TARGET_LANGUAGES: Dict[str, str] = {
    "python": "python",
    "javascript": "javascript",
    "typescript": "typescript",
    "java": "java",
    "c#": "csharp",
    "csharp": "csharp",
    "c++": "cpp",
    "cpp": "cpp",
    "go": "go",
    "golang": "go",
    "rust": "rust",
    "php": "php",
    "ruby": "ruby",
    "swift": "swift",
    "kotlin": "kotlin",
    "scala": "scala",
    "dart": "dart",
    "matlab": "matlab",
    "perl": "perl",
    "bash": "bash",
    "powershell": "powershell",
    "sql": "sql",
    "yaml": "yaml",
    "json": "json",
    "haskell": "haskell",
    "elixir": "elixir",
    "julia": "julia",
}

CHART_TYPES = ("bar", "line", "pie", "scatter", "area", "histogram")
DEFAULT_CHART_TYPE = "bar"

_LANGUAGE_RE = re.compile(
    r"\b(?:to|into|in)\s+("
    + "|".join(re.escape(name) for name in sorted(TARGET_LANGUAGES, key=len, reverse=True))
    + r")(?![\w+#])"
)
_INSTRUCTION_SPLIT_RE = re.compile(r"[\r\n]+|\.(?:\s+|$)")


def detect_target_language(goal: str) -> Optional[str]:
    """'convert this to Python' -> 'python'. None when no known language is named."""
    match = _LANGUAGE_RE.search((goal or "").lower())
    if not match:
        return None
    return TARGET_LANGUAGES[match.group(1)]


def detect_chart_type(goal: str) -> str:
    goal_lower = (goal or "").lower()
    for chart_type in CHART_TYPES:
        if re.search(rf"\b{chart_type}", goal_lower):
            return chart_type
    return DEFAULT_CHART_TYPE


def split_instructions(goal: str) -> List[str]:
    parts = [p.strip() for p in _INSTRUCTION_SPLIT_RE.split(goal or "")]
    return [p for p in parts if p]


def frame_instruction(goal: str, tool: ToolKind, intent: str) -> str:
    text = (goal or "").strip()
    if tool is ToolKind.CODE_ASSISTANT:
        return f"{text}\n\n{RAW_CODE_DIRECTIVE}"
    if tool is ToolKind.IMPACT_ANALYZER or (tool is ToolKind.SEARCH and intent in SUMMARY_INTENTS):
        return f"{text}\n\n{NO_META_DIRECTIVE}"
    return text


def build_plan(
    goal: str,
    classification: ClassificationResult,
    resources: Optional[Sequence[Resource]] = None,
    *,
    split_goal: bool = False,
) -> List[PlanStep]:
    """
    Expand a classification into ordered plan steps, grouped by resource in selection order.

    Impact analysis compares the first two resources and is emitted once, inside the
    first resource's group; with fewer than two resources it is skipped. NO_ACTION
    emits nothing.
    """
    selected = list(resources if resources is not None else classification.resources)
    steps: List[PlanStep] = []

    def _add(resource: Resource, tool: ToolKind, instruction: str, **extra) -> None:
        steps.append(
            PlanStep(step_id=len(steps) + 1, resource=resource, tool=tool, instruction=instruction, **extra)
        )

    for index, resource in enumerate(selected):
        for tool in classification.tools:
            if tool is ToolKind.NO_ACTION:
                continue
            if tool is ToolKind.IMPACT_ANALYZER:
                if index != 0 or len(selected) < tool.required_arity:
                    continue
                _add(
                    resource,
                    tool,
                    frame_instruction(goal, tool, classification.intent),
                    related_resource=selected[1],
                )
            elif tool is ToolKind.SEARCH and split_goal:
                instructions = split_instructions(goal)
                if len(instructions) <= 1:
                    _add(resource, tool, frame_instruction(goal, tool, classification.intent))
                    continue
                for instruction in instructions:
                    _add(resource, tool, frame_instruction(instruction, tool, classification.intent), label=instruction)
            elif tool is ToolKind.CODE_ASSISTANT:
                _add(
                    resource,
                    tool,
                    frame_instruction(goal, tool, classification.intent),
                    target_language=detect_target_language(goal),
                )
            elif tool is ToolKind.CHART_BUILDER:
                _add(resource, tool, frame_instruction(goal, tool, classification.intent), chart_type=detect_chart_type(goal))
            else:
                _add(resource, tool, frame_instruction(goal, tool, classification.intent))
    return steps
