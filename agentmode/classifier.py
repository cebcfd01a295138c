"""
Goal classification: map a free-text goal to the tools that should answer it.

Two tiers. An optional external analyzer (HTTP backend or chat model) is asked
first; when it is unavailable the local keyword rules below decide. The rules
are evaluated top to bottom and the first match wins, so their order is the
tie-break policy for goals that hit several triggers ("summarize the code" is
a Code goal, not a Summary goal).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from .errors import AnalyzerConfigurationError, ClassificationUnavailable
from .goal_analysis import GoalAnalysis, GoalAnalyzer
from .schemas import ClassificationResult, Resource, ToolKind, parse_tool_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TriggerRule:
    intent: str
    tool: ToolKind
    # Every group must contribute at least one keyword hit; keywords are plain substrings.
    keyword_groups: Tuple[Tuple[str, ...], ...] = ()
    min_resources: int = 1

    def hits(self, goal_lower: str) -> List[str]:
        found = []
        for group in self.keyword_groups:
            hit = next((kw for kw in group if kw in goal_lower), None)
            if hit is None:
                return []
            found.append(hit)
        return found

    def matches(self, goal_lower: str, resource_count: int) -> bool:
        if resource_count < self.min_resources:
            return False
        return bool(self.hits(goal_lower))


TRIGGER_RULES: Tuple[TriggerRule, ...] = (
    TriggerRule("video_summary", ToolKind.VIDEO_SUMMARIZER, (("video",), ("summar", "transcript", "recap"))),
    TriggerRule("code", ToolKind.CODE_ASSISTANT, (("code", "convert", "refactor"),)),
    TriggerRule("chart", ToolKind.CHART_BUILDER, (("chart", "graph", "plot"),)),
    TriggerRule("impact", ToolKind.IMPACT_ANALYZER, (("impact",),), min_resources=2),
    TriggerRule("image", ToolKind.IMAGE_INSIGHTS, (("image", "picture", "diagram", "screenshot"),)),
    TriggerRule(
        "test_strategy",
        ToolKind.TEST_SUPPORT,
        (("test strategy", "testing strategy", "test plan", "test case", "unit test"),),
    ),
    TriggerRule("summary", ToolKind.SEARCH, (("summar", "overview", "tl;dr"),)),
)

DEFAULT_RULE = TriggerRule("search", ToolKind.SEARCH)


def match_rule(goal: str, resource_count: int) -> TriggerRule:
    goal_lower = (goal or "").lower()
    for rule in TRIGGER_RULES:
        if rule.matches(goal_lower, resource_count):
            return rule
    return DEFAULT_RULE


def classify_locally(goal: str, resources: Sequence[Resource]) -> ClassificationResult:
    resources = tuple(resources)
    rule = match_rule(goal, len(resources))
    hits = rule.hits((goal or "").lower())
    if hits:
        reasoning = (
            f"The goal mentions {', '.join(repr(h) for h in hits)}, so {rule.tool.heading} "
            f"will be used on {len(resources)} selected page(s)."
        )
    else:
        reasoning = f"No specialised trigger matched; searching {len(resources)} selected page(s) with the full goal."
    return ClassificationResult(reasoning=reasoning, tools=(rule.tool,), resources=resources, intent=rule.intent)


class GoalClassifier:
    def __init__(self, analyzer: Optional[GoalAnalyzer] = None, allow_fallback: bool = True):
        self.analyzer = analyzer
        self.allow_fallback = allow_fallback

    async def classify(self, goal: str, resources: Sequence[Resource]) -> ClassificationResult:
        resources = tuple(resources)
        if self.analyzer is None:
            return classify_locally(goal, resources)
        try:
            analysis = await self.analyzer.analyze(goal, resources)
        except AnalyzerConfigurationError:
            raise
        except ClassificationUnavailable as e:
            if not self.allow_fallback:
                raise
            logger.warning("Goal analyzer unavailable, using keyword rules: %s", e.message)
            return classify_locally(goal, resources).model_copy(update={"fallback_used": True})
        return self._from_analysis(goal, resources, analysis)

    def _from_analysis(
        self, goal: str, resources: Tuple[Resource, ...], analysis: GoalAnalysis
    ) -> ClassificationResult:
        tools: List[ToolKind] = []
        for tool_id in analysis.tools:
            kind = parse_tool_id(tool_id)
            if kind is None:
                logger.info("Ignoring unknown tool identifier from goal analyzer: %r", tool_id)
                continue
            if kind not in tools:
                tools.append(kind)
        if len(tools) > 1 and ToolKind.NO_ACTION in tools:
            tools.remove(ToolKind.NO_ACTION)
        if not tools:
            tools = [ToolKind.NO_ACTION]

        # Only narrow, never widen: unknown titles are dropped.
        wanted = {str(r).strip() for r in analysis.resources}
        selected = tuple(r for r in resources if r.page in wanted or r.key in wanted)
        if not selected:
            selected = resources

        return ClassificationResult(
            reasoning=analysis.reasoning.strip() or "Analysis complete.",
            tools=tuple(tools),
            resources=selected,
            intent=match_rule(goal, len(selected)).intent,
        )
