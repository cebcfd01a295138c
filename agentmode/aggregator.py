from __future__ import annotations

from typing import Dict, List, Sequence

from .errors import ErrorKind
from .schemas import (
    AggregatedAnswer,
    AnswerError,
    ClassificationResult,
    ExecutionOutcome,
    Resource,
    ResourceAnswer,
    ToolKind,
)

SECTION_DELIMITER = "\n\n---\n\n"
NO_ACTION_TEXT = "No applicable action was found for this page."
ERRORS_HEADING = "Errors"


def _section(outcome: ExecutionOutcome) -> str:
    step = outcome.step
    title = step.tool.heading
    if step.tool is ToolKind.IMPACT_ANALYZER and step.related_resource is not None:
        title = f"{title}: {step.resource.page} vs {step.related_resource.page}"
    body = (outcome.text or "").strip()
    if step.label:
        body = f"Instruction: {step.label}\n{body}"
    return f"{title}\n{body}"


def _errors_section(failures: List[ExecutionOutcome]) -> str:
    lines = [f"- {o.step.tool.heading}: {o.error}" for o in failures]
    return ERRORS_HEADING + "\n" + "\n".join(lines)


def aggregate(classification: ClassificationResult, outcomes: Sequence[ExecutionOutcome]) -> AggregatedAnswer:
    """
    Merge step outcomes into one answer text per resource, in selection order.

    Successful outputs are joined in step order. Hard failures are listed in a
    trailing Errors section and in `errors`; soft failures are dropped. A resource
    with neither gets the no-action placeholder, unless it was only the second page
    of an impact comparison, in which case it points at that comparison.
    """
    ordered = sorted(outcomes, key=lambda o: o.step.step_id)
    by_resource: Dict[Resource, List[ExecutionOutcome]] = {r: [] for r in classification.resources}
    compared_with: Dict[Resource, Resource] = {}
    for outcome in ordered:
        by_resource.setdefault(outcome.step.resource, []).append(outcome)
        if outcome.step.related_resource is not None:
            compared_with.setdefault(outcome.step.related_resource, outcome.step.resource)

    answers: List[ResourceAnswer] = []
    errors: List[AnswerError] = []
    used = set()
    for resource, items in by_resource.items():
        successes = [o for o in items if o.ok]
        hard = [o for o in items if o.error_kind is ErrorKind.TOOL_HARD_FAILURE]
        used.update(o.step.tool for o in successes)

        parts = [_section(o) for o in successes]
        if hard:
            parts.append(_errors_section(hard))
            errors.extend(
                AnswerError(resource=resource, tool=o.step.tool, kind=ErrorKind.TOOL_HARD_FAILURE, message=o.error or "")
                for o in hard
            )
        if not parts:
            if not items and resource in compared_with:
                parts.append(
                    f"Compared with '{compared_with[resource].page}'; see the impact analysis listed under that page."
                )
            else:
                parts.append(NO_ACTION_TEXT)
        answers.append(ResourceAnswer(resource=resource, text=SECTION_DELIMITER.join(parts)))

    return AggregatedAnswer(
        answers=tuple(answers),
        reasoning=classification.reasoning,
        tools_used=tuple(kind for kind in ToolKind if kind in used),
        errors=tuple(errors),
    )
