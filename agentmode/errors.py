from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    CLASSIFICATION_UNAVAILABLE = "classification_unavailable"
    TOOL_SOFT_FAILURE = "tool_soft_failure"
    TOOL_HARD_FAILURE = "tool_hard_failure"


class AgentModeError(Exception):
    """Base class for orchestration errors. Each subclass carries its ErrorKind."""

    kind: Optional[ErrorKind] = None

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class GoalValidationError(AgentModeError):
    """Submission rejected before analysis: empty goal, no workspace or no pages."""

    kind = ErrorKind.VALIDATION


class ClassificationUnavailable(AgentModeError):
    """The external goal analyzer could not be reached or returned garbage."""

    kind = ErrorKind.CLASSIFICATION_UNAVAILABLE


class AnalyzerConfigurationError(ClassificationUnavailable):
    # Not recoverable by the local fallback.
    pass


class ToolSoftFailure(AgentModeError):
    """The tool found nothing applicable on the page (no video, no images, 404)."""

    kind = ErrorKind.TOOL_SOFT_FAILURE


class ToolHardFailure(AgentModeError):
    """Transport, service or response-format error from a tool backend."""

    kind = ErrorKind.TOOL_HARD_FAILURE


class RunSupersededError(AgentModeError):
    """Raised to the caller of a run that a newer submission replaced."""
