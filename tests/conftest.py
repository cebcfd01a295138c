import pytest

from agentmode.classifier import GoalClassifier
from agentmode.executor import PlanExecutor
from agentmode.metrics import MetricsTracker
from agentmode.workflow import RunController
from tests.fakes import FakeToolInvoker, make_resources


@pytest.fixture
def pages():
    return make_resources("Release Notes", "API Guide", "Runbook")


@pytest.fixture
def controller_factory(tmp_path):
    def _factory(invoker=None, analyzer=None, *, allow_fallback=True, max_parallel=4, with_metrics=False, **kwargs):
        invoker = invoker or FakeToolInvoker()
        metrics = MetricsTracker(str(tmp_path / "metrics.jsonl")) if with_metrics else None
        controller = RunController(
            GoalClassifier(analyzer=analyzer, allow_fallback=allow_fallback),
            PlanExecutor(invoker, max_parallel=max_parallel),
            metrics=metrics,
            **kwargs,
        )
        return controller, invoker

    return _factory
