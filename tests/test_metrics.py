from agentmode.metrics import MetricsTracker, RunMetric


def _metric(intent="search", steps=2, failed=0, completed=True, fallback=False):
    return RunMetric(
        timestamp="2024-01-01T00:00:00",
        goal="g",
        intent=intent,
        resource_count=1,
        step_count=steps,
        failed_steps=failed,
        execution_time_seconds=1.5,
        completed=completed,
        fallback_used=fallback,
    )


def test_log_and_load_roundtrip(tmp_path):
    tracker = MetricsTracker(str(tmp_path / "nested" / "metrics.jsonl"))
    tracker.log(_metric(intent="code"))
    tracker.log(_metric(intent="video_summary", failed=1))
    entries = tracker.load_all()
    assert [e.intent for e in entries] == ["code", "video_summary"]
    assert entries[1].failed_steps == 1


def test_stats_without_entries(tmp_path):
    assert MetricsTracker(str(tmp_path / "m.jsonl")).get_stats() == {"error": "No metrics available"}


def test_stats(tmp_path):
    tracker = MetricsTracker(str(tmp_path / "m.jsonl"))
    tracker.log(_metric(intent="code", steps=2, failed=1))
    tracker.log(_metric(intent="code", steps=2, failed=0, fallback=True))
    tracker.log(_metric(intent="search", steps=0, completed=False))
    tracker.log(_metric(intent="search", steps=4, failed=0))

    stats = tracker.get_stats()
    assert stats["total_runs"] == 4
    assert stats["success_rate"] == 75.0
    assert stats["avg_steps"] == 2
    assert stats["step_failure_rate"] == 12.5
    assert stats["fallback_runs"] == 1
    assert stats["intent_breakdown"] == {"code": 2, "search": 2}
    assert stats["recent_trend"] == "insufficient_data"
    assert tracker.get_stats(last_n=1)["total_runs"] == 1


def test_trend_compares_step_failure_rate(tmp_path):
    tracker = MetricsTracker(str(tmp_path / "m.jsonl"))
    for _ in range(5):
        tracker.log(_metric(failed=2))
    for _ in range(5):
        tracker.log(_metric(failed=0))
    assert tracker.get_stats()["recent_trend"] == "improving"

    for _ in range(5):
        tracker.log(_metric(failed=1))
    assert tracker.get_stats()["recent_trend"] == "declining"
