from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, Any, List, Optional
from dataclasses import dataclass, asdict, field
from statistics import mean


@dataclass
class RunMetric:
    """Single run record"""
    timestamp: str
    goal: str
    intent: str  # classifier rule name: "code", "video_summary", "search", ...
    resource_count: int
    step_count: int
    failed_steps: int
    execution_time_seconds: float
    completed: bool
    errors: List[str] = field(default_factory=list)
    tools_used: List[str] = field(default_factory=list)
    fallback_used: bool = False


class MetricsTracker:
    """Track and analyze orchestration runs"""

    def __init__(self, storage_path: str = "data/metrics.jsonl"):
        self.storage_path = Path(storage_path)
        self.storage_path.parent.mkdir(parents=True, exist_ok=True)

    def log(self, entry: RunMetric) -> None:
        """Append metric entry to storage"""
        with open(self.storage_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(asdict(entry)) + "\n")

    def load_all(self) -> List[RunMetric]:
        """Load all metrics from storage"""
        if not self.storage_path.exists():
            return []

        entries = []
        with open(self.storage_path, "r", encoding="utf-8") as f:
            for line in f:
                if line.strip():
                    data = json.loads(line)
                    entries.append(RunMetric(**data))
        return entries

    def get_stats(self, last_n: Optional[int] = None) -> Dict[str, Any]:
        """Calculate statistics from metrics"""
        entries = self.load_all()
        if last_n:
            entries = entries[-last_n:]

        if not entries:
            return {"error": "No metrics available"}

        return {
            "total_runs": len(entries),
            "success_rate": sum(e.completed for e in entries) / len(entries) * 100,
            "avg_steps": mean(e.step_count for e in entries),
            "step_failure_rate": self._step_failure_rate(entries),
            "avg_execution_time": mean(e.execution_time_seconds for e in entries),
            "fallback_runs": sum(e.fallback_used for e in entries),
            "intent_breakdown": self._intent_breakdown(entries),
            "recent_trend": self._calculate_trend(entries, window=5),
        }

    def _step_failure_rate(self, entries: List[RunMetric]) -> float:
        steps = sum(e.step_count for e in entries)
        if not steps:
            return 0.0
        return sum(e.failed_steps for e in entries) / steps * 100

    def _intent_breakdown(self, entries: List[RunMetric]) -> Dict[str, int]:
        """Count runs by classified intent"""
        breakdown = {}
        for e in entries:
            breakdown[e.intent] = breakdown.get(e.intent, 0) + 1
        return breakdown

    def _calculate_trend(self, entries: List[RunMetric], window: int = 5) -> str:
        """Compare the share of failed steps in the last window against the one before"""
        if len(entries) < window * 2:
            return "insufficient_data"

        recent = self._step_failure_rate(entries[-window:])
        previous = self._step_failure_rate(entries[-window*2:-window])

        diff = previous - recent
        if diff > 10:
            return "improving"
        elif diff < -10:
            return "declining"
        else:
            return "stable"

    def print_summary(self, last_n: Optional[int] = None) -> None:
        """Print human-readable metrics summary"""
        stats = self.get_stats(last_n)

        if "error" in stats:
            print(f"\n📊 Metrics: {stats['error']}")
            return

        print("\n" + "="*60)
        print("📊 METRICS SUMMARY")
        print("="*60)
        print(f"Total Runs:          {stats['total_runs']}")
        print(f"Success Rate:        {stats['success_rate']:.1f}%")
        print(f"Avg Steps per Run:   {stats['avg_steps']:.1f}")
        print(f"Step Failure Rate:   {stats['step_failure_rate']:.1f}%")
        print(f"Avg Execution Time:  {stats['avg_execution_time']:.2f}s")
        print(f"Analyzer Fallbacks:  {stats['fallback_runs']}")
        print(f"Performance Trend:   {stats['recent_trend'].upper()}")
        print("\nIntent Breakdown:")
        for intent, count in stats['intent_breakdown'].items():
            print(f"  - {intent}: {count}")
        print("="*60 + "\n")
