"""
Standalone metrics viewer - run anytime to see stats
"""
from agentmode.config import load_settings
from agentmode.metrics import MetricsTracker
import sys


def main():
    settings = load_settings()
    tracker = MetricsTracker(settings.metrics_path or "data/metrics.jsonl")

    # Check for arguments
    last_n = None
    if len(sys.argv) > 1:
        try:
            last_n = int(sys.argv[1])
        except ValueError:
            print("Usage: python scripts/view_metrics.py [last_n_runs]")
            return

    # Print summary
    tracker.print_summary(last_n)

    # Show recent runs
    entries = tracker.load_all()
    if last_n:
        entries = entries[-last_n:]

    if entries:
        print("\n📝 RECENT RUNS:")
        print("-" * 100)
        for entry in entries[-10:]:  # Show last 10
            status = "✅" if entry.completed else "❌"
            print(
                f"{status} {entry.timestamp[:19]} | "
                f"Steps: {entry.step_count - entry.failed_steps}/{entry.step_count} ok | "
                f"Time: {entry.execution_time_seconds:.1f}s | "
                f"Intent: {entry.intent} | "
                f"Goal: {entry.goal[:50]}"
            )
        print("-" * 100 + "\n")


if __name__ == "__main__":
    main()
