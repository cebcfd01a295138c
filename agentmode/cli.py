from __future__ import annotations

import argparse
import asyncio
import logging
from datetime import datetime
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import ValidationError

from .config import load_settings
from .errors import GoalValidationError, RunSupersededError
from .metrics import MetricsTracker
from .schemas import AggregatedAnswer, RunPhase, RunRequest, RunState
from .workflow import build_invoker, close_clients, create_controller


def print_banner():
    """Display startup banner"""
    print("\n" + "=" * 60)
    print("AGENT MODE - Goal-driven page analysis")
    print("=" * 60)


def print_selection(workspace: Optional[str], pages: List[str]):
    print(f"\n📂 Workspace: {workspace or '(none)'}")
    print(f"📄 Pages:     {', '.join(pages) if pages else '(none)'}")


def print_help():
    """Display usage examples and commands"""
    print("\nExamples:")
    print("      - Summarize the content on the selected pages")
    print("      - Summarize the video on this page")
    print("      - Convert the code to Python")
    print("      - Build a bar chart from the page images")
    print("      - Analyze the impact of these changes   (needs two pages)")
    print("      - Suggest a test strategy for this code")
    print()
    print("Commands:")
    print("   pages A, B    - Replace the selected pages")
    print("   space KEY     - Switch workspace")
    print("   metrics       - View run metrics")
    print("   metrics 5     - View last 5 runs")
    print("   help          - Show this help message")
    print("   exit          - Quit the application")
    print("\n" + "-" * 60)


def print_progress(state: RunState):
    if state.phase is RunPhase.ANALYZING:
        print("🧠 Analyzing goal...")
    elif state.phase is RunPhase.EXECUTING and state.current_step_index is None:
        print(f"🔧 Executing {state.total_steps} step(s)")
    elif state.phase is RunPhase.EXECUTING:
        print(f"   step {state.current_step_index + 1}/{state.total_steps} done ({state.progress_percent}%)")
    elif state.phase is RunPhase.FAILED:
        print(f"❌ Run failed: {state.message}")


def print_answer(answer: AggregatedAnswer):
    for item in answer.answers:
        print(f"\n{'─'*60}")
        print(f"📄 {item.resource.page}")
        print(f"{'─'*60}")
        print(item.text)
    print(f"\n{'─'*60}")
    print("🧠 REASONING")
    print(answer.reasoning)
    print(f"\n🔧 Tools used: {', '.join(t.heading for t in answer.tools_used) or 'none'}")
    if answer.errors:
        print(f"⚠️  {len(answer.errors)} step(s) failed")
    print(f"{'─'*60}\n")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="agentmode", description="Run goals against workspace pages")
    parser.add_argument("--workspace", "-w", help="Workspace (space) key")
    parser.add_argument("--page", "-p", action="append", default=[], help="Page title; repeat for several pages")
    parser.add_argument("--goal", "-g", help="Run a single goal and exit")
    parser.add_argument("--verbose", "-v", action="store_true", help="Show debug logs")
    return parser.parse_args(argv)


def _split_pages(raw: str) -> List[str]:
    return [p.strip() for p in raw.split(",") if p.strip()]


async def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        settings = load_settings()
    except ValidationError as e:
        print(f"❌ Invalid configuration: {e.error_count()} bad setting(s)")
        for err in e.errors():
            print(f"   - {'.'.join(str(p) for p in err['loc']) or 'settings'}: {err['msg']}")
        return 1
    try:
        invoker = await build_invoker(settings)
    except Exception as e:
        print(f"❌ Failed to set up tools: {e}")
        return 1
    controller = create_controller(settings, invoker)
    controller.subscribe(print_progress)
    workspace: Optional[str] = args.workspace
    pages: List[str] = list(args.page)

    async def _run_goal(goal: str) -> bool:
        try:
            answer = await controller.submit(RunRequest.for_pages(goal, workspace, pages))
        except GoalValidationError as e:
            print(f"⚠️  {e.message}")
            return False
        except RunSupersededError:
            return False
        except Exception as e:
            print(f"\n❌ Error: {e}\n")
            return False
        print_answer(answer)
        return True

    try:
        if args.goal:
            return 0 if await _run_goal(args.goal) else 1

        print_banner()
        print_selection(workspace, pages)
        print_help()
        while True:
            try:
                prompt = f"\n💬 Goal [{datetime.now().strftime('%H:%M')}]: "
                user_input = (await asyncio.to_thread(input, prompt)).strip()
            except (KeyboardInterrupt, EOFError):
                print("\n\n👋 Goodbye!\n")
                break

            if not user_input:
                continue
            cmd = user_input.lower()
            if cmd == "exit":
                print("\n👋 Goodbye!\n")
                break
            elif cmd == "help":
                print_help()
            elif cmd == "pages" or cmd.startswith("pages "):
                pages = _split_pages(user_input[len("pages"):])
                print_selection(workspace, pages)
            elif cmd.startswith("space "):
                workspace = user_input.split(None, 1)[1].strip()
                pages = []
                print_selection(workspace, pages)
            elif cmd.startswith("metrics"):
                parts = user_input.split()
                last_n = int(parts[1]) if len(parts) > 1 and parts[1].isdigit() else None
                if settings.metrics_path:
                    MetricsTracker(settings.metrics_path).print_summary(last_n)
                else:
                    print("Metrics are disabled.")
            else:
                print(f"\n{'='*60}")
                print(f"🤖 Processing: {user_input}")
                print(f"{'='*60}")
                await _run_goal(user_input)
        return 0
    finally:
        await close_clients(invoker, controller.classifier.analyzer)


def run() -> None:
    raise SystemExit(asyncio.run(main()))


if __name__ == "__main__":
    run()
