"""
Interactive console for the agentic assessment.

Starts (or resumes) an assessment against the configured evaluator and
streams the evaluator's replies into the terminal.

Commands while chatting:
    /end   end the assessment now and show results
    /quit  leave without ending (the assessment can be resumed later)

Usage:
    python scripts/run_assessment.py --profile profile.json
    python scripts/run_assessment.py --profile profile.json --restart
    python scripts/run_assessment.py --resume-id 42
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

from agentic_assessment_client.agent_chat import AgentChat
from agentic_assessment_client.config import ClientSettings
from agentic_assessment_client.errors import AssessmentClientError
from agentic_assessment_client.evaluator_client import EvaluatorClient
from agentic_assessment_client.session_state import MessageRole, SessionStatus


class StreamPrinter:
    """Prints new message text as it arrives; holds no session state of its own."""

    def __init__(self):
        self.message_id: Optional[int] = None
        self.printed = 0

    def __call__(self, chat: AgentChat):
        latest = chat.store.latest()
        if latest is None or latest.role is not MessageRole.BOT:
            return
        if latest.id != self.message_id:
            self.message_id = latest.id
            self.printed = 0
            print("\n🤖 ", end="", flush=True)
        new_text = latest.content[self.printed:]
        if new_text:
            print(new_text, end="", flush=True)
            self.printed = len(latest.content)
        if not latest.is_streaming and self.printed == len(latest.content):
            print(flush=True)


def load_profile(path: Optional[str]) -> Any:
    if not path:
        return {}
    return json.loads(Path(path).read_text(encoding="utf-8"))


async def show_results(evaluator: EvaluatorClient, session_id) -> None:
    print("\n📊 Results")
    try:
        response = await evaluator.get_assessment_results(session_id)
    except AssessmentClientError as e:
        print(f"   Could not load results: {e.message}")
        return
    if response.results is None:
        print("   No results available yet.")
        return
    for result in response.results.fluency_results:
        print(f"   • {result.name}: {result.demonstrated_level} (target {result.target_level})")
    if response.results.overall_summary:
        print(f"\n   {response.results.overall_summary}")


async def restart_in_progress(evaluator: EvaluatorClient) -> None:
    """Reset an in-progress assessment so a fresh one starts."""
    status = await evaluator.get_assessment_status()
    if status and status.status == "in_progress" and status.session_id is not None:
        await evaluator.reset_assessment(status.session_id)
        print(f"🔄 Reset in-progress assessment {status.session_id}")


async def run(args: argparse.Namespace) -> int:
    settings = ClientSettings.from_env()
    profile = load_profile(args.profile)
    focus_skills = args.focus.split(",") if args.focus else None

    async with EvaluatorClient(settings) as evaluator:
        if args.restart:
            try:
                await restart_in_progress(evaluator)
            except AssessmentClientError as e:
                print(f"❌ Restart failed: {e.message}")
                return 1

        chat = AgentChat(evaluator, settings)
        printer = StreamPrinter()
        chat.subscribe(printer)

        if not await chat.initialize(profile, focus_skills, resume_id=args.resume_id):
            if chat.status is SessionStatus.COOLDOWN:
                print(f"⏳ Next assessment available after {chat.cooldown_ends_at.isoformat()}")
                return 0
            print(f"❌ {chat.error}")
            return 1

        if chat.is_resumed:
            print(f"↩️  Resumed assessment {chat.session_id}")
            for message in chat.messages:
                speaker = "🧑" if message.role is MessageRole.USER else "🤖"
                print(f"{speaker} {message.content}")

        while True:
            await chat.wait_until_idle()
            if chat.status is SessionStatus.ERRORED:
                print(f"\n❌ {chat.error} (run again to resume)")
                await chat.abandon()
                return 1
            if chat.is_complete:
                break

            try:
                line = await asyncio.to_thread(input, "\n🧑 ")
            except EOFError:
                line = "/quit"

            if line.strip() == "/quit":
                await chat.abandon()
                print("👋 Assessment saved; resume it later.")
                return 0
            if line.strip() == "/end":
                if not await chat.end_assessment():
                    print(f"⚠️ Could not end the assessment: {chat.error}")
                    continue
                break
            chat.send_message(line)

        print("\n✅ Assessment complete")
        await show_results(evaluator, chat.session_id)
        return 0


def main() -> int:
    load_dotenv()
    parser = argparse.ArgumentParser(description="Run the agentic assessment in the terminal")
    parser.add_argument("--profile", help="Path to a profile JSON file")
    parser.add_argument("--focus", help="Comma-separated skill codes to assess")
    parser.add_argument("--resume-id", help="Session id to resume")
    parser.add_argument("--restart", action="store_true", help="Reset an in-progress assessment first")
    args = parser.parse_args()

    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        print("\n🛑 Interrupted.")
        return 130


if __name__ == "__main__":
    sys.exit(main())
