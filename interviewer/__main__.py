#!/usr/bin/env python3
"""
Main entry point for the interviewer.
Allows running the package with: python -m interviewer --topic="Python"
"""
import asyncio
import sys
from dataclasses import replace

from .config import get_config, SHORT_TOTAL_QUESTIONS
from .interview.models import Mode
from .interview.orchestrator import InterviewOrchestrator


def _parse_number(arg: str, cast, usage: str):
    try:
        return cast(arg.split("=", 1)[1])
    except (ValueError, IndexError):
        print(f"❌ Invalid value in {arg}. Use {usage}")
        sys.exit(1)


def main():
    """Command-line interface for the interview orchestrator."""

    # Load configuration from environment
    try:
        config = get_config()
    except ValueError as e:
        print(f"❌ Configuration Error: {e}")
        sys.exit(1)

    # Mode with explicit flags taking precedence
    mode = Mode.TEXT
    if "--voice" in sys.argv or "--speech" in sys.argv:
        mode = Mode.VOICE
    if "--text" in sys.argv:
        mode = Mode.TEXT

    topic = None
    for arg in sys.argv[1:]:
        if arg.startswith("--topic="):
            topic = arg.split("=", 1)[1].strip()
        elif arg.startswith("--questions="):
            total = _parse_number(arg, int, "--questions=N")
            if total < 1:
                print("❌ --questions must be at least 1")
                sys.exit(1)
            config = replace(config, total_questions=total)
        elif arg == "--short":
            config = replace(config, total_questions=SHORT_TOTAL_QUESTIONS)
        elif arg.startswith("--volume="):
            volume = _parse_number(arg, float, "--volume=0.0 to --volume=1.0")
            config = replace(config, speaker_volume=max(0.0, min(1.0, volume)))  # Clamp 0-1
        elif arg.startswith("--rate="):
            rate = _parse_number(arg, float, "--rate=0.25 to --rate=4.0")
            config = replace(config, tts_rate=max(0.25, min(4.0, rate)))
        elif arg.startswith("--delay="):
            delay = _parse_number(arg, float, "--delay=SECONDS")
            config = replace(config, next_question_delay=max(0.0, delay))
        elif arg == "--fallback-to-text":
            config = replace(config, voice_fallback_to_text=True)

    if not topic:
        try:
            topic = input("📚 Interview topic: ").strip()
        except EOFError:
            topic = ""
    if not topic:
        print("❌ An interview topic is required (use --topic=...)")
        sys.exit(1)

    # Show configuration
    if mode == Mode.VOICE:
        print("🔊 Voice Mode: questions are spoken and answers are recognized from the microphone")
        print(f"🔉 Speaker Volume: {config.speaker_volume:.1f}   Speaking Rate: {config.tts_rate:.2f}")
        print("   (Use --text for a typed interview)")
    else:
        print("📝 Text Mode: questions are shown and answers are typed")
        print("   (Use --voice for a spoken interview)")
    print(f"🤖 Model: {config.model_name} via {config.llm_provider}")

    orchestrator = InterviewOrchestrator.from_config(config, mode)

    try:
        final = asyncio.run(orchestrator.run(topic, mode))
    except KeyboardInterrupt:
        print("\n👋 Interview interrupted")
        sys.exit(130)

    # Results are already displayed by the run() method
    # Detailed information is in the log file
    sys.exit(0 if final is not None else 1)


if __name__ == "__main__":
    main()
