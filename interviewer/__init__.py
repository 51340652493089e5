"""
Interviewer: turn-based AI interview engine.

Asks questions on a topic, collects typed or spoken answers, scores each
answer with an LLM and produces a final evaluation.
"""

__version__ = "1.0.0"

# Main entry points
from .interview.session import InterviewSession
from .interview.voice import VoiceTurnCoordinator
from .interview.models import Mode, SessionState

__all__ = ["InterviewSession", "VoiceTurnCoordinator", "Mode", "SessionState"]
