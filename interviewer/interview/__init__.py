"""Interview system components.

This module contains the business logic for conducting AI interviews: the
session state machine, the voice turn coordinator, the LLM-backed services and
the console orchestrator.
"""

# Session state machine and voice turn taking
from .session import InterviewSession
from .voice import VoiceTurnCoordinator, VoiceState

# Data models
from .models import (
    Mode, SessionState, QuestionRecord, AnswerRecord, EvaluationRecord,
    FinalEvaluation, GeneratedQuestion, AnswerEvaluation, QAPair, Turn,
    InterviewHistory, SessionData
)

# Errors
from .errors import (
    InterviewError, InvalidTransitionError, ServiceCallError, LLMRequestError,
    MalformedResponseError, DeviceUnsupportedError
)

# Service classes
from .services import LLMQuestionService, LLMEvaluationService, LLMFinalEvaluationService

# Event system
from .events import (
    InterviewEventBus, EventLogger, InterviewMetrics,
    EventType, InterviewEvent, InterviewStartedEvent, StateChangedEvent,
    QuestionReadyEvent, AnswerSubmittedEvent, EvaluationReadyEvent,
    InterviewCompletedEvent, InterviewResetEvent, ErrorOccurredEvent,
    VoiceStateChangedEvent, TranscriptUpdatedEvent
)

__all__ = [
    # Core
    "InterviewSession", "VoiceTurnCoordinator", "VoiceState",

    # Data models
    "Mode", "SessionState", "QuestionRecord", "AnswerRecord", "EvaluationRecord",
    "FinalEvaluation", "GeneratedQuestion", "AnswerEvaluation", "QAPair", "Turn",
    "InterviewHistory", "SessionData",

    # Errors
    "InterviewError", "InvalidTransitionError", "ServiceCallError", "LLMRequestError",
    "MalformedResponseError", "DeviceUnsupportedError",

    # Services
    "LLMQuestionService", "LLMEvaluationService", "LLMFinalEvaluationService",

    # Events
    "InterviewEventBus", "EventLogger", "InterviewMetrics",
    "EventType", "InterviewEvent", "InterviewStartedEvent", "StateChangedEvent",
    "QuestionReadyEvent", "AnswerSubmittedEvent", "EvaluationReadyEvent",
    "InterviewCompletedEvent", "InterviewResetEvent", "ErrorOccurredEvent",
    "VoiceStateChangedEvent", "TranscriptUpdatedEvent"
]
