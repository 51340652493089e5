"""
Event-driven architecture for the interview system.

The session publishes what happened; the console front end, the voice turn
coordinator, the event logger and the metrics collector all subscribe to the
same bus.
"""
import logging
from abc import ABC
from typing import Dict, Any, List, Callable, Optional
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger("events")


class EventType(str, Enum):
    """Types of interview events."""
    INTERVIEW_STARTED = "interview_started"
    STATE_CHANGED = "state_changed"
    QUESTION_READY = "question_ready"
    ANSWER_SUBMITTED = "answer_submitted"
    EVALUATION_READY = "evaluation_ready"
    INTERVIEW_COMPLETED = "interview_completed"
    INTERVIEW_RESET = "interview_reset"
    ERROR_OCCURRED = "error_occurred"
    VOICE_STATE_CHANGED = "voice_state_changed"
    TRANSCRIPT_UPDATED = "transcript_updated"


@dataclass
class InterviewEvent(ABC):
    """Base class for all interview events."""
    event_type: EventType
    session_id: Optional[str]
    timestamp: float
    data: Dict[str, Any]


@dataclass
class InterviewStartedEvent(InterviewEvent):
    """Event fired when interview begins."""
    def __init__(self, session_id: str, timestamp: float, topic: str, mode: str,
                 total_questions: int, generation: int):
        super().__init__(
            event_type=EventType.INTERVIEW_STARTED,
            session_id=session_id,
            timestamp=timestamp,
            data={
                "topic": topic,
                "mode": mode,
                "total_questions": total_questions,
                "generation": generation
            }
        )


@dataclass
class StateChangedEvent(InterviewEvent):
    """Event fired on every session state transition.

    Carries enough of the session to let a subscriber resynchronize without
    reading the session back.
    """
    def __init__(self, session_id: Optional[str], timestamp: float, previous_state: str, state: str,
                 generation: int, current_index: int, question=None, evaluation=None,
                 final_evaluation=None, error: Optional[str] = None):
        super().__init__(
            event_type=EventType.STATE_CHANGED,
            session_id=session_id,
            timestamp=timestamp,
            data={
                "previous_state": previous_state,
                "state": state,
                "generation": generation,
                "current_index": current_index,
                "question": question,
                "evaluation": evaluation,
                "final_evaluation": final_evaluation,
                "error": error
            }
        )


@dataclass
class QuestionReadyEvent(InterviewEvent):
    """Event fired when a question has been generated for the current turn."""
    def __init__(self, session_id: str, timestamp: float, index: int, question: str,
                 is_fallback: bool):
        super().__init__(
            event_type=EventType.QUESTION_READY,
            session_id=session_id,
            timestamp=timestamp,
            data={
                "index": index,
                "question": question,
                "is_fallback": is_fallback
            }
        )


@dataclass
class AnswerSubmittedEvent(InterviewEvent):
    """Event fired when the candidate's answer is accepted for evaluation."""
    def __init__(self, session_id: str, timestamp: float, index: int, answer: str):
        super().__init__(
            event_type=EventType.ANSWER_SUBMITTED,
            session_id=session_id,
            timestamp=timestamp,
            data={
                "index": index,
                "answer": answer
            }
        )


@dataclass
class EvaluationReadyEvent(InterviewEvent):
    """Event fired when an answer has been scored."""
    def __init__(self, session_id: str, timestamp: float, index: int, score: float,
                 feedback: str, is_fallback: bool):
        super().__init__(
            event_type=EventType.EVALUATION_READY,
            session_id=session_id,
            timestamp=timestamp,
            data={
                "index": index,
                "score": score,
                "feedback": feedback,
                "is_fallback": is_fallback
            }
        )


@dataclass
class InterviewCompletedEvent(InterviewEvent):
    """Event fired when interview completes successfully."""
    def __init__(self, session_id: str, timestamp: float, turn_count: int,
                 overall_score: float, recommendation: str, is_fallback: bool):
        super().__init__(
            event_type=EventType.INTERVIEW_COMPLETED,
            session_id=session_id,
            timestamp=timestamp,
            data={
                "turn_count": turn_count,
                "overall_score": overall_score,
                "recommendation": recommendation,
                "is_fallback": is_fallback
            }
        )


@dataclass
class InterviewResetEvent(InterviewEvent):
    """Event fired when the session is reset to NOT_STARTED."""
    def __init__(self, session_id: Optional[str], timestamp: float, generation: int):
        super().__init__(
            event_type=EventType.INTERVIEW_RESET,
            session_id=session_id,
            timestamp=timestamp,
            data={"generation": generation}
        )


@dataclass
class ErrorOccurredEvent(InterviewEvent):
    """Event fired when an error occurs."""
    def __init__(self, session_id: Optional[str], timestamp: float, error_type: str,
                 error_message: str, component: str):
        super().__init__(
            event_type=EventType.ERROR_OCCURRED,
            session_id=session_id,
            timestamp=timestamp,
            data={
                "error_type": error_type,
                "error_message": error_message,
                "component": component
            }
        )


@dataclass
class VoiceStateChangedEvent(InterviewEvent):
    """Event fired when the voice turn coordinator changes state."""
    def __init__(self, session_id: Optional[str], timestamp: float, previous_state: str,
                 state: str, mic_enabled: bool):
        super().__init__(
            event_type=EventType.VOICE_STATE_CHANGED,
            session_id=session_id,
            timestamp=timestamp,
            data={
                "previous_state": previous_state,
                "state": state,
                "mic_enabled": mic_enabled
            }
        )


@dataclass
class TranscriptUpdatedEvent(InterviewEvent):
    """Event fired when the working transcript changes while listening."""
    def __init__(self, session_id: Optional[str], timestamp: float, transcript: str,
                 is_final: bool):
        super().__init__(
            event_type=EventType.TRANSCRIPT_UPDATED,
            session_id=session_id,
            timestamp=timestamp,
            data={
                "transcript": transcript,
                "is_final": is_final
            }
        )


EventHandler = Callable[[InterviewEvent], None]


class InterviewEventBus:
    """Event bus for interview system communication."""

    def __init__(self):
        self._handlers: Dict[EventType, List[EventHandler]] = {}
        self._global_handlers: List[EventHandler] = []

    def subscribe(self, event_type: EventType, handler: EventHandler) -> None:
        """
        Subscribe to specific event type.

        Args:
            event_type: Type of event to listen for
            handler: Function to call when event occurs
        """
        if event_type not in self._handlers:
            self._handlers[event_type] = []
        self._handlers[event_type].append(handler)
        logger.debug(f"Subscribed handler to {event_type}")

    def subscribe_all(self, handler: EventHandler) -> None:
        """
        Subscribe to all events.

        Args:
            handler: Function to call for any event
        """
        self._global_handlers.append(handler)
        logger.debug("Subscribed global handler")

    def unsubscribe(self, event_type: EventType, handler: EventHandler) -> None:
        """
        Unsubscribe from specific event type.

        Args:
            event_type: Type of event to stop listening for
            handler: Handler function to remove
        """
        if event_type in self._handlers:
            try:
                self._handlers[event_type].remove(handler)
                logger.debug(f"Unsubscribed handler from {event_type}")
            except ValueError:
                logger.warning(f"Handler not found for {event_type}")

    def unsubscribe_all(self, handler: EventHandler) -> None:
        """Remove a handler registered with subscribe_all."""
        try:
            self._global_handlers.remove(handler)
        except ValueError:
            logger.warning("Global handler not found")

    def emit(self, event: InterviewEvent) -> None:
        """
        Emit an event to all subscribers.

        Handlers run synchronously in subscription order. A failing handler is
        logged and does not stop delivery to the others.

        Args:
            event: Event to emit
        """
        logger.debug(f"Emitting event: {event.event_type} for session {event.session_id}")

        # Call specific handlers
        for handler in list(self._handlers.get(event.event_type, ())):
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Error in event handler for {event.event_type}: {e}")

        # Call global handlers
        for handler in list(self._global_handlers):
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Error in global event handler: {e}")

    def clear_handlers(self) -> None:
        """Clear all event handlers."""
        self._handlers.clear()
        self._global_handlers.clear()
        logger.debug("Cleared all event handlers")


class EventLogger:
    """Logs all events for debugging and analysis."""

    def __init__(self, log_level: int = logging.INFO):
        self.logger = logging.getLogger("event_logger")
        self.logger.setLevel(log_level)

    def handle_event(self, event: InterviewEvent) -> None:
        """Log event details."""
        # Transcript updates arrive several times per second
        if event.event_type == EventType.TRANSCRIPT_UPDATED:
            self.logger.debug(f"Event: {event.event_type} | Session: {event.session_id} | Data: {event.data}")
            return
        self.logger.info(f"Event: {event.event_type} | Session: {event.session_id} | Data: {event.data}")


class InterviewMetrics:
    """Collects metrics from interview events."""

    def __init__(self):
        self.reset()

    def handle_event(self, event: InterviewEvent) -> None:
        """Update metrics based on event."""
        if event.event_type == EventType.INTERVIEW_STARTED:
            self.interviews_started += 1
        elif event.event_type == EventType.INTERVIEW_COMPLETED:
            self.interviews_completed += 1
            if event.data.get("is_fallback"):
                self.fallback_responses += 1
        elif event.event_type == EventType.INTERVIEW_RESET:
            self.interviews_reset += 1
        elif event.event_type == EventType.QUESTION_READY:
            self.questions_asked += 1
            if event.data.get("is_fallback"):
                self.fallback_responses += 1
        elif event.event_type == EventType.ANSWER_SUBMITTED:
            self.answers_submitted += 1
        elif event.event_type == EventType.EVALUATION_READY:
            self.evaluations_received += 1
            if event.data.get("is_fallback"):
                self.fallback_responses += 1
        elif event.event_type == EventType.ERROR_OCCURRED:
            self.errors_occurred += 1

    def get_metrics(self) -> Dict[str, int]:
        """Get current metrics snapshot."""
        return {
            "interviews_started": self.interviews_started,
            "interviews_completed": self.interviews_completed,
            "interviews_reset": self.interviews_reset,
            "questions_asked": self.questions_asked,
            "answers_submitted": self.answers_submitted,
            "evaluations_received": self.evaluations_received,
            "fallback_responses": self.fallback_responses,
            "errors_occurred": self.errors_occurred
        }

    def reset(self) -> None:
        """Reset all metrics to zero."""
        self.interviews_started = 0
        self.interviews_completed = 0
        self.interviews_reset = 0
        self.questions_asked = 0
        self.answers_submitted = 0
        self.evaluations_received = 0
        self.fallback_responses = 0
        self.errors_occurred = 0
