"""
Testing infrastructure with mock services and fake speech devices.
"""
import asyncio
from typing import Dict, Any, List, Optional, Sequence

from .events import InterviewEventBus, InterviewEvent, EventLogger, InterviewMetrics
from .models import AnswerEvaluation, EvaluationRecord, FinalEvaluation, GeneratedQuestion, QAPair
from .session import InterviewSession
from ..infrastructure.audio.speech.ports import (
    SpeechSynthesisPort, SpeechRecognitionPort, SpeechEvent, SpeechOptions,
    SynthesisEventType, RecognitionEventType,
)


class _MockService:
    """Scripted responses, call recording and an optional gate to hold calls open."""

    def __init__(self, responses: Optional[Sequence[Any]] = None):
        self.responses = list(responses or [])
        self.calls: List[Dict[str, Any]] = []
        self.gate: Optional[asyncio.Event] = None

    def hold(self) -> asyncio.Event:
        """Make calls wait until release() is called."""
        self.gate = asyncio.Event()
        return self.gate

    def release(self) -> None:
        if self.gate is not None:
            self.gate.set()

    def fail_next(self, exc: BaseException) -> None:
        self.responses.insert(0, exc)

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def _respond(self, default: Any) -> Any:
        if self.gate is not None:
            await self.gate.wait()
        response = self.responses.pop(0) if self.responses else default
        if isinstance(response, BaseException):
            raise response
        return response


class MockQuestionService(_MockService):
    """Mock question service for testing."""

    async def generate(self, topic: str, question_number: int,
                       history: Sequence[QAPair]) -> GeneratedQuestion:
        self.calls.append({"topic": topic, "question_number": question_number, "history": list(history)})
        response = await self._respond(GeneratedQuestion(
            question=f"What matters most about {topic}? (#{question_number})",
            context="Mock question",
        ))
        if isinstance(response, str):
            return GeneratedQuestion(question=response)
        return response


class MockEvaluationService(_MockService):
    """Mock evaluation service for testing. Numbers in responses become scores."""

    async def evaluate(self, topic: str, question: str, answer: str) -> AnswerEvaluation:
        self.calls.append({"topic": topic, "question": question, "answer": answer})
        response = await self._respond(AnswerEvaluation(
            score=7,
            feedback="Solid answer.",
            strengths=["Clear explanation"],
            areas_for_improvement=["Add a concrete example"],
        ))
        if isinstance(response, (int, float)):
            return AnswerEvaluation(score=response, feedback=f"Mock feedback, score {response}")
        return response


class MockFinalEvaluationService(_MockService):
    """Mock final evaluation service for testing."""

    async def summarize(self, topic: str, history: Sequence[QAPair],
                        evaluations: Sequence[EvaluationRecord]) -> FinalEvaluation:
        self.calls.append({"topic": topic, "history": list(history), "evaluations": list(evaluations)})
        return await self._respond(FinalEvaluation(
            overall_score=75,
            summary="Mock summary of a reasonable interview.",
            key_strengths=["Communication"],
            areas_for_improvement=["Depth"],
            recommendation="Consider",
        ))


class MockLLMClient:
    """Mock LLM client for testing."""

    def __init__(self, mock_responses: Optional[List[Any]] = None):
        self.mock_responses = list(mock_responses or [])
        self.current_response_idx = 0
        self.request_history: List[Dict[str, Any]] = []

    async def generate_json(self, messages: List[Dict[str, str]], schema_name: str,
                            schema: Dict[str, Any]) -> Any:
        """Return mock LLM response."""
        self.request_history.append({
            "messages": messages,
            "schema_name": schema_name,
            "schema": schema,
        })

        if self.current_response_idx < len(self.mock_responses):
            response = self.mock_responses[self.current_response_idx]
            self.current_response_idx += 1
            if isinstance(response, BaseException):
                raise response
            return response

        # Default fallback responses
        if schema_name == "interview_question":
            return {"question": "What is a closure?", "context": "Mock fallback"}
        if schema_name == "answer_evaluation":
            return {"score": 5, "feedback": "Mock fallback", "strengths": [], "areas_for_improvement": []}
        return {"overall_score": 50, "summary": "Mock fallback", "key_strengths": [],
                "areas_for_improvement": [], "recommendation": "Consider"}


class FakeSpeechSynthesizer(SpeechSynthesisPort):
    """Speech synthesis port driven by the test."""

    def __init__(self, supported: bool = True, auto_end: bool = False):
        super().__init__()
        self.supported = supported
        self.auto_end = auto_end
        self.spoken: List[str] = []
        self.options: List[Optional[SpeechOptions]] = []
        self.stop_calls = 0
        self.overlaps = 0
        self.pause_calls = 0
        self.paused = False
        self.recognizer: Optional["FakeSpeechRecognizer"] = None
        self._current: Optional[int] = None

    def is_supported(self) -> bool:
        return self.supported

    @property
    def is_speaking(self) -> bool:
        return self._current is not None

    @property
    def current_sequence(self) -> Optional[int]:
        return self._current

    def speak(self, text: str, options: Optional[SpeechOptions] = None) -> int:
        self.stop()
        if self.recognizer is not None and self.recognizer.is_active:
            self.overlaps += 1
        self._current = self._next_sequence()
        self.spoken.append(text)
        self.options.append(options)
        if self.auto_end:
            asyncio.get_running_loop().call_soon(self.finish)
        return self._current

    def pause(self) -> None:
        self.pause_calls += 1
        self.paused = True

    def resume(self) -> None:
        self.paused = False

    def stop(self) -> None:
        if self._current is not None:
            self.stop_calls += 1
        self._current = None
        self.paused = False

    def finish(self) -> None:
        """End the current utterance normally."""
        if self._current is None:
            return
        self.paused = False
        sequence, self._current = self._current, None
        self._publish(SpeechEvent(SynthesisEventType.END.value, sequence))

    def fail(self, reason: str = "synthesis-failed") -> None:
        if self._current is None:
            return
        self.paused = False
        sequence, self._current = self._current, None
        self._publish(SpeechEvent(SynthesisEventType.ERROR.value, sequence, reason=reason))

    def emit(self, kind: SynthesisEventType, sequence: int, reason: str = "") -> None:
        """Publish a raw event, e.g. a late one from a cancelled utterance."""
        self._publish(SpeechEvent(kind.value, sequence, reason=reason))


class FakeSpeechRecognizer(SpeechRecognitionPort):
    """Speech recognition port driven by the test."""

    def __init__(self, supported: bool = True):
        super().__init__()
        self.supported = supported
        self.start_calls = 0
        self.stop_calls = 0
        self.overlaps = 0
        self.synthesizer: Optional[FakeSpeechSynthesizer] = None
        self._current: Optional[int] = None

    def is_supported(self) -> bool:
        return self.supported

    @property
    def is_active(self) -> bool:
        return self._current is not None

    @property
    def last_sequence(self) -> int:
        return self._sequence

    def start(self) -> int:
        self.stop()
        if self.synthesizer is not None and self.synthesizer.is_speaking:
            self.overlaps += 1
        self.start_calls += 1
        self._current = self._next_sequence()
        return self._current

    def stop(self) -> None:
        if self._current is not None:
            self.stop_calls += 1
        self._current = None

    def partial(self, text: str) -> None:
        self._publish(SpeechEvent(RecognitionEventType.PARTIAL_RESULT.value, self._sequence, text=text))

    def final(self, text: str) -> None:
        self._publish(SpeechEvent(RecognitionEventType.FINAL_RESULT.value, self._sequence, text=text))

    def end(self) -> None:
        """The device closed the current (or last) run on its own."""
        self._current = None
        self._publish(SpeechEvent(RecognitionEventType.ENDED.value, self._sequence))

    def error(self, reason: str) -> None:
        self._publish(SpeechEvent(RecognitionEventType.ERROR.value, self._sequence, reason=reason))


def create_fake_speech_ports(auto_end: bool = False):
    """Linked fake ports that count any moment where both are active."""
    synthesizer = FakeSpeechSynthesizer(auto_end=auto_end)
    recognizer = FakeSpeechRecognizer()
    synthesizer.recognizer = recognizer
    recognizer.synthesizer = synthesizer
    return synthesizer, recognizer


def record_events(event_bus: InterviewEventBus) -> List[InterviewEvent]:
    """Subscribe a list to every event on the bus."""
    events: List[InterviewEvent] = []
    event_bus.subscribe_all(events.append)
    return events


def create_mock_interview_setup(total_questions: int = 3,
                                next_question_delay: float = 0.0,
                                question_responses: Optional[Sequence[Any]] = None,
                                evaluation_responses: Optional[Sequence[Any]] = None,
                                final_responses: Optional[Sequence[Any]] = None) -> Dict[str, Any]:
    """Create a complete mock interview setup for testing."""
    event_bus = InterviewEventBus()
    metrics = InterviewMetrics()
    event_bus.subscribe_all(EventLogger().handle_event)
    event_bus.subscribe_all(metrics.handle_event)
    events = record_events(event_bus)

    question_service = MockQuestionService(question_responses)
    evaluation_service = MockEvaluationService(evaluation_responses)
    final_evaluation_service = MockFinalEvaluationService(final_responses)

    session = InterviewSession(
        question_service,
        evaluation_service,
        final_evaluation_service,
        total_questions=total_questions,
        next_question_delay=next_question_delay,
        event_bus=event_bus,
    )

    return {
        "session": session,
        "event_bus": event_bus,
        "events": events,
        "metrics": metrics,
        "question_service": question_service,
        "evaluation_service": evaluation_service,
        "final_evaluation_service": final_evaluation_service,
    }
