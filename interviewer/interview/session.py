"""
Interview session state machine.

InterviewSession owns all mutable interview data (a SessionData instance) and
changes it only through the transition methods below. Every service call is
tagged with the session generation; results that come back after a reset are
discarded.
"""
import asyncio
import logging
import time
import uuid
from typing import Any, Awaitable, Callable, Dict, Optional

from .errors import InvalidTransitionError, MalformedResponseError
from .events import (
    InterviewEventBus, InterviewEvent, InterviewStartedEvent, StateChangedEvent, QuestionReadyEvent,
    AnswerSubmittedEvent, EvaluationReadyEvent, InterviewCompletedEvent, InterviewResetEvent,
    ErrorOccurredEvent,
)
from .models import (
    Mode, SessionState, SessionData, QuestionRecord, AnswerRecord, EvaluationRecord,
    FinalEvaluation, InterviewHistory, Turn,
)
from .prompts import InterviewPrompts
from .schemas import fallback_question, fallback_evaluation, fallback_final_evaluation
from .services import QuestionService, EvaluationService, FinalEvaluationService
from ..config import TOTAL_QUESTIONS, NEXT_QUESTION_DELAY_SECONDS

logger = logging.getLogger("session")

# Steps that can fail and be retried
STEP_QUESTION = "question"
STEP_EVALUATION = "evaluation"
STEP_FINAL = "final"

_FAILURE_MESSAGES = {
    STEP_QUESTION: "Failed to generate the next question",
    STEP_EVALUATION: "Failed to evaluate your answer",
    STEP_FINAL: "Failed to generate the final evaluation",
}


class InterviewSession:
    """Turn-based interview driven by three async services.

    Identical in text and voice mode; the mode only tells front ends how an
    answer is obtained.
    """

    def __init__(self,
                 question_service: QuestionService,
                 evaluation_service: EvaluationService,
                 final_evaluation_service: FinalEvaluationService,
                 total_questions: int = TOTAL_QUESTIONS,
                 next_question_delay: float = NEXT_QUESTION_DELAY_SECONDS,
                 event_bus: Optional[InterviewEventBus] = None):
        if total_questions < 1:
            raise ValueError("total_questions must be at least 1")
        if next_question_delay < 0:
            raise ValueError("next_question_delay cannot be negative")

        self._question_service = question_service
        self._evaluation_service = evaluation_service
        self._final_evaluation_service = final_evaluation_service
        self._total_questions = total_questions
        self._next_question_delay = next_question_delay
        self._event_bus = event_bus or InterviewEventBus()

        self._data = SessionData()
        self._failed_step: Optional[str] = None
        self._in_flight: Optional[str] = None
        self._is_submitting = False
        self._advance_task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    @property
    def event_bus(self) -> InterviewEventBus:
        return self._event_bus

    @property
    def state(self) -> SessionState:
        return self._data.state

    @property
    def session_id(self) -> Optional[str]:
        return self._data.session_id

    @property
    def generation(self) -> int:
        return self._data.generation

    @property
    def topic(self) -> str:
        return self._data.topic

    @property
    def mode(self) -> Optional[Mode]:
        return self._data.mode

    @property
    def total_questions(self) -> int:
        return self._total_questions

    @property
    def current_index(self) -> int:
        return self._data.current_index

    @property
    def current_question(self) -> Optional[QuestionRecord]:
        return self._data.current_question

    @property
    def current_answer(self) -> Optional[AnswerRecord]:
        return self._data.current_answer

    @property
    def current_evaluation(self) -> Optional[EvaluationRecord]:
        return self._data.current_evaluation

    @property
    def final_evaluation(self) -> Optional[FinalEvaluation]:
        return self._data.final_evaluation

    @property
    def error(self) -> Optional[str]:
        return self._data.error

    @property
    def failed_step(self) -> Optional[str]:
        return self._failed_step

    @property
    def history(self) -> InterviewHistory:
        return self._data.history

    @property
    def is_submitting(self) -> bool:
        return self._is_submitting

    @property
    def is_live(self) -> bool:
        return self._data.state not in (SessionState.NOT_STARTED, SessionState.COMPLETED)

    def snapshot(self) -> Dict[str, Any]:
        """Serializable view of the whole session."""
        data = self._data.to_dict()
        data["is_submitting"] = self._is_submitting
        data["failed_step"] = self._failed_step
        return data

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def start_interview(self, topic: str, mode=Mode.TEXT) -> None:
        """
        Start a new interview and request the first question.

        A session that is already running is reset first.

        Args:
            topic: Interview topic, must not be blank
            mode: Mode.TEXT or Mode.VOICE (or their string values)

        Raises:
            ValueError: If the topic is blank or the mode is unknown
        """
        topic = (topic or "").strip()
        if not topic:
            raise ValueError("Interview topic cannot be empty")
        mode = Mode(mode)

        if self._data.state != SessionState.NOT_STARTED:
            logger.info(f"Restarting while {self._data.state.value}; resetting first")
            self.reset_interview()

        self._data = SessionData(
            session_id=f"interview_{int(time.time())}_{uuid.uuid4().hex[:6]}",
            generation=self._data.generation + 1,
            topic=topic,
            mode=mode,
            total_questions=self._total_questions,
            current_index=1,
        )
        logger.info(f"Starting {mode.value} interview on '{topic}' ({self._total_questions} questions)")
        self._emit(InterviewStartedEvent(
            self._data.session_id, time.time(), topic, mode.value,
            self._total_questions, self._data.generation,
        ))
        self._transition(SessionState.AWAITING_QUESTION)
        await self._request_question()

    async def submit_answer(self, text: str) -> bool:
        """
        Submit the candidate's answer for the current question.

        Returns:
            True if the answer was accepted. False if it was blank or another
            submission for this turn is still in flight.

        Raises:
            InvalidTransitionError: If the session is not waiting for an answer
        """
        text = (text or "").strip()
        if not text:
            logger.info("Ignoring empty answer")
            return False
        if self._is_submitting or self._data.state == SessionState.EVALUATING:
            logger.info("Ignoring duplicate submission")
            return False
        if self._data.state != SessionState.AWAITING_ANSWER:
            raise InvalidTransitionError("submit an answer", self._data.state.value)

        generation = self._data.generation
        self._is_submitting = True
        try:
            index = self._data.current_index
            self._data.current_answer = AnswerRecord(index=index, text=text)
            self._emit(AnswerSubmittedEvent(self._data.session_id, time.time(), index, text))
            self._transition(SessionState.EVALUATING)
            await self._request_evaluation()
        finally:
            if generation == self._data.generation:
                self._is_submitting = False
        return True

    async def retry(self) -> None:
        """
        Re-issue the call that failed, and only that call.

        Raises:
            InvalidTransitionError: If the session has not failed
        """
        if self._data.state != SessionState.FAILED:
            raise InvalidTransitionError("retry", self._data.state.value)

        step = self._failed_step
        self._failed_step = None
        self._data.error = None
        logger.info(f"Retrying {step} for turn {self._data.current_index}")

        if step == STEP_QUESTION:
            self._transition(SessionState.AWAITING_QUESTION)
            await self._request_question()
        elif step == STEP_EVALUATION:
            generation = self._data.generation
            self._is_submitting = True
            try:
                self._transition(SessionState.EVALUATING)
                await self._request_evaluation()
            finally:
                if generation == self._data.generation:
                    self._is_submitting = False
        elif step == STEP_FINAL:
            self._transition(SessionState.GENERATING_FINAL)
            await self._request_final_evaluation()
        else:
            raise InvalidTransitionError("retry an unknown step", self._data.state.value)

    def reset_interview(self) -> None:
        """Return to NOT_STARTED. Always permitted; resetting twice is the same as once."""
        pending = self._advance_task is not None and not self._advance_task.done()
        if self._data.state == SessionState.NOT_STARTED and not pending:
            logger.debug("Reset requested on a session that is not started")
            return

        if pending:
            self._advance_task.cancel()
        self._advance_task = None

        previous = self._data.state
        session_id = self._data.session_id
        self._data = SessionData(generation=self._data.generation + 1)
        self._failed_step = None
        self._in_flight = None
        self._is_submitting = False

        logger.info(f"Session {session_id} reset from {previous.value}")
        self._emit(StateChangedEvent(
            session_id, time.time(), previous.value, SessionState.NOT_STARTED.value,
            self._data.generation, 0,
        ))
        self._emit(InterviewResetEvent(session_id, time.time(), self._data.generation))

    async def aclose(self) -> None:
        """Reset and wait for the pending next-question task to unwind."""
        task = self._advance_task
        self.reset_interview()
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass

    # ------------------------------------------------------------------
    # Transitions and service calls
    # ------------------------------------------------------------------

    def _transition(self, new_state: SessionState) -> None:
        previous = self._data.state
        self._data.state = new_state
        logger.info(f"State: {previous.value} -> {new_state.value} (turn {self._data.current_index})")
        self._emit(StateChangedEvent(
            self._data.session_id, time.time(), previous.value, new_state.value,
            self._data.generation, self._data.current_index,
            question=self._data.current_question,
            evaluation=self._data.current_evaluation,
            final_evaluation=self._data.final_evaluation,
            error=self._data.error,
        ))

    def _emit(self, event: InterviewEvent) -> None:
        self._event_bus.emit(event)

    def _is_stale(self, generation: int, step: str) -> bool:
        if generation != self._data.generation:
            logger.info(f"Discarding {step} response from generation {generation}")
            return True
        return False

    async def _call_service(self, step: str, call: Callable[[], Awaitable[Any]],
                            fallback: Callable[[MalformedResponseError], Any]) -> Optional[Any]:
        """
        Await one service call for the current generation.

        Malformed replies are replaced with the fallback record. Any other
        failure moves the session to FAILED.

        Returns:
            The service result, or None if the session failed or was reset meanwhile
        """
        if self._in_flight is not None:
            raise InvalidTransitionError(f"request {step} while {self._in_flight} is in flight",
                                         self._data.state.value)
        generation = self._data.generation
        self._in_flight = step
        try:
            result = await call()
        except MalformedResponseError as e:
            if self._is_stale(generation, step):
                return None
            logger.warning(f"Malformed {step} response, using fallback: {e}")
            self._emit(ErrorOccurredEvent(
                self._data.session_id, time.time(), type(e).__name__, str(e), step,
            ))
            result = fallback(e)
        except Exception as e:
            if self._is_stale(generation, step):
                return None
            self._fail(step, e)
            return None

        if self._is_stale(generation, step):
            return None
        self._in_flight = None
        return result

    def _fail(self, step: str, exc: Exception) -> None:
        logger.error(f"{step} call failed on turn {self._data.current_index}: {exc}")
        self._in_flight = None
        self._failed_step = step
        self._data.error = f"{_FAILURE_MESSAGES[step]}: {exc}"
        self._emit(ErrorOccurredEvent(
            self._data.session_id, time.time(), type(exc).__name__, str(exc), step,
        ))
        self._transition(SessionState.FAILED)

    async def _request_question(self) -> None:
        index = self._data.current_index
        topic = self._data.topic
        defaults = InterviewPrompts.fallback_questions(topic)

        generated = await self._call_service(
            STEP_QUESTION,
            lambda: self._question_service.generate(topic, index, self._data.history.pairs()),
            lambda exc: fallback_question(exc.raw_text, defaults[(index - 1) % len(defaults)], exc.is_json),
        )
        if generated is None:
            return

        self._data.current_question = QuestionRecord(
            index=index,
            question_text=generated.question,
            context=generated.context,
            is_fallback=generated.is_fallback,
        )
        self._emit(QuestionReadyEvent(
            self._data.session_id, time.time(), index, generated.question, generated.is_fallback,
        ))
        self._transition(SessionState.AWAITING_ANSWER)

    async def _request_evaluation(self) -> None:
        question = self._data.current_question
        answer = self._data.current_answer
        topic = self._data.topic

        result = await self._call_service(
            STEP_EVALUATION,
            lambda: self._evaluation_service.evaluate(topic, question.question_text, answer.text),
            lambda exc: fallback_evaluation(exc.raw_text),
        )
        if result is None:
            return

        record = EvaluationRecord(
            index=question.index,
            score=result.score,
            feedback=result.feedback,
            strengths=list(result.strengths),
            improvements=list(result.areas_for_improvement),
            is_fallback=result.is_fallback,
        )
        self._data.history.commit(Turn(question=question, answer=answer, evaluation=record))
        self._data.current_evaluation = record
        # Submission ends once the answer is scored
        self._is_submitting = False
        self._emit(EvaluationReadyEvent(
            self._data.session_id, time.time(), record.index, record.score, record.feedback,
            record.is_fallback,
        ))
        self._transition(SessionState.SHOWING_EVALUATION)

        if self._data.current_index >= self._total_questions:
            self._transition(SessionState.GENERATING_FINAL)
            await self._request_final_evaluation()
        else:
            self._schedule_next_question()

    async def _request_final_evaluation(self) -> None:
        history = self._data.history
        if len(history.evaluations) != self._total_questions:
            raise InvalidTransitionError(
                f"summarize {len(history.evaluations)} of {self._total_questions} turns",
                self._data.state.value,
            )
        topic = self._data.topic

        final = await self._call_service(
            STEP_FINAL,
            lambda: self._final_evaluation_service.summarize(topic, history.pairs(), history.evaluations),
            lambda exc: fallback_final_evaluation(exc.raw_text),
        )
        if final is None:
            return

        self._data.final_evaluation = final
        self._transition(SessionState.COMPLETED)
        self._emit(InterviewCompletedEvent(
            self._data.session_id, time.time(), len(history), final.overall_score,
            final.recommendation, final.is_fallback,
        ))

    def _schedule_next_question(self) -> None:
        generation = self._data.generation
        self._advance_task = asyncio.get_running_loop().create_task(
            self._advance_after_delay(generation)
        )
        self._advance_task.add_done_callback(self._on_advance_done)
        logger.debug(f"Next question in {self._next_question_delay:g}s")

    async def _advance_after_delay(self, generation: int) -> None:
        await asyncio.sleep(self._next_question_delay)
        if generation != self._data.generation or self._data.state != SessionState.SHOWING_EVALUATION:
            return

        self._data.current_index += 1
        self._data.current_question = None
        self._data.current_answer = None
        self._data.current_evaluation = None
        self._transition(SessionState.AWAITING_QUESTION)
        await self._request_question()

    def _on_advance_done(self, task: asyncio.Task) -> None:
        if self._advance_task is task:
            self._advance_task = None
        if task.cancelled():
            logger.debug("Pending next question cancelled")
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Advancing to the next question failed: {exc}")
