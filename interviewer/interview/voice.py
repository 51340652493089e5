"""
Voice-mode turn taking.

VoiceTurnCoordinator sits on top of an InterviewSession and sequences the
speech synthesis and speech recognition ports around each turn: speak the
question, listen for the answer, submit it, speak the feedback.

Device callbacks, session events and user actions are all turned into typed
events on one asyncio.Queue and handled one at a time by ``_dispatch``. Speech
events carry the sequence number of the utterance or recognition run that
produced them; anything from a run the coordinator no longer tracks is dropped.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional

from .errors import DeviceUnsupportedError, InterviewError
from .events import (
    EventType, InterviewEvent, VoiceStateChangedEvent, TranscriptUpdatedEvent, ErrorOccurredEvent,
)
from .models import Mode, SessionState, QuestionRecord, EvaluationRecord, FinalEvaluation
from .session import InterviewSession
from ..config import FATAL_RECOGNITION_ERRORS
from ..infrastructure.audio.speech.ports import (
    SpeechSynthesisPort, SpeechRecognitionPort, SpeechEvent, SpeechOptions,
    SynthesisEventType, RecognitionEventType,
)

logger = logging.getLogger("voice")


class VoiceState(str, Enum):
    """Turn-taking states of the voice coordinator."""
    IDLE = "idle"
    AI_SPEAKING = "ai_speaking"
    LISTENING = "listening"
    SUBMITTING = "submitting"
    EVALUATION_SHOWN = "evaluation_shown"
    COMPLETED = "completed"


# What the synthesizer is currently saying
_SPEAKING_QUESTION = "question"
_SPEAKING_FEEDBACK = "feedback"
_SPEAKING_CLOSING = "closing"


# =============================================================================
# Queue events
# =============================================================================

@dataclass(frozen=True)
class SynthesisFinished:
    sequence: int
    error: str = ""


@dataclass(frozen=True)
class RecognitionResult:
    sequence: int
    text: str
    is_final: bool


@dataclass(frozen=True)
class RecognitionEnded:
    sequence: int


@dataclass(frozen=True)
class RecognitionFailed:
    sequence: int
    reason: str


@dataclass(frozen=True)
class MicToggled:
    """None flips the microphone, True/False sets it."""
    enabled: Optional[bool] = None


@dataclass(frozen=True)
class SpeechPauseRequested:
    """None flips the pause, True/False sets it."""
    paused: Optional[bool] = None


@dataclass(frozen=True)
class StopRequested:
    pass


@dataclass(frozen=True)
class SessionChanged:
    state: SessionState
    generation: int
    question: Optional[QuestionRecord] = None
    evaluation: Optional[EvaluationRecord] = None
    final_evaluation: Optional[FinalEvaluation] = None


@dataclass(frozen=True)
class SubmissionFinished:
    generation: int
    accepted: bool


@dataclass(frozen=True)
class _Shutdown:
    pass


class VoiceTurnCoordinator:
    """Runs an InterviewSession in voice mode."""

    def __init__(self,
                 session: InterviewSession,
                 synthesis: SpeechSynthesisPort,
                 recognition: SpeechRecognitionPort,
                 speech_options: Optional[SpeechOptions] = None,
                 speak_feedback: bool = True):
        self.session = session
        self.synthesis = synthesis
        self.recognition = recognition
        self.speech_options = speech_options or SpeechOptions()
        self.speak_feedback = speak_feedback

        self._queue: asyncio.Queue = asyncio.Queue()
        self._runner: Optional[asyncio.Task] = None
        self._submit_task: Optional[asyncio.Task] = None
        self._completed = asyncio.Event()
        self._attached = False

        self._state = VoiceState.IDLE
        self._generation = session.generation
        self._mic_enabled = True
        self._mic_off_pending = False
        self._awaiting_mic = False

        self._speech_sequence: Optional[int] = None
        self._speaking: Optional[str] = None
        self._speech_paused = False
        self._recognition_sequence: Optional[int] = None

        self._committed: List[str] = []
        self._partial = ""
        self._spoken_index = 0
        self._pending_question: Optional[QuestionRecord] = None
        self._pending_final: Optional[FinalEvaluation] = None

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    @property
    def state(self) -> VoiceState:
        return self._state

    @property
    def mic_enabled(self) -> bool:
        return self._mic_enabled and not self._mic_off_pending

    @property
    def speech_paused(self) -> bool:
        return self._speech_paused

    @property
    def awaiting_mic(self) -> bool:
        """Idle because the microphone is off and a question is waiting for an answer."""
        return self._awaiting_mic

    @property
    def transcript(self) -> str:
        """Committed final results followed by the current partial result."""
        parts = self._committed + [self._partial]
        return " ".join(p.strip() for p in parts if p and p.strip())

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def check_supported(self) -> None:
        """
        Raises:
            DeviceUnsupportedError: If either speech port cannot run here
        """
        if not self.synthesis.is_supported():
            raise DeviceUnsupportedError("Speech synthesis", "no audio output available")
        if not self.recognition.is_supported():
            raise DeviceUnsupportedError("Speech recognition", "no microphone or recognizer available")

    def attach(self) -> None:
        """Subscribe to the session and the speech ports and start the dispatch loop."""
        if self._attached:
            return
        self.check_supported()
        self.session.event_bus.subscribe(EventType.STATE_CHANGED, self._on_session_event)
        self.session.event_bus.subscribe(EventType.INTERVIEW_RESET, self._on_session_event)
        self.synthesis.subscribe(self._on_synthesis_event)
        self.recognition.subscribe(self._on_recognition_event)
        self._runner = asyncio.get_running_loop().create_task(self._run())
        self._attached = True
        logger.info("Voice coordinator attached")

    async def start(self, topic: str) -> None:
        """Start a voice interview on ``topic``."""
        self.attach()
        self._completed.clear()
        await self.session.start_interview(topic, Mode.VOICE)

    async def wait_completed(self) -> None:
        await self._completed.wait()

    async def close(self) -> None:
        """Stop both devices and the dispatch loop."""
        if not self._attached:
            return
        self._halt_devices()
        if self._submit_task is not None and not self._submit_task.done():
            self._submit_task.cancel()
        self.session.event_bus.unsubscribe(EventType.STATE_CHANGED, self._on_session_event)
        self.session.event_bus.unsubscribe(EventType.INTERVIEW_RESET, self._on_session_event)
        self.synthesis.unsubscribe(self._on_synthesis_event)
        self.recognition.unsubscribe(self._on_recognition_event)
        self._queue.put_nowait(_Shutdown())
        if self._runner is not None:
            await self._runner
        self._attached = False
        logger.info("Voice coordinator closed")

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------

    def toggle_mic(self) -> None:
        self._queue.put_nowait(MicToggled())

    def set_mic(self, enabled: bool) -> None:
        self._queue.put_nowait(MicToggled(enabled))

    def stop_listening(self) -> None:
        """Finish the answer and submit what has been heard so far."""
        self._queue.put_nowait(StopRequested())

    def pause_speech(self) -> None:
        """Pause the question or feedback being spoken. Ignored when nothing is spoken."""
        self._queue.put_nowait(SpeechPauseRequested(True))

    def resume_speech(self) -> None:
        self._queue.put_nowait(SpeechPauseRequested(False))

    def toggle_speech_pause(self) -> None:
        self._queue.put_nowait(SpeechPauseRequested())

    # ------------------------------------------------------------------
    # Event intake
    # ------------------------------------------------------------------

    def _on_synthesis_event(self, event: SpeechEvent) -> None:
        if event.kind == SynthesisEventType.END.value:
            self._queue.put_nowait(SynthesisFinished(event.sequence))
        elif event.kind == SynthesisEventType.ERROR.value:
            # An utterance that failed still has to end the AI's turn
            self._queue.put_nowait(SynthesisFinished(event.sequence, error=event.reason or "unknown"))

    def _on_recognition_event(self, event: SpeechEvent) -> None:
        if event.kind == RecognitionEventType.PARTIAL_RESULT.value:
            self._queue.put_nowait(RecognitionResult(event.sequence, event.text, is_final=False))
        elif event.kind == RecognitionEventType.FINAL_RESULT.value:
            self._queue.put_nowait(RecognitionResult(event.sequence, event.text, is_final=True))
        elif event.kind == RecognitionEventType.ENDED.value:
            self._queue.put_nowait(RecognitionEnded(event.sequence))
        elif event.kind == RecognitionEventType.ERROR.value:
            self._queue.put_nowait(RecognitionFailed(event.sequence, event.reason))

    def _on_session_event(self, event: InterviewEvent) -> None:
        if event.event_type == EventType.INTERVIEW_RESET:
            # Devices must be quiet by the time reset_interview() returns
            self._handle_reset(event.data["generation"])
            return
        self._queue.put_nowait(SessionChanged(
            state=SessionState(event.data["state"]),
            generation=event.data["generation"],
            question=event.data.get("question"),
            evaluation=event.data.get("evaluation"),
            final_evaluation=event.data.get("final_evaluation"),
        ))

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            if isinstance(event, _Shutdown):
                return
            try:
                self._dispatch(event)
            except Exception as e:
                logger.error(f"Error handling {type(event).__name__}: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Transition function
    # ------------------------------------------------------------------

    def _dispatch(self, event: Any) -> None:
        logger.debug(f"[{self._state.value}] {event}")
        if isinstance(event, SessionChanged):
            self._on_session_changed(event)
        elif isinstance(event, SynthesisFinished):
            self._on_synthesis_finished(event)
        elif isinstance(event, RecognitionResult):
            self._on_recognition_result(event)
        elif isinstance(event, RecognitionEnded):
            self._on_recognition_ended(event)
        elif isinstance(event, RecognitionFailed):
            self._on_recognition_failed(event)
        elif isinstance(event, MicToggled):
            self._on_mic_toggled(event)
        elif isinstance(event, StopRequested):
            self._on_stop_requested()
        elif isinstance(event, SpeechPauseRequested):
            self._on_speech_pause_requested(event)
        elif isinstance(event, SubmissionFinished):
            self._on_submission_finished(event)
        else:
            logger.warning(f"Unknown voice event {event!r}")

    def _on_session_changed(self, event: SessionChanged) -> None:
        if event.generation < self._generation:
            logger.debug(f"Dropping session event from generation {event.generation}")
            return
        if event.generation > self._generation:
            self._generation = event.generation
            self._clear_turn()

        if event.state == SessionState.AWAITING_ANSWER and event.question is not None:
            if event.question.index != self._spoken_index:
                self._ask(event.question)
        elif event.state == SessionState.EVALUATING:
            if self._state == VoiceState.LISTENING:
                # Answer arrived by another path
                self._stop_recognition()
                self._set_state(VoiceState.SUBMITTING)
        elif event.state == SessionState.SHOWING_EVALUATION and event.evaluation is not None:
            self._show_evaluation(event.evaluation)
        elif event.state == SessionState.COMPLETED and event.final_evaluation is not None:
            if self._speaking == _SPEAKING_FEEDBACK:
                self._pending_final = event.final_evaluation
            else:
                self._complete(event.final_evaluation)
        elif event.state == SessionState.FAILED:
            self._halt_devices()
            self._set_state(VoiceState.IDLE)

    def _on_synthesis_finished(self, event: SynthesisFinished) -> None:
        if event.sequence != self._speech_sequence:
            logger.debug(f"Dropping end of utterance #{event.sequence}")
            return
        if event.error:
            logger.warning(f"Speech synthesis error, treating as end: {event.error}")

        finished = self._speaking
        self._speech_sequence = None
        self._speaking = None
        self._speech_paused = False

        if finished == _SPEAKING_QUESTION:
            self._after_question_spoken()
        elif finished == _SPEAKING_FEEDBACK:
            if self._pending_final is not None:
                final, self._pending_final = self._pending_final, None
                self._complete(final)
            elif self._pending_question is not None:
                question, self._pending_question = self._pending_question, None
                self._ask(question)

    def _on_recognition_result(self, event: RecognitionResult) -> None:
        if event.sequence != self._recognition_sequence or self._state != VoiceState.LISTENING:
            return
        if event.is_final:
            if event.text.strip():
                self._committed.append(event.text.strip())
            self._partial = ""
        else:
            self._partial = event.text
        self.session.event_bus.emit(TranscriptUpdatedEvent(
            self.session.session_id, time.time(), self.transcript, event.is_final,
        ))

    def _on_recognition_ended(self, event: RecognitionEnded) -> None:
        if event.sequence != self._recognition_sequence:
            logger.debug(f"Dropping end of recognition run #{event.sequence}")
            return
        self._recognition_sequence = None
        if self._state != VoiceState.LISTENING:
            return
        # Keep whatever was heard before the stream closed
        if self._partial.strip():
            self._committed.append(self._partial.strip())
        self._partial = ""
        logger.info("Recognition ended while listening; restarting")
        self._recognition_sequence = self.recognition.start()

    def _on_recognition_failed(self, event: RecognitionFailed) -> None:
        if event.sequence != self._recognition_sequence:
            return
        if event.reason not in FATAL_RECOGNITION_ERRORS:
            logger.warning(f"Recognition error '{event.reason}'; waiting for the run to end")
            return

        logger.error(f"Recognition error '{event.reason}'; microphone disabled")
        self._stop_recognition()
        self._mic_enabled = False
        self._mic_off_pending = False
        self._awaiting_mic = True
        self.session.event_bus.emit(ErrorOccurredEvent(
            self.session.session_id, time.time(), "RecognitionError", event.reason, "voice",
        ))
        self._set_state(VoiceState.IDLE, force=True)

    def _on_mic_toggled(self, event: MicToggled) -> None:
        enable = (not self.mic_enabled) if event.enabled is None else event.enabled

        if enable:
            self._mic_enabled = True
            self._mic_off_pending = False
            if self._state == VoiceState.AI_SPEAKING and self._speaking == _SPEAKING_QUESTION:
                logger.info("Microphone enabled during question; interrupting speech")
                self._stop_speech()
                self._listen()
            elif self._state == VoiceState.IDLE and self._awaiting_mic:
                self._listen()
            else:
                self._set_state(self._state, force=True)
            return

        if self._state == VoiceState.AI_SPEAKING:
            # Never cut the question short; applied once it has been spoken
            self._mic_off_pending = True
            self._set_state(self._state, force=True)
        elif self._state == VoiceState.LISTENING:
            self._mic_enabled = False
            if self.transcript:
                self._submit(self.transcript)
            else:
                self._stop_recognition()
                self._awaiting_mic = True
                self._set_state(VoiceState.IDLE)
        else:
            self._mic_enabled = False
            self._set_state(self._state, force=True)

    def _on_stop_requested(self) -> None:
        if self._state != VoiceState.LISTENING:
            logger.debug(f"Stop ignored while {self._state.value}")
            return
        text = self.transcript
        if not text:
            logger.info("Nothing heard yet; still listening")
            return
        self._submit(text)

    def _on_speech_pause_requested(self, event: SpeechPauseRequested) -> None:
        pause = (not self._speech_paused) if event.paused is None else event.paused
        if self._speech_sequence is None or self._state not in (VoiceState.AI_SPEAKING,
                                                                VoiceState.EVALUATION_SHOWN):
            logger.debug(f"Pause request ignored while {self._state.value}")
            return
        if pause == self._speech_paused:
            return

        if pause:
            self.synthesis.pause()
        else:
            self.synthesis.resume()
        self._speech_paused = pause
        logger.info(f"Speech {'paused' if pause else 'resumed'}")

    def _on_submission_finished(self, event: SubmissionFinished) -> None:
        if event.generation != self._generation or self._state != VoiceState.SUBMITTING:
            return
        if not event.accepted and self.session.state == SessionState.AWAITING_ANSWER:
            logger.warning("Answer was not accepted; listening again")
            self._listen(keep_transcript=True)

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def _ask(self, question: QuestionRecord) -> None:
        if self._speaking == _SPEAKING_FEEDBACK:
            self._pending_question = question
            return
        self._spoken_index = question.index
        self._awaiting_mic = False
        self._speak(question.question_text, _SPEAKING_QUESTION)
        self._set_state(VoiceState.AI_SPEAKING)

    def _after_question_spoken(self) -> None:
        if self._mic_off_pending:
            self._mic_off_pending = False
            self._mic_enabled = False
        if self._mic_enabled:
            self._listen()
        else:
            logger.info("Question spoken; waiting for the microphone to be enabled")
            self._awaiting_mic = True
            self._set_state(VoiceState.IDLE)

    def _listen(self, keep_transcript: bool = False) -> None:
        self._stop_speech()
        if not keep_transcript:
            self._committed = []
            self._partial = ""
        self._awaiting_mic = False
        self._set_state(VoiceState.LISTENING)
        self._recognition_sequence = self.recognition.start()

    def _submit(self, text: str) -> None:
        self._set_state(VoiceState.SUBMITTING)
        generation = self._generation
        self._submit_task = asyncio.get_running_loop().create_task(self._run_submission(text, generation))
        self._stop_recognition()

    async def _run_submission(self, text: str, generation: int) -> None:
        accepted = False
        try:
            accepted = await self.session.submit_answer(text)
        except InterviewError as e:
            logger.error(f"Submitting voice answer failed: {e}")
        finally:
            self._queue.put_nowait(SubmissionFinished(generation, accepted))

    def _show_evaluation(self, evaluation: EvaluationRecord) -> None:
        self._stop_recognition()
        self._set_state(VoiceState.EVALUATION_SHOWN)
        if self.speak_feedback:
            self._speak(f"You scored {evaluation.score:g} out of 10. {evaluation.feedback}", _SPEAKING_FEEDBACK)

    def _complete(self, final: FinalEvaluation) -> None:
        self._stop_recognition()
        self._set_state(VoiceState.COMPLETED)
        if self.speak_feedback:
            self._speak(
                f"The interview is complete. Your overall score is {final.overall_score:g} out of 100. "
                f"Recommendation: {final.recommendation}.",
                _SPEAKING_CLOSING,
            )
        self._completed.set()

    def _speak(self, text: str, what: str) -> None:
        self._stop_recognition()
        self._stop_speech()
        self._speaking = what
        self._speech_sequence = self.synthesis.speak(text, self.speech_options)

    def _stop_speech(self) -> None:
        if self._speech_sequence is not None:
            self.synthesis.stop()
        self._speech_sequence = None
        self._speaking = None
        self._speech_paused = False

    def _stop_recognition(self) -> None:
        if self._recognition_sequence is not None:
            self.recognition.stop()
        self._recognition_sequence = None

    def _halt_devices(self) -> None:
        self.synthesis.stop()
        self.recognition.stop()
        self._speech_sequence = None
        self._speaking = None
        self._speech_paused = False
        self._recognition_sequence = None

    def _clear_turn(self) -> None:
        self._committed = []
        self._partial = ""
        self._spoken_index = 0
        self._pending_question = None
        self._pending_final = None
        self._awaiting_mic = False
        self._mic_off_pending = False
        self._completed.clear()

    def _handle_reset(self, generation: int) -> None:
        logger.info("Session reset; stopping speech devices")
        self._generation = generation
        self._halt_devices()
        if self._submit_task is not None and not self._submit_task.done():
            self._submit_task.cancel()
        self._submit_task = None
        self._clear_turn()
        self._set_state(VoiceState.IDLE)

    def _set_state(self, new_state: VoiceState, force: bool = False) -> None:
        previous = self._state
        if previous == new_state and not force:
            return
        self._state = new_state
        if previous != new_state:
            logger.info(f"Voice: {previous.value} -> {new_state.value}")
        self.session.event_bus.emit(VoiceStateChangedEvent(
            self.session.session_id, time.time(), previous.value, new_state.value, self.mic_enabled,
        ))
