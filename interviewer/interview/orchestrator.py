"""
Console interview orchestrator.

Wires the LLM services, the interview session and (in voice mode) the speech
devices together and runs one interview in the terminal.
"""
import asyncio
import logging
from typing import Optional, Dict, Any, Callable

from .errors import DeviceUnsupportedError
from .events import (
    InterviewEventBus, EventLogger, InterviewMetrics, EventType, InterviewEvent,
)
from .models import Mode, SessionState, FinalEvaluation
from .schemas import answer_score_band, overall_score_band
from .services import (
    LLMQuestionService, LLMEvaluationService, LLMFinalEvaluationService,
    QuestionService, EvaluationService, FinalEvaluationService,
)
from .session import InterviewSession
from .voice import VoiceTurnCoordinator, VoiceState
from ..config import Config, TOTAL_QUESTIONS, NEXT_QUESTION_DELAY_SECONDS, LOG_FILE, LOG_LEVEL
from ..infrastructure.audio.speech import (
    SpeechSynthesisPort, SpeechRecognitionPort, SpeechOptions,
    GoogleSpeechSynthesizer, GoogleSpeechRecognizer,
)
from ..infrastructure.llm import VertexRestClient, OpenRouterClient
from ..utils import setup_logging

logger = logging.getLogger("orchestrator")

_BAND_ICONS = {"good": "🟢", "fair": "🟡", "poor": "🔴"}


def create_llm_client(config: Config):
    """Build the LLM client for the configured provider."""
    if config.llm_provider == "vertex":
        return VertexRestClient(
            project=config.google_cloud_project,
            location=config.vertex_location,
            model=config.model_name,
            credentials_json=config.google_application_credentials,
        )
    return OpenRouterClient(api_key=config.openrouter_api_key, model=config.model_name)


class InterviewOrchestrator:
    """
    Runs an interview in the terminal.

    Text mode reads answers from stdin. Voice mode hands turn taking to a
    VoiceTurnCoordinator and only reads short commands from stdin.
    """

    def __init__(self,
                 question_service: QuestionService,
                 evaluation_service: EvaluationService,
                 final_evaluation_service: FinalEvaluationService,
                 total_questions: int = TOTAL_QUESTIONS,
                 next_question_delay: float = NEXT_QUESTION_DELAY_SECONDS,
                 synthesis: Optional[SpeechSynthesisPort] = None,
                 recognition: Optional[SpeechRecognitionPort] = None,
                 speech_options: Optional[SpeechOptions] = None,
                 voice_fallback_to_text: bool = False,
                 log_file: Optional[str] = LOG_FILE,
                 log_level: str = LOG_LEVEL,
                 input_func: Callable[[str], str] = input,
                 llm_client=None):

        self.log_file = log_file
        if log_file:
            setup_logging(log_file, log_level)

        # Initialize event system
        self.event_bus = InterviewEventBus()
        self.event_logger = EventLogger()
        self.metrics = InterviewMetrics()

        # Subscribe to events
        self.event_bus.subscribe_all(self.event_logger.handle_event)
        self.event_bus.subscribe_all(self.metrics.handle_event)
        self.event_bus.subscribe(EventType.QUESTION_READY, self._print_question)
        self.event_bus.subscribe(EventType.EVALUATION_READY, self._print_evaluation)
        self.event_bus.subscribe(EventType.ERROR_OCCURRED, self._print_error)
        self.event_bus.subscribe(EventType.VOICE_STATE_CHANGED, self._print_voice_state)
        self.event_bus.subscribe(EventType.TRANSCRIPT_UPDATED, self._print_transcript)
        self.event_bus.subscribe(EventType.STATE_CHANGED, self._on_state_changed)

        self.session = InterviewSession(
            question_service,
            evaluation_service,
            final_evaluation_service,
            total_questions=total_questions,
            next_question_delay=next_question_delay,
            event_bus=self.event_bus,
        )
        self.synthesis = synthesis
        self.recognition = recognition
        self.speech_options = speech_options or SpeechOptions()
        self.voice_fallback_to_text = voice_fallback_to_text
        self.input_func = input_func
        self.llm_client = llm_client

        self._state_changed: Optional[asyncio.Event] = None

        logger.info("Interview orchestrator initialized")

    @classmethod
    def from_config(cls, config: Config, mode: Mode = Mode.TEXT, **kwargs) -> "InterviewOrchestrator":
        """Build an orchestrator with LLM services and, for voice mode, Google speech devices."""
        llm_client = create_llm_client(config)
        speech_options = SpeechOptions(
            volume=config.speaker_volume,
            rate=config.tts_rate,
            voice_id=config.tts_voice,
        )
        synthesis = recognition = None
        if Mode(mode) == Mode.VOICE:
            synthesis = GoogleSpeechSynthesizer(speech_options, language_code=config.language_code)
            recognition = GoogleSpeechRecognizer(language_code=config.language_code)

        return cls(
            LLMQuestionService(llm_client, total_questions=config.total_questions),
            LLMEvaluationService(llm_client),
            LLMFinalEvaluationService(llm_client),
            total_questions=config.total_questions,
            next_question_delay=config.next_question_delay,
            synthesis=synthesis,
            recognition=recognition,
            speech_options=speech_options,
            voice_fallback_to_text=config.voice_fallback_to_text,
            log_file=config.log_file,
            log_level=config.log_level,
            llm_client=llm_client,
            **kwargs,
        )

    async def run(self, topic: str, mode: Mode = Mode.TEXT) -> Optional[FinalEvaluation]:
        """
        Run one interview to completion.

        Returns:
            The final evaluation, or None if the interview was abandoned
        """
        mode = Mode(mode)
        self._state_changed = asyncio.Event()

        print(f"\n🎙️  Starting {mode.value} interview on {topic} - {self.session.total_questions} questions")
        if self.log_file:
            print(f"📝 Detailed logs: {self.log_file}")
        print("=" * 50)

        try:
            if mode == Mode.VOICE:
                final = await self._run_voice(topic)
            else:
                final = await self._run_text(topic)
        finally:
            if self.session.state != SessionState.COMPLETED:
                await self.session.aclose()
            if self.llm_client is not None and hasattr(self.llm_client, "aclose"):
                await self.llm_client.aclose()

        if final is not None:
            self._display_results(final)
        return final

    # ------------------------------------------------------------------
    # Text mode
    # ------------------------------------------------------------------

    async def _run_text(self, topic: str) -> Optional[FinalEvaluation]:
        await self.session.start_interview(topic, Mode.TEXT)

        while True:
            state = self.session.state
            if state == SessionState.COMPLETED:
                return self.session.final_evaluation
            if state == SessionState.FAILED:
                if not await self._offer_retry():
                    return None
                continue
            if state == SessionState.AWAITING_ANSWER:
                answer = await self._read_line("💬 Your answer: ")
                if answer is None or answer.strip().lower() in ("/q", "/quit"):
                    print("👋 Interview abandoned")
                    return None
                if not await self.session.submit_answer(answer):
                    print("⚠️  Please type an answer first")
                continue
            await self._wait_for_state_change(state)

    # ------------------------------------------------------------------
    # Voice mode
    # ------------------------------------------------------------------

    async def _run_voice(self, topic: str) -> Optional[FinalEvaluation]:
        if self.synthesis is None or self.recognition is None:
            raise DeviceUnsupportedError("Voice mode", "no speech devices configured")

        coordinator = VoiceTurnCoordinator(self.session, self.synthesis, self.recognition,
                                           self.speech_options)
        try:
            coordinator.check_supported()
        except DeviceUnsupportedError as e:
            print(f"❌ {e}")
            if self.voice_fallback_to_text:
                print("📝 Falling back to text mode")
                return await self._run_text(topic)
            return None

        print("🎤 Controls: Enter = finish answer, m = toggle microphone, p = pause/resume speech, q = quit")
        pending_read: Optional[asyncio.Task] = None
        try:
            await coordinator.start(topic)
            while True:
                state = self.session.state
                if state == SessionState.COMPLETED:
                    break
                if state == SessionState.FAILED:
                    # A read already waiting on stdin answers the retry prompt
                    retry_ok = await self._offer_retry(pending_read)
                    pending_read = None
                    if not retry_ok:
                        return None
                    continue

                if pending_read is None:
                    pending_read = asyncio.get_running_loop().create_task(self._read_line(""))
                change = asyncio.get_running_loop().create_task(self._wait_for_state_change(state))
                done, _ = await asyncio.wait({pending_read, change}, return_when=asyncio.FIRST_COMPLETED)
                if change not in done:
                    change.cancel()
                if pending_read not in done:
                    continue

                command = pending_read.result()
                pending_read = None
                if command is None or command.strip().lower() == "q":
                    print("👋 Interview abandoned")
                    return None
                if command.strip().lower() == "m":
                    coordinator.toggle_mic()
                elif command.strip().lower() == "p":
                    coordinator.toggle_speech_pause()
                else:
                    coordinator.stop_listening()

            await coordinator.wait_completed()
            if pending_read is not None:
                print("⏎  Press Enter to finish")
                await pending_read
            return self.session.final_evaluation
        finally:
            await coordinator.close()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _read_line(self, prompt: str) -> Optional[str]:
        try:
            return await asyncio.to_thread(self.input_func, prompt)
        except EOFError:
            return None

    async def _wait_for_state_change(self, state: SessionState) -> None:
        self._state_changed.clear()
        if self.session.state != state:
            return
        await self._state_changed.wait()

    async def _offer_retry(self, pending_read: Optional[asyncio.Task] = None) -> bool:
        print(f"\n❌ {self.session.error}")
        if pending_read is not None:
            print("🔁 Retry? [Y/n] ", end="", flush=True)
            reply = await pending_read
        else:
            reply = await self._read_line("🔁 Retry? [Y/n] ")
        if reply is None or reply.strip().lower() in ("n", "no"):
            return False
        await self.session.retry()
        return True

    def _on_state_changed(self, event: InterviewEvent) -> None:
        if self._state_changed is not None:
            self._state_changed.set()

    def _print_question(self, event: InterviewEvent) -> None:
        marker = " (fallback)" if event.data["is_fallback"] else ""
        print(f"\n❓ Question {event.data['index']}/{self.session.total_questions}{marker}:")
        print(f"   {event.data['question']}")

    def _print_evaluation(self, event: InterviewEvent) -> None:
        evaluation = self.session.current_evaluation
        score = event.data["score"]
        print(f"{_BAND_ICONS[answer_score_band(score)]} Score: {score:g}/10")
        print(f"💭 {event.data['feedback']}")
        if evaluation is not None:
            for strength in evaluation.strengths:
                print(f"   ✅ {strength}")
            for improvement in evaluation.improvements:
                print(f"   📈 {improvement}")

    def _print_error(self, event: InterviewEvent) -> None:
        if event.data["component"] == "voice":
            print(f"⚠️  Microphone problem ({event.data['error_message']}); type m + Enter to try again")
        else:
            logger.warning(f"{event.data['component']}: {event.data['error_message']}")

    def _print_voice_state(self, event: InterviewEvent) -> None:
        if event.data["state"] == event.data["previous_state"]:
            print(f"🎤 Microphone {'on' if event.data['mic_enabled'] else 'off'}")
            return
        state = VoiceState(event.data["state"])
        if state == VoiceState.AI_SPEAKING:
            print("🔊 Speaking...")
        elif state == VoiceState.LISTENING:
            print("🎧 Listening (press Enter when you are done)...")
        elif state == VoiceState.SUBMITTING:
            print("🔍 Evaluating your answer...")
        elif state == VoiceState.IDLE and not event.data["mic_enabled"]:
            print("🎤 Microphone is off; type m + Enter to answer")

    def _print_transcript(self, event: InterviewEvent) -> None:
        if event.data["is_final"]:
            print(f"💬 \"{event.data['transcript']}\"")

    def _display_results(self, final: FinalEvaluation):
        """Display final interview results."""
        print("\n" + "=" * 50)
        print("🎯 INTERVIEW COMPLETE")
        print("=" * 50)
        icon = _BAND_ICONS[overall_score_band(final.overall_score)]
        print(f"{icon} Overall Score: {final.overall_score:g}/100")
        print(f"📊 Recommendation: {final.recommendation}")
        print(f"📝 Summary: {final.summary}")
        if final.key_strengths:
            print("💪 Key strengths:")
            for strength in final.key_strengths:
                print(f"   ✅ {strength}")
        if final.areas_for_improvement:
            print("📈 Areas for improvement:")
            for area in final.areas_for_improvement:
                print(f"   • {area}")
        if final.is_fallback:
            print("⚠️  The evaluation could not be read in full; scores are provisional")

        print("\n📋 Answers:")
        for turn in self.session.history.turns:
            band = _BAND_ICONS[answer_score_band(turn.evaluation.score)]
            print(f"   {band} Q{turn.index}: {turn.evaluation.score:g}/10 - {turn.question.question_text}")

        if self.log_file:
            print(f"\n📁 Full details logged to: {self.log_file}")
        print(f"📈 Session metrics: {self.get_metrics()}")

    def get_metrics(self) -> Dict[str, int]:
        """Get current interview metrics."""
        return self.metrics.get_metrics()

    def reset_metrics(self):
        """Reset interview metrics."""
        self.metrics.reset()
