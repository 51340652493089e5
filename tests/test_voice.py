import pytest
import pytest_asyncio

from interviewer.infrastructure.audio.speech.ports import SpeechOptions, SynthesisEventType
from interviewer.interview.errors import DeviceUnsupportedError
from interviewer.interview.events import EventType
from interviewer.interview.models import SessionState
from interviewer.interview.testing import (
    FakeSpeechRecognizer, FakeSpeechSynthesizer, create_fake_speech_ports, create_mock_interview_setup,
)
from interviewer.interview.voice import VoiceState, VoiceTurnCoordinator


@pytest_asyncio.fixture
async def voice():
    setup = create_mock_interview_setup(total_questions=2, next_question_delay=0.0)
    synthesizer, recognizer = create_fake_speech_ports()
    coordinator = VoiceTurnCoordinator(setup["session"], synthesizer, recognizer,
                                       speech_options=SpeechOptions(volume=0.5, rate=1.2, voice_id="en-GB-Neural2-A"))
    setup.update(synthesizer=synthesizer, recognizer=recognizer, coordinator=coordinator)
    yield setup
    await coordinator.close()
    await setup["session"].aclose()


async def _start_and_hear_question(voice, wait_until):
    coordinator = voice["coordinator"]
    await coordinator.start("Python")
    await wait_until(lambda: coordinator.state == VoiceState.AI_SPEAKING)


async def _listen(voice, wait_until):
    await _start_and_hear_question(voice, wait_until)
    voice["synthesizer"].finish()
    await wait_until(lambda: voice["coordinator"].state == VoiceState.LISTENING)


@pytest.mark.asyncio
async def test_question_is_spoken_with_configured_options(voice, wait_until):
    await _start_and_hear_question(voice, wait_until)

    synthesizer = voice["synthesizer"]
    assert synthesizer.spoken == [voice["session"].current_question.question_text]
    assert synthesizer.options[0].voice_id == "en-GB-Neural2-A"
    assert synthesizer.options[0].volume == 0.5
    assert not voice["recognizer"].is_active


@pytest.mark.asyncio
async def test_end_of_speech_starts_listening_once_and_ended_after_submit_is_ignored(voice, wait_until, drain):
    recognizer = voice["recognizer"]
    coordinator = voice["coordinator"]
    await _listen(voice, wait_until)
    assert recognizer.start_calls == 1

    voice["evaluation_service"].hold()
    recognizer.final("decorators wrap functions")
    await wait_until(lambda: coordinator.transcript == "decorators wrap functions")
    coordinator.stop_listening()
    await wait_until(lambda: coordinator.state == VoiceState.SUBMITTING)
    assert not recognizer.is_active

    recognizer.end()
    await drain()

    assert recognizer.start_calls == 1
    assert coordinator.state == VoiceState.SUBMITTING

    voice["evaluation_service"].release()
    await wait_until(lambda: coordinator.state == VoiceState.EVALUATION_SHOWN)
    assert voice["evaluation_service"].calls[0]["answer"] == "decorators wrap functions"


@pytest.mark.asyncio
async def test_full_voice_interview_never_overlaps_speech_and_listening(wait_until):
    setup = create_mock_interview_setup(total_questions=2, next_question_delay=0.0)
    synthesizer, recognizer = create_fake_speech_ports(auto_end=True)
    coordinator = VoiceTurnCoordinator(setup["session"], synthesizer, recognizer)
    session = setup["session"]
    try:
        await coordinator.start("Python")
        for index, answer in enumerate(["generators are lazy", "the GIL serializes bytecode"], start=1):
            await wait_until(lambda: coordinator.state == VoiceState.LISTENING
                             and session.current_index == index)
            recognizer.final(answer)
            await wait_until(lambda: coordinator.transcript == answer)
            coordinator.stop_listening()

        await coordinator.wait_completed()

        assert session.state == SessionState.COMPLETED
        assert coordinator.state == VoiceState.COMPLETED
        assert [a.text for a in session.history.answers] == [
            "generators are lazy", "the GIL serializes bytecode",
        ]
        assert synthesizer.overlaps == 0
        assert recognizer.overlaps == 0
        assert any(text.startswith("You scored") for text in synthesizer.spoken)
    finally:
        await coordinator.close()


@pytest.mark.asyncio
async def test_mic_on_during_question_interrupts_speech(voice, wait_until, drain):
    synthesizer = voice["synthesizer"]
    recognizer = voice["recognizer"]
    coordinator = voice["coordinator"]
    await _start_and_hear_question(voice, wait_until)
    cancelled = synthesizer.current_sequence

    coordinator.set_mic(True)
    await wait_until(lambda: coordinator.state == VoiceState.LISTENING)

    assert synthesizer.stop_calls == 1
    assert not synthesizer.is_speaking
    assert recognizer.start_calls == 1

    # Late end event from the cancelled utterance
    synthesizer.emit(SynthesisEventType.END, cancelled)
    await drain()
    assert recognizer.start_calls == 1
    assert coordinator.state == VoiceState.LISTENING


@pytest.mark.asyncio
async def test_mic_off_during_question_waits_for_speech_to_end(voice, wait_until, drain):
    synthesizer = voice["synthesizer"]
    recognizer = voice["recognizer"]
    coordinator = voice["coordinator"]
    await _start_and_hear_question(voice, wait_until)

    coordinator.toggle_mic()
    await drain()

    assert coordinator.state == VoiceState.AI_SPEAKING
    assert synthesizer.is_speaking
    assert synthesizer.stop_calls == 0
    assert not coordinator.mic_enabled

    synthesizer.finish()
    await wait_until(lambda: coordinator.state == VoiceState.IDLE)
    assert recognizer.start_calls == 0
    assert coordinator.awaiting_mic

    coordinator.toggle_mic()
    await wait_until(lambda: coordinator.state == VoiceState.LISTENING)
    assert recognizer.start_calls == 1


@pytest.mark.asyncio
async def test_stop_with_nothing_heard_keeps_listening(voice, wait_until, drain):
    coordinator = voice["coordinator"]
    await _listen(voice, wait_until)

    coordinator.stop_listening()
    await drain()

    assert coordinator.state == VoiceState.LISTENING
    assert voice["evaluation_service"].call_count == 0


@pytest.mark.asyncio
async def test_transcript_joins_final_results_and_current_partial(voice, wait_until):
    recognizer = voice["recognizer"]
    coordinator = voice["coordinator"]
    transcripts = []
    voice["event_bus"].subscribe(EventType.TRANSCRIPT_UPDATED, lambda e: transcripts.append(e.data["transcript"]))
    await _listen(voice, wait_until)

    recognizer.final("list comprehensions")
    recognizer.partial("build lists")
    await wait_until(lambda: coordinator.transcript == "list comprehensions build lists")
    coordinator.stop_listening()
    await wait_until(lambda: voice["evaluation_service"].call_count == 1)

    assert voice["evaluation_service"].calls[0]["answer"] == "list comprehensions build lists"
    assert transcripts[-1] == "list comprehensions build lists"


@pytest.mark.asyncio
async def test_recognition_ended_while_listening_restarts_and_keeps_transcript(voice, wait_until):
    recognizer = voice["recognizer"]
    coordinator = voice["coordinator"]
    await _listen(voice, wait_until)

    recognizer.partial("context managers")
    await wait_until(lambda: coordinator.transcript == "context managers")
    recognizer.end()
    await wait_until(lambda: recognizer.start_calls == 2)

    assert coordinator.state == VoiceState.LISTENING
    assert coordinator.transcript == "context managers"


@pytest.mark.asyncio
async def test_permission_error_disables_microphone(voice, wait_until, drain):
    recognizer = voice["recognizer"]
    coordinator = voice["coordinator"]
    await _listen(voice, wait_until)

    recognizer.error("network")
    await drain()
    assert coordinator.state == VoiceState.LISTENING

    recognizer.error("not-allowed")
    await wait_until(lambda: coordinator.state == VoiceState.IDLE)

    assert not coordinator.mic_enabled
    assert not recognizer.is_active
    assert coordinator.awaiting_mic


@pytest.mark.asyncio
async def test_next_question_waits_for_feedback_to_finish(voice, wait_until, drain):
    synthesizer = voice["synthesizer"]
    recognizer = voice["recognizer"]
    coordinator = voice["coordinator"]
    session = voice["session"]
    await _listen(voice, wait_until)

    recognizer.final("dicts keep insertion order")
    await wait_until(lambda: coordinator.transcript != "")
    coordinator.stop_listening()
    await wait_until(lambda: coordinator.state == VoiceState.EVALUATION_SHOWN)
    assert synthesizer.spoken[-1].startswith("You scored 7 out of 10")

    await wait_until(lambda: session.state == SessionState.AWAITING_ANSWER and session.current_index == 2)
    await drain()
    assert coordinator.state == VoiceState.EVALUATION_SHOWN
    assert len(synthesizer.spoken) == 2

    synthesizer.finish()
    await wait_until(lambda: coordinator.state == VoiceState.AI_SPEAKING)
    assert synthesizer.spoken[-1] == session.current_question.question_text


@pytest.mark.asyncio
async def test_paused_question_holds_off_listening_until_resumed(voice, wait_until):
    synthesizer = voice["synthesizer"]
    recognizer = voice["recognizer"]
    coordinator = voice["coordinator"]
    await _start_and_hear_question(voice, wait_until)

    coordinator.pause_speech()
    await wait_until(lambda: coordinator.speech_paused)

    assert synthesizer.paused
    assert synthesizer.is_speaking
    assert coordinator.state == VoiceState.AI_SPEAKING
    assert recognizer.start_calls == 0

    coordinator.resume_speech()
    await wait_until(lambda: not coordinator.speech_paused)
    assert not synthesizer.paused
    assert recognizer.start_calls == 0

    synthesizer.finish()
    await wait_until(lambda: coordinator.state == VoiceState.LISTENING)
    assert recognizer.start_calls == 1


@pytest.mark.asyncio
async def test_mic_on_while_paused_stops_speech_before_listening(voice, wait_until):
    synthesizer = voice["synthesizer"]
    coordinator = voice["coordinator"]
    await _start_and_hear_question(voice, wait_until)
    coordinator.toggle_speech_pause()
    await wait_until(lambda: coordinator.speech_paused)

    coordinator.set_mic(True)
    await wait_until(lambda: coordinator.state == VoiceState.LISTENING)

    assert not coordinator.speech_paused
    assert not synthesizer.paused
    assert not synthesizer.is_speaking


@pytest.mark.asyncio
async def test_pause_while_listening_is_ignored(voice, wait_until, drain):
    coordinator = voice["coordinator"]
    await _listen(voice, wait_until)

    coordinator.pause_speech()
    await drain()

    assert not coordinator.speech_paused
    assert voice["synthesizer"].pause_calls == 0
    assert coordinator.state == VoiceState.LISTENING


@pytest.mark.asyncio
async def test_synthesis_error_ends_the_question(voice, wait_until):
    await _start_and_hear_question(voice, wait_until)

    voice["synthesizer"].fail("audio device busy")

    await wait_until(lambda: voice["coordinator"].state == VoiceState.LISTENING)
    assert voice["recognizer"].start_calls == 1


@pytest.mark.asyncio
async def test_reset_stops_both_devices_immediately(voice, wait_until):
    coordinator = voice["coordinator"]
    recognizer = voice["recognizer"]
    await _listen(voice, wait_until)

    voice["session"].reset_interview()

    assert not recognizer.is_active
    assert not voice["synthesizer"].is_speaking
    assert coordinator.state == VoiceState.IDLE

    voice["session"].reset_interview()
    assert coordinator.state == VoiceState.IDLE


@pytest.mark.asyncio
async def test_unsupported_microphone_raises_before_starting():
    setup = create_mock_interview_setup()
    coordinator = VoiceTurnCoordinator(setup["session"], FakeSpeechSynthesizer(),
                                       FakeSpeechRecognizer(supported=False))

    with pytest.raises(DeviceUnsupportedError):
        await coordinator.start("Python")

    assert setup["session"].state == SessionState.NOT_STARTED
    assert setup["question_service"].call_count == 0
