import pytest

from interviewer.interview.errors import LLMRequestError
from interviewer.interview.models import Mode, SessionState
from interviewer.interview.orchestrator import InterviewOrchestrator
from interviewer.interview.testing import (
    FakeSpeechRecognizer, FakeSpeechSynthesizer, MockEvaluationService, MockFinalEvaluationService,
    MockQuestionService,
)


def scripted_input(lines):
    """input() replacement that replays ``lines`` and then hits end of file."""
    remaining = list(lines)
    prompts = []

    def _input(prompt=""):
        prompts.append(prompt)
        if not remaining:
            raise EOFError
        return remaining.pop(0)

    _input.prompts = prompts
    return _input


def make_orchestrator(lines, question_responses=None, **kwargs):
    return InterviewOrchestrator(
        MockQuestionService(question_responses),
        MockEvaluationService(),
        MockFinalEvaluationService(),
        total_questions=2,
        next_question_delay=0.0,
        log_file=None,
        input_func=scripted_input(lines),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_text_interview_runs_to_completion(capsys):
    orchestrator = make_orchestrator(["a generator yields values", "asyncio is cooperative"])

    final = await orchestrator.run("Python", Mode.TEXT)

    assert final is not None
    assert final.overall_score == 75
    assert orchestrator.session.state == SessionState.COMPLETED
    assert orchestrator.get_metrics()["answers_submitted"] == 2
    out = capsys.readouterr().out
    assert "Question 1/2" in out
    assert "Score: 7/10" in out
    assert "INTERVIEW COMPLETE" in out
    assert "Recommendation: Consider" in out


@pytest.mark.asyncio
async def test_blank_answer_is_asked_again(capsys):
    orchestrator = make_orchestrator(["   ", "first", "second"])

    final = await orchestrator.run("Python", Mode.TEXT)

    assert final is not None
    assert "Please type an answer first" in capsys.readouterr().out
    assert [a.text for a in orchestrator.session.history.answers] == ["first", "second"]


@pytest.mark.asyncio
async def test_end_of_input_abandons_interview(capsys):
    orchestrator = make_orchestrator(["only one answer"])

    final = await orchestrator.run("Python", Mode.TEXT)

    assert final is None
    assert "Interview abandoned" in capsys.readouterr().out
    assert orchestrator.session.state == SessionState.NOT_STARTED
    assert len(orchestrator.session.history) == 0


@pytest.mark.asyncio
async def test_failed_question_can_be_retried(capsys):
    orchestrator = make_orchestrator(["y", "one", "two"], question_responses=[LLMRequestError("timeout")])

    final = await orchestrator.run("Python", Mode.TEXT)

    assert final is not None
    out = capsys.readouterr().out
    assert "timeout" in out
    assert orchestrator.get_metrics()["errors_occurred"] >= 1


@pytest.mark.asyncio
async def test_declining_retry_stops(capsys):
    orchestrator = make_orchestrator(["n"], question_responses=[LLMRequestError("timeout")])

    final = await orchestrator.run("Python", Mode.TEXT)

    assert final is None
    assert orchestrator.session.state == SessionState.NOT_STARTED
    assert orchestrator.get_metrics()["interviews_reset"] == 1


@pytest.mark.asyncio
async def test_voice_without_microphone_falls_back_to_text_when_enabled(capsys):
    orchestrator = make_orchestrator(
        ["one", "two"],
        synthesis=FakeSpeechSynthesizer(),
        recognition=FakeSpeechRecognizer(supported=False),
        voice_fallback_to_text=True,
    )

    final = await orchestrator.run("Python", Mode.VOICE)

    assert final is not None
    out = capsys.readouterr().out
    assert "not supported" in out
    assert "Falling back to text mode" in out


@pytest.mark.asyncio
async def test_voice_without_microphone_stops_by_default(capsys):
    orchestrator = make_orchestrator(
        [],
        synthesis=FakeSpeechSynthesizer(),
        recognition=FakeSpeechRecognizer(supported=False),
    )

    final = await orchestrator.run("Python", Mode.VOICE)

    assert final is None
    assert orchestrator.session.state == SessionState.NOT_STARTED
    assert "Falling back" not in capsys.readouterr().out


@pytest.mark.asyncio
async def test_voice_console_pauses_question_speech(capsys):
    synthesis = FakeSpeechSynthesizer()
    recognition = FakeSpeechRecognizer()
    orchestrator = make_orchestrator(["p", "q"], synthesis=synthesis, recognition=recognition)

    final = await orchestrator.run("Python", Mode.VOICE)

    assert final is None
    assert synthesis.pause_calls == 1
    assert recognition.start_calls == 0
    assert "p = pause/resume speech" in capsys.readouterr().out
