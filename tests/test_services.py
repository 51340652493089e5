import pytest

from interviewer.interview.errors import LLMRequestError, MalformedResponseError
from interviewer.interview.models import EvaluationRecord, QAPair
from interviewer.interview.services import (
    LLMEvaluationService, LLMFinalEvaluationService, LLMQuestionService,
)
from interviewer.interview.testing import MockLLMClient


@pytest.mark.asyncio
async def test_question_service_replays_history_as_conversation():
    client = MockLLMClient([{"question": "How does the event loop schedule callbacks?", "context": "async"}])
    service = LLMQuestionService(client, total_questions=5)
    history = [QAPair("What is a coroutine?", "A resumable function")]

    question = await service.generate("Python", 2, history)

    assert question.question == "How does the event loop schedule callbacks?"
    request = client.request_history[0]
    assert request["schema_name"] == "interview_question"
    messages = request["messages"]
    assert messages[0]["role"] == "system"
    assert "question number 2 of a 5-question interview" in messages[0]["content"]
    assert messages[1:] == [
        {"role": "assistant", "content": "What is a coroutine?"},
        {"role": "user", "content": "A resumable function"},
    ]


@pytest.mark.asyncio
async def test_first_question_has_a_user_turn():
    client = MockLLMClient()
    await LLMQuestionService(client).generate("Python", 1, [])

    messages = client.request_history[0]["messages"]
    assert messages[-1]["role"] == "user"


@pytest.mark.asyncio
async def test_evaluation_service_sends_question_and_answer():
    client = MockLLMClient([{"score": 9, "feedback": "Great", "strengths": [], "areas_for_improvement": []}])

    evaluation = await LLMEvaluationService(client).evaluate("Python", "What is GIL?", "A lock")

    assert evaluation.score == 9
    request = client.request_history[0]
    assert request["schema_name"] == "answer_evaluation"
    assert request["messages"][1]["content"] == "Question: What is GIL?\n\nCandidate's Answer: A lock"


@pytest.mark.asyncio
async def test_evaluation_service_raises_on_schema_mismatch():
    client = MockLLMClient([{"score": "excellent"}])

    with pytest.raises(MalformedResponseError):
        await LLMEvaluationService(client).evaluate("Python", "Q", "A")


@pytest.mark.asyncio
async def test_request_errors_propagate():
    client = MockLLMClient([LLMRequestError("boom", 502)])

    with pytest.raises(LLMRequestError):
        await LLMEvaluationService(client).evaluate("Python", "Q", "A")


@pytest.mark.asyncio
async def test_final_evaluation_summarizes_every_turn():
    client = MockLLMClient()
    history = [QAPair("Q1", "A1"), QAPair("Q2", "A2")]
    evaluations = [EvaluationRecord(1, 6, "ok"), EvaluationRecord(2, 8, "good")]

    final = await LLMFinalEvaluationService(client).summarize("Python", history, evaluations)

    assert final.recommendation == "Consider"
    request = client.request_history[0]
    assert request["schema_name"] == "interview_evaluation"
    summary = request["messages"][1]["content"]
    assert "Question 2: Q2" in summary
    assert "Score 8/10 - good" in summary


@pytest.mark.asyncio
async def test_final_evaluation_rejects_mismatched_lengths():
    client = MockLLMClient()

    with pytest.raises(ValueError):
        await LLMFinalEvaluationService(client).summarize(
            "Python", [QAPair("Q1", "A1")], [],
        )
    assert client.request_history == []
