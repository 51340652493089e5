"""
Service classes for the interview system.

Each service is a single awaited call against an LLM client exposing
``generate_json(messages, schema_name, schema)``. Services validate the reply
and return a typed record; they never build fallback records themselves.
"""
import logging
from typing import Any, Dict, List, Protocol, Sequence

from .models import AnswerEvaluation, EvaluationRecord, FinalEvaluation, GeneratedQuestion, QAPair
from .prompts import question_messages, evaluation_messages, final_evaluation_messages
from .schemas import (
    QUESTION_SCHEMA, EVALUATION_SCHEMA, FINAL_EVALUATION_SCHEMA,
    parse_question, parse_evaluation, parse_final_evaluation,
)
from ..config import TOTAL_QUESTIONS

logger = logging.getLogger("services")


class JSONLLMClient(Protocol):
    async def generate_json(self, messages: List[Dict[str, str]], schema_name: str,
                            schema: Dict[str, Any]) -> Any:
        ...


class QuestionService(Protocol):
    async def generate(self, topic: str, question_number: int,
                       history: Sequence[QAPair]) -> GeneratedQuestion:
        ...


class EvaluationService(Protocol):
    async def evaluate(self, topic: str, question: str, answer: str) -> AnswerEvaluation:
        ...


class FinalEvaluationService(Protocol):
    async def summarize(self, topic: str, history: Sequence[QAPair],
                        evaluations: Sequence[EvaluationRecord]) -> FinalEvaluation:
        ...


class LLMQuestionService:
    """Generates the next interview question."""

    def __init__(self, llm_client: JSONLLMClient, total_questions: int = TOTAL_QUESTIONS):
        self.llm_client = llm_client
        self.total_questions = total_questions

    async def generate(self, topic: str, question_number: int,
                       history: Sequence[QAPair]) -> GeneratedQuestion:
        """
        Ask the model for question number ``question_number``.

        Args:
            topic: Interview topic
            question_number: 1-based index of the question to generate
            history: Prior question/answer pairs, oldest first

        Returns:
            Validated question

        Raises:
            LLMRequestError: The request failed
            MalformedResponseError: The reply did not match the question schema
        """
        messages = question_messages(topic, question_number, self.total_questions, history)
        payload = await self.llm_client.generate_json(messages, "interview_question", QUESTION_SCHEMA)
        question = parse_question(payload)
        logger.info(f"Generated question {question_number}: {question.question}")
        return question


class LLMEvaluationService:
    """Scores a single answer on a 1-10 scale."""

    def __init__(self, llm_client: JSONLLMClient):
        self.llm_client = llm_client

    async def evaluate(self, topic: str, question: str, answer: str) -> AnswerEvaluation:
        messages = evaluation_messages(topic, question, answer)
        payload = await self.llm_client.generate_json(messages, "answer_evaluation", EVALUATION_SCHEMA)
        evaluation = parse_evaluation(payload)
        logger.info(f"Answer scored {evaluation.score:g}/10")
        return evaluation


class LLMFinalEvaluationService:
    """Summarizes the whole interview on a 1-100 scale."""

    def __init__(self, llm_client: JSONLLMClient):
        self.llm_client = llm_client

    async def summarize(self, topic: str, history: Sequence[QAPair],
                        evaluations: Sequence[EvaluationRecord]) -> FinalEvaluation:
        if len(history) != len(evaluations):
            raise ValueError(
                f"History has {len(history)} answers but {len(evaluations)} evaluations"
            )
        messages = final_evaluation_messages(topic, history, evaluations)
        payload = await self.llm_client.generate_json(messages, "interview_evaluation",
                                                      FINAL_EVALUATION_SCHEMA)
        final = parse_final_evaluation(payload)
        logger.info(f"Final evaluation: {final.overall_score:g}/100, {final.recommendation}")
        return final
