"""
Response schemas for the three LLM-backed services.

Each service response goes through a strict validation step that either yields
a well-typed record or raises MalformedResponseError. Callers route the error
through the fallback builders at the bottom of this module.
"""
import json
import re
from typing import Any, Dict, List, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import MalformedResponseError
from .models import AnswerEvaluation, FinalEvaluation, GeneratedQuestion
from ..config import (
    EVALUATION_SCORE_MIN, EVALUATION_SCORE_MAX,
    OVERALL_SCORE_MIN, OVERALL_SCORE_MAX,
    FALLBACK_EVALUATION_SCORE, FALLBACK_OVERALL_SCORE, FALLBACK_RECOMMENDATION,
)


class _StrictModel(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)


class QuestionPayload(_StrictModel):
    question: str = Field(min_length=1)
    context: str = ""


class EvaluationPayload(_StrictModel):
    score: float = Field(ge=EVALUATION_SCORE_MIN, le=EVALUATION_SCORE_MAX)
    feedback: str
    strengths: List[str] = Field(default_factory=list)
    areas_for_improvement: List[str] = Field(default_factory=list)

    @field_validator("strengths", "areas_for_improvement")
    @classmethod
    def _drop_blank_items(cls, items: List[str]) -> List[str]:
        return [item.strip() for item in items if item and item.strip()]


class FinalEvaluationPayload(_StrictModel):
    overall_score: float = Field(ge=OVERALL_SCORE_MIN, le=OVERALL_SCORE_MAX)
    summary: str
    key_strengths: List[str] = Field(default_factory=list)
    areas_for_improvement: List[str] = Field(default_factory=list)
    recommendation: str = Field(min_length=1)


# JSON schemas sent to the model so it answers in the expected shape
QUESTION_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "question": {
            "type": "string",
            "description": "The interview question to ask the candidate",
        },
        "context": {
            "type": "string",
            "description": "Additional context or information about why this question is relevant",
        },
    },
    "required": ["question", "context"],
    "additionalProperties": False,
}

EVALUATION_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "score": {
            "type": "number",
            "description": "Score from 1-10 where 10 is excellent. Give scores of 1-2 for completely unrelated answers.",
        },
        "feedback": {
            "type": "string",
            "description": "Constructive feedback on the answer. If the answer is unrelated, clearly state this fact.",
        },
        "strengths": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Key strengths of the answer. For completely unrelated answers, this may be empty or minimal.",
        },
        "areas_for_improvement": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Areas where the answer could be improved. For unrelated answers, include "
                           "\"Answer is unrelated to the question\" as the first item.",
        },
    },
    "required": ["score", "feedback", "strengths", "areas_for_improvement"],
    "additionalProperties": False,
}

FINAL_EVALUATION_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "overall_score": {
            "type": "number",
            "description": "Overall score from 1-100 where 100 is excellent. If answers were unrelated "
                           "to questions, score should not exceed 30.",
        },
        "summary": {
            "type": "string",
            "description": "Summary of the candidate's performance",
        },
        "key_strengths": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Key strengths demonstrated in the interview",
        },
        "areas_for_improvement": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Areas where the candidate could improve",
        },
        "recommendation": {
            "type": "string",
            "description": "Overall recommendation (e.g., \"Hire\", \"Consider\", \"Reject\"). "
                           "Use \"Reject\" for candidates with mostly unrelated answers.",
        },
    },
    "required": ["overall_score", "summary", "key_strengths", "areas_for_improvement", "recommendation"],
    "additionalProperties": False,
}


def _validate(model, payload: Any, what: str):
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError:
            raise MalformedResponseError(f"{what} is not JSON", raw_text=payload)
    if not isinstance(payload, Mapping):
        raise MalformedResponseError(
            f"{what} is not a JSON object",
            raw_text=json.dumps(payload, ensure_ascii=False, default=str),
            is_json=True,
        )
    try:
        return model.model_validate(dict(payload))
    except ValidationError as e:
        raise MalformedResponseError(
            f"{what} failed validation: {e.error_count()} error(s)",
            raw_text=json.dumps(payload, ensure_ascii=False, default=str),
            is_json=True,
        )


def parse_question(payload: Any) -> GeneratedQuestion:
    """Validate a question-service response."""
    data = _validate(QuestionPayload, payload, "Question response")
    return GeneratedQuestion(question=data.question, context=data.context)


def parse_evaluation(payload: Any) -> AnswerEvaluation:
    """Validate an evaluation-service response."""
    data = _validate(EvaluationPayload, payload, "Evaluation response")
    return AnswerEvaluation(
        score=data.score,
        feedback=data.feedback,
        strengths=list(data.strengths),
        areas_for_improvement=list(data.areas_for_improvement),
    )


def parse_final_evaluation(payload: Any) -> FinalEvaluation:
    """Validate a final-evaluation-service response."""
    data = _validate(FinalEvaluationPayload, payload, "Final evaluation response")
    return FinalEvaluation(
        overall_score=data.overall_score,
        summary=data.summary,
        key_strengths=list(data.key_strengths),
        areas_for_improvement=list(data.areas_for_improvement),
        recommendation=data.recommendation,
    )


# =============================================================================
# Fallback records for malformed responses
# =============================================================================

_QUESTION_PREAMBLE = re.compile(r"^\s*here(?:'|’)s your (?:\w+ )?question:?\s*", re.IGNORECASE)
_QUESTION_LABEL = re.compile(r"^\s*(?:\*\*)?question\s*(?:\d+\s*:?|:)\s*(?:\*\*)?\s*", re.IGNORECASE)


def strip_question_preamble(text: str) -> str:
    """Remove a leading "Here's your first question:" / "**Question 2:**" label."""
    text = _QUESTION_PREAMBLE.sub("", text or "", count=1)
    return _QUESTION_LABEL.sub("", text, count=1).strip()


def fallback_question(raw_text: str, default_question: str, is_json: bool = False) -> GeneratedQuestion:
    """Question used when the service reply could not be parsed.

    Unstructured replies usually still contain the question, so non-JSON raw
    text is used with any "Question N:" preamble stripped. JSON of the wrong
    shape is never read out as a question.
    """
    text = "" if is_json else strip_question_preamble(raw_text)
    if not text:
        return GeneratedQuestion(question=default_question, context="Fallback question", is_fallback=True)
    return GeneratedQuestion(question=text, context="Generated from unstructured response", is_fallback=True)


def fallback_evaluation(raw_text: str = "") -> AnswerEvaluation:
    """Low score evaluation used when the scoring reply could not be parsed."""
    feedback = "The evaluation could not be read, so this answer received a provisional score."
    if raw_text and raw_text.strip():
        feedback = f"{feedback}\n\n{raw_text.strip()}"
    return AnswerEvaluation(
        score=FALLBACK_EVALUATION_SCORE,
        feedback=feedback,
        strengths=["Unable to identify strengths due to response format issue"],
        areas_for_improvement=["Answer may be unrelated to the question", "Response format issue - please retry"],
        is_fallback=True,
    )


def fallback_final_evaluation(raw_text: str = "") -> FinalEvaluation:
    """Provisional final evaluation used when the summary reply could not be parsed."""
    summary = "The final evaluation could not be read, so this interview received a provisional score."
    if raw_text and raw_text.strip():
        summary = f"{summary}\n\n{raw_text.strip()}"
    return FinalEvaluation(
        overall_score=FALLBACK_OVERALL_SCORE,
        summary=summary,
        key_strengths=["Unable to identify strengths due to response format issue"],
        areas_for_improvement=["Answers may be unrelated to the questions", "Response format issue - please retry"],
        recommendation=FALLBACK_RECOMMENDATION,
        is_fallback=True,
    )


def answer_score_band(score: float) -> str:
    """Band for a 1-10 answer score: "good", "fair" or "poor"."""
    if score >= 7:
        return "good"
    if score >= 5:
        return "fair"
    return "poor"


def overall_score_band(score: float) -> str:
    """Band for a 1-100 overall score: "good", "fair" or "poor"."""
    if score >= 80:
        return "good"
    if score >= 60:
        return "fair"
    return "poor"
