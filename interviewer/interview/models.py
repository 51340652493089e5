"""
Data models for the interview system.
"""
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Optional, List, Dict, Any


class Mode(str, Enum):
    """How the candidate answers."""
    TEXT = "text"
    VOICE = "voice"


class SessionState(str, Enum):
    """Lifecycle states of an interview session."""
    NOT_STARTED = "not_started"
    AWAITING_QUESTION = "awaiting_question"
    AWAITING_ANSWER = "awaiting_answer"
    EVALUATING = "evaluating"
    SHOWING_EVALUATION = "showing_evaluation"
    GENERATING_FINAL = "generating_final"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class QuestionRecord:
    """A generated question for one turn."""
    index: int
    question_text: str
    context: str = ""
    is_fallback: bool = False


@dataclass(frozen=True)
class AnswerRecord:
    """The candidate's answer to the question with the same index."""
    index: int
    text: str


@dataclass(frozen=True)
class EvaluationRecord:
    """Score and feedback for one answered turn."""
    index: int
    score: float
    feedback: str
    strengths: List[str] = field(default_factory=list)
    improvements: List[str] = field(default_factory=list)
    is_fallback: bool = False


@dataclass(frozen=True)
class FinalEvaluation:
    """Aggregate evaluation of the whole interview."""
    overall_score: float
    summary: str
    key_strengths: List[str] = field(default_factory=list)
    areas_for_improvement: List[str] = field(default_factory=list)
    recommendation: str = ""
    is_fallback: bool = False


@dataclass(frozen=True)
class GeneratedQuestion:
    """Question service output before it is bound to a turn index."""
    question: str
    context: str = ""
    is_fallback: bool = False


@dataclass(frozen=True)
class AnswerEvaluation:
    """Evaluation service output before it is bound to a turn index."""
    score: float
    feedback: str
    strengths: List[str] = field(default_factory=list)
    areas_for_improvement: List[str] = field(default_factory=list)
    is_fallback: bool = False


@dataclass(frozen=True)
class QAPair:
    """Question/answer pair as passed to the LLM services."""
    question: str
    answer: str


@dataclass(frozen=True)
class Turn:
    """A committed question/answer/evaluation triple."""
    question: QuestionRecord
    answer: AnswerRecord
    evaluation: EvaluationRecord

    @property
    def index(self) -> int:
        return self.question.index

    def as_pair(self) -> QAPair:
        return QAPair(question=self.question.question_text, answer=self.answer.text)


@dataclass
class InterviewHistory:
    """Ordered history of committed turns.

    Answers and evaluations are only ever appended together, so both lists
    always have the same length.
    """
    turns: List[Turn] = field(default_factory=list)

    @property
    def questions(self) -> List[QuestionRecord]:
        return [turn.question for turn in self.turns]

    @property
    def answers(self) -> List[AnswerRecord]:
        return [turn.answer for turn in self.turns]

    @property
    def evaluations(self) -> List[EvaluationRecord]:
        return [turn.evaluation for turn in self.turns]

    def pairs(self) -> List[QAPair]:
        return [turn.as_pair() for turn in self.turns]

    def commit(self, turn: Turn) -> None:
        expected = len(self.turns) + 1
        if turn.index != expected:
            raise ValueError(f"Turn {turn.index} committed out of order (expected {expected})")
        self.turns.append(turn)

    def __len__(self) -> int:
        return len(self.turns)


@dataclass
class SessionData:
    """All mutable state of one interview session.

    Owned by InterviewSession; fields are only changed through its
    transition methods.
    """
    state: SessionState = SessionState.NOT_STARTED
    session_id: Optional[str] = None
    generation: int = 0
    topic: str = ""
    mode: Optional[Mode] = None
    total_questions: int = 0
    current_index: int = 0
    current_question: Optional[QuestionRecord] = None
    current_answer: Optional[AnswerRecord] = None
    current_evaluation: Optional[EvaluationRecord] = None
    final_evaluation: Optional[FinalEvaluation] = None
    history: InterviewHistory = field(default_factory=InterviewHistory)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serializable view of the session."""
        data = asdict(self)
        data["state"] = self.state.value
        data["mode"] = self.mode.value if self.mode else None
        return data
