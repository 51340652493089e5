"""
Interview prompt templates and generation.

This module contains all the prompt templates used by the LLM-backed services,
keeping them separate from the business logic for easier maintenance and editing.
"""

from typing import Dict, List, Sequence

from .models import QAPair, EvaluationRecord


Message = Dict[str, str]


class InterviewPrompts:
    """Collection of all interview-related prompts."""

    @staticmethod
    def question_system_prompt(topic: str, question_number: int, total_questions: int) -> str:
        """System prompt for generating the next interview question."""
        return f"""
You are an expert interviewer for {topic}. Ask challenging but fair questions. This is question number {question_number} of a {total_questions}-question interview. Make each question count and cover different aspects of {topic}.

The questions should be specific enough that it would be obvious if a candidate gives an unrelated or generic answer. Design questions that test actual knowledge of {topic} rather than allowing for generic responses.

Never repeat a question that was already asked in this conversation.
        """.strip()

    @staticmethod
    def evaluation_system_prompt(topic: str) -> str:
        """System prompt for scoring a single answer."""
        return f"""
You are an expert evaluator for {topic} interviews. Evaluate the candidate's answer fairly and provide constructive feedback.

IMPORTANT SCORING GUIDELINES:
- Score from 1-10 where 10 is excellent
- Give scores of 1-2 for answers that are completely unrelated to the question or topic
- Give scores of 3-4 for answers that are somewhat related but miss the main point
- Give scores of 5-6 for average answers that address the question but lack depth
- Give scores of 7-8 for good answers with solid understanding
- Give scores of 9-10 for excellent answers with comprehensive understanding

If the answer is completely off-topic or unrelated to the question, you MUST give a very low score (1-2) and clearly explain why in the feedback.
        """.strip()

    @staticmethod
    def evaluation_user_prompt(question: str, answer: str) -> str:
        return f"Question: {question}\n\nCandidate's Answer: {answer}"

    @staticmethod
    def final_evaluation_system_prompt(topic: str, total_questions: int) -> str:
        """System prompt for the overall interview evaluation."""
        return f"""
You are an expert interviewer for {topic}. Provide a comprehensive evaluation of the candidate's performance in this interview of {total_questions} questions. Even if this is a brief assessment, try to provide meaningful insights.

IMPORTANT SCORING GUIDELINES:
- Overall score should be from 1-100 where 100 is excellent
- If ANY answers were completely unrelated to the questions, the overall score should not exceed 30
- If MOST answers were unrelated or off-topic, the overall score should be below 20
- Weight the relevance of answers heavily in your scoring
- Be strict but fair in your assessment
- For completely irrelevant or nonsensical answers, recommend 'Reject'
- Only recommend 'Hire' for candidates who demonstrate clear understanding of the topic

Your evaluation must accurately reflect the candidate's actual knowledge of {topic}.
        """.strip()

    @staticmethod
    def fallback_questions(topic: str) -> List[str]:
        """Generic questions used when the question service returns nothing usable."""
        return [
            f"What drew you to {topic}, and which part of it do you know best?",
            f"Walk me through a problem in {topic} you solved recently. What was hard about it?",
            f"Which common mistake in {topic} do you see most often, and how do you avoid it?",
            f"How would you explain a core concept of {topic} to a new colleague?",
            f"What trade-offs do you weigh most often when working in {topic}?",
        ]


class PromptFormatter:
    """Helper methods for building chat messages."""

    @staticmethod
    def replay_history(history: Sequence[QAPair]) -> List[Message]:
        """Prior turns as assistant (question) / user (answer) messages."""
        messages: List[Message] = []
        for pair in history:
            messages.append({"role": "assistant", "content": pair.question})
            messages.append({"role": "user", "content": pair.answer})
        return messages

    @staticmethod
    def interview_summary(history: Sequence[QAPair], evaluations: Sequence[EvaluationRecord]) -> str:
        """One block per turn: question, answer and its evaluation."""
        blocks = []
        for i, (pair, evaluation) in enumerate(zip(history, evaluations), start=1):
            blocks.append(
                f"Question {i}: {pair.question}\n"
                f"Answer: {pair.answer}\n"
                f"Evaluation: Score {evaluation.score:g}/10 - {evaluation.feedback}"
            )
        return "\n\n".join(blocks)


def question_messages(topic: str, question_number: int, total_questions: int,
                      history: Sequence[QAPair]) -> List[Message]:
    messages: List[Message] = [
        {"role": "system",
         "content": InterviewPrompts.question_system_prompt(topic, question_number, total_questions)},
    ]
    messages.extend(PromptFormatter.replay_history(history))
    if not history:
        # Some providers reject a conversation made of a system message only
        messages.append({"role": "user", "content": "I'm ready for the first question."})
    return messages


def evaluation_messages(topic: str, question: str, answer: str) -> List[Message]:
    return [
        {"role": "system", "content": InterviewPrompts.evaluation_system_prompt(topic)},
        {"role": "user", "content": InterviewPrompts.evaluation_user_prompt(question, answer)},
    ]


def final_evaluation_messages(topic: str, history: Sequence[QAPair],
                              evaluations: Sequence[EvaluationRecord]) -> List[Message]:
    summary = PromptFormatter.interview_summary(history, evaluations)
    return [
        {"role": "system",
         "content": InterviewPrompts.final_evaluation_system_prompt(topic, len(history))},
        {"role": "user", "content": f"Interview Summary:\n\n{summary}"},
    ]
