import logging
from typing import Any, Dict, Optional

from ..coercion import round_points
from ..types import (
    DetailedFeedback,
    GradingResult,
    NormalizedAnswer,
    NormalizedCorrectAnswer,
    QuestionRecord,
)

logger = logging.getLogger('grading')

NO_CORRECT_ANSWER = "Question has no valid correct answer"
MANUAL_GRADING_REQUIRED = "Manual grading required"


class BaseGrader:
    """Base class for all graders.

    A grader compares one normalized submitted answer against the question's
    normalized correct answer and returns a GradingResult. Graders never
    raise for malformed payloads; they return a zero-point result whose
    feedback says what was wrong.
    """

    async def grade(
            self,
            question: QuestionRecord,
            answer: NormalizedAnswer,
            correct: NormalizedCorrectAnswer,
            config: Optional[Any] = None
    ) -> GradingResult:
        """Grade a submission.

        Args:
            question: The question being answered
            answer: Normalized submitted answer
            correct: Normalized correct answer
            config: Optional per-type grading config whose grader-level
                options (matching mode, tolerance mode, weights) apply

        Returns:
            GradingResult with points clamped to the question's points
        """
        return self.evaluate(question, answer, correct, config)

    def evaluate(
            self,
            question: QuestionRecord,
            answer: NormalizedAnswer,
            correct: NormalizedCorrectAnswer,
            config: Optional[Any] = None
    ) -> GradingResult:
        raise NotImplementedError("Subclasses must implement evaluate method")

    @staticmethod
    def answer_payload(answer: NormalizedAnswer) -> Dict[str, Any]:
        """The submitted payload as a dict, or an empty dict when it is not one."""
        return answer.data if isinstance(answer.data, dict) else {}

    @staticmethod
    def correct_value(correct: NormalizedCorrectAnswer, key: str) -> Any:
        if isinstance(correct.data, dict):
            return correct.data.get(key)
        return None

    @staticmethod
    def proportional(
            question: QuestionRecord,
            correct_parts: int,
            total_parts: int,
            feedback: str,
            breakdown: Dict[str, float]
    ) -> GradingResult:
        """Partial credit: the share of correct parts of the question's points."""
        max_points = question.points
        points = round_points(correct_parts / total_parts * max_points) if total_parts else 0
        points = min(max(points, 0), max_points)
        breakdown = dict(breakdown, base_score=points)
        return GradingResult.scored(
            is_correct=total_parts > 0 and correct_parts == total_parts,
            points_earned=points,
            max_points=max_points,
            feedback=feedback,
            detailed_feedback=DetailedFeedback(breakdown=breakdown),
        )

    @staticmethod
    def all_or_nothing(question: QuestionRecord, is_correct: bool, feedback: str,
                       breakdown: Optional[Dict[str, float]] = None) -> GradingResult:
        points = question.points if is_correct else 0
        breakdown = dict(breakdown or {}, base_score=points)
        return GradingResult.scored(
            is_correct=is_correct,
            points_earned=points,
            max_points=question.points,
            feedback=feedback,
            detailed_feedback=DetailedFeedback(breakdown=breakdown),
        )
