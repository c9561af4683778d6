"""
Quiz grading service
Multiple choice only: exact match of the stored option index
"""
import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List

from lms_quiz.config import settings
from lms_quiz.services.quiz_definition import FeedbackItem, Question

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GradeResult:
    correct_count: int
    question_count: int
    score_percent: int
    passed: bool
    feedback: List[FeedbackItem]


class GradingService:
    """
    Service for grading quiz submissions

    Strategy:
    - A question is correct only when the stored answer equals correct_index
    - Unanswered questions and out-of-range indices count as incorrect
    - Percent is rounded half-up (1/8 -> 12.5 -> 13), never banker's rounding
    """

    def __init__(self, fallback_tip: str = settings.FALLBACK_TIP):
        self.fallback_tip = fallback_tip

    def grade_quiz(
        self,
        questions: List[Question],
        answers: Dict[int, int],
        passing_threshold: int
    ) -> GradeResult:
        """
        Grade a complete quiz submission

        Args:
            questions: Normalized questions in display order
            answers: Selected option per question index
            passing_threshold: Minimum percent required to pass

        Returns:
            GradeResult with score, pass flag and per-question feedback
        """
        feedback = []
        correct_count = 0

        for idx, question in enumerate(questions):
            is_correct = answers.get(idx) == question.correct_index
            if is_correct:
                correct_count += 1
            feedback.append(FeedbackItem(
                question_index=idx,
                correct=is_correct,
                tip=None if is_correct else (question.tip or self.fallback_tip)
            ))

        score_percent = self.score_percent(correct_count, len(questions))
        passed = score_percent >= passing_threshold

        logger.info(
            f"Quiz graded: {correct_count}/{len(questions)} correct, "
            f"score={score_percent}%, threshold={passing_threshold}%, passed={passed}"
        )

        return GradeResult(
            correct_count=correct_count,
            question_count=len(questions),
            score_percent=score_percent,
            passed=passed,
            feedback=feedback
        )

    @staticmethod
    def score_percent(correct_count: int, question_count: int) -> int:
        """Percent of correct answers rounded half-up; an empty quiz scores 0"""
        if question_count <= 0:
            return 0

        ratio = Decimal(correct_count * 100) / Decimal(question_count)
        return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


# Global instance
grading_service = GradingService()
