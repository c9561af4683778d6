"""
Canonical quiz shapes and the load-time normalizer

Authored quiz payloads come in more than one shape. Everything downstream
(navigation, grading, persistence) only ever sees the dataclasses below.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from lms_quiz.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Question:
    """Multiple-choice question; option identity is its index"""

    text: str
    options: List[str]
    correct_index: int
    tip: str = ""


@dataclass(frozen=True)
class QuizDefinition:
    id: str
    lesson_id: str
    questions: List[Question]
    passing_threshold: int
    timer_minutes: int

    @property
    def duration_seconds(self) -> int:
        return self.timer_minutes * 60


@dataclass(frozen=True)
class FeedbackItem:
    question_index: int
    correct: bool
    tip: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        # Key names match what the web client already stores in quiz_attempts.feedback
        return {"question": self.question_index, "correct": self.correct, "tip": self.tip}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FeedbackItem":
        return cls(
            question_index=int(data.get("question", data.get("question_index", 0))),
            correct=bool(data.get("correct")),
            tip=data.get("tip"),
        )


@dataclass(frozen=True)
class QuizAttemptRecord:
    quiz_id: str
    user_id: str
    score_percent: int
    passed: bool
    feedback: List[FeedbackItem] = field(default_factory=list)
    attempted_at: Optional[datetime] = None


def _first_list(raw: Mapping[str, Any], *keys: str) -> List[str]:
    for key in keys:
        value = raw.get(key)
        if isinstance(value, list):
            return [str(option) for option in value]
    return []


def _first_int(raw: Mapping[str, Any], *keys: str) -> Optional[int]:
    for key in keys:
        value = raw.get(key)
        # bool is an int subclass but never a valid option index
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


def normalize_question(raw: Any, position: int) -> Question:
    """
    Build a Question from either authoring convention
    
    Args:
        raw: Question payload ({"question", "options"|"answers", "correct"|"correctAnswer", "tip"|"hint"})
        position: 0-based position, used for the placeholder label
        
    Returns:
        Canonical Question
    """
    if not isinstance(raw, Mapping):
        logger.warning(f"Question {position} is not an object, using placeholder")
        raw = {}

    correct_index = _first_int(raw, "correct", "correctAnswer")
    if correct_index is None:
        logger.warning(f"Question {position} has no correct index, defaulting to 0")
        correct_index = 0

    return Question(
        text=raw.get("question") or f"Question {position + 1}",
        options=_first_list(raw, "options", "answers"),
        correct_index=correct_index,
        tip=raw.get("tip") or raw.get("hint") or "",
    )


def normalize_quiz(row: Mapping[str, Any]) -> QuizDefinition:
    """
    Normalize a raw quizzes row into a QuizDefinition
    
    Missing or zero threshold/timer fall back to the configured defaults; a missing
    or malformed quiz_json yields a definition without questions.
    """
    quiz_json = row.get("quiz_json") or {}
    raw_questions = quiz_json.get("questions") if isinstance(quiz_json, Mapping) else None
    if not isinstance(raw_questions, list):
        raw_questions = []

    threshold = row.get("passing_threshold")
    passing_threshold = int(threshold) if threshold else settings.DEFAULT_PASSING_THRESHOLD

    timer = row.get("timer_minutes")
    timer_minutes = int(timer) if timer is not None and int(timer) > 0 else settings.DEFAULT_TIMER_MINUTES

    return QuizDefinition(
        id=str(row["id"]),
        lesson_id=str(row.get("lesson_id", "")),
        questions=[normalize_question(q, idx) for idx, q in enumerate(raw_questions)],
        passing_threshold=passing_threshold,
        timer_minutes=timer_minutes,
    )
