"""
Database models package
"""
from lms_quiz.models.user import User
from lms_quiz.models.quiz import Quiz
from lms_quiz.models.quiz_attempt import QuizAttempt

__all__ = ["User", "Quiz", "QuizAttempt"]
