"""
QuizAttempt model - immutable record of one scored submission
"""
from sqlalchemy import Column, Integer, Boolean, TIMESTAMP, JSON, Uuid, ForeignKey, func
from sqlalchemy.dialects.postgresql import JSONB
from lms_quiz.database import Base
import uuid


class QuizAttempt(Base):
    """
    Quiz attempts table - written once per submission, never updated
    """
    __tablename__ = "quiz_attempts"
    
    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    quiz_id = Column(Uuid(as_uuid=True), ForeignKey("quizzes.id"), nullable=False, index=True)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    score = Column(Integer)  # 0-100 percent
    passed = Column(Boolean)
    feedback = Column(JSON().with_variant(JSONB(), "postgresql"))  # per-question correctness + tips
    attempt_at = Column(TIMESTAMP, server_default=func.now())
    
    def __repr__(self):
        return f"<QuizAttempt(user_id={self.user_id}, quiz_id={self.quiz_id}, score={self.score}, passed={self.passed})>"
