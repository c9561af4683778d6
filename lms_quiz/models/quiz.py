"""
Quiz model - stores authored quiz definitions per lesson
"""
from sqlalchemy import Column, Integer, TIMESTAMP, JSON, Uuid, func
from sqlalchemy.dialects.postgresql import JSONB
from lms_quiz.database import Base
import uuid


class Quiz(Base):
    """
    Quizzes table - one or more definitions per lesson, newest wins
    
    quiz_json holds {"questions": [...]} exactly as the authoring tool wrote it;
    legacy field spellings are normalized when a session loads the quiz.
    """
    __tablename__ = "quizzes"
    
    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    lesson_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    quiz_json = Column(JSON().with_variant(JSONB(), "postgresql"))
    passing_threshold = Column(Integer)  # percent, defaults applied on load
    timer_minutes = Column(Integer)
    created_at = Column(TIMESTAMP, server_default=func.now(), index=True)
    
    def __repr__(self):
        return f"<Quiz(id={self.id}, lesson_id={self.lesson_id}, threshold={self.passing_threshold})>"
