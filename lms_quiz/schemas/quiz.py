"""
Pydantic schemas for quiz session requests and responses
"""
from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
from uuid import UUID


class StartSessionRequest(BaseModel):
    """Request schema for opening a quiz session on a lesson"""
    user_id: UUID


class AnswerRequest(BaseModel):
    """Selected option for one question (stored as given)"""
    option_index: int


class QuestionView(BaseModel):
    """Question as shown to the learner - never carries the correct index"""
    index: int
    text: str
    options: List[str]


class FeedbackEntry(BaseModel):
    question_index: int
    correct: bool
    tip: Optional[str] = None


class ResultView(BaseModel):
    """Scored outcome of the latest submission"""
    score_percent: int = Field(..., ge=0, le=100)
    passed: bool
    correct_count: int
    total_questions: int
    feedback: List[FeedbackEntry]


class NotificationView(BaseModel):
    title: str
    description: str
    variant: str = "default"


class QuizSessionView(BaseModel):
    """Full snapshot of a quiz session"""
    session_id: str
    state: str
    lesson_id: str
    quiz_id: Optional[str] = None
    passing_threshold: Optional[int] = None
    total_questions: int = 0
    current_question_index: Optional[int] = None
    question: Optional[QuestionView] = None
    selected_option: Optional[int] = None
    answered_count: int = 0
    remaining_seconds: Optional[int] = None
    time_display: Optional[str] = None  # "m:ss"
    progress_percent: float = 0.0
    result: Optional[ResultView] = None
    notifications: List[NotificationView] = []


class AcknowledgeResponse(BaseModel):
    session_id: str
    passed: bool


class AttemptRecordView(BaseModel):
    quiz_id: str
    user_id: str
    score_percent: int
    passed: bool
    feedback: List[FeedbackEntry]
    attempted_at: Optional[datetime] = None


class AttemptHistoryResponse(BaseModel):
    quiz_id: Optional[str] = None
    attempts: List[AttemptRecordView]
    total_attempts: int
    best_score: Optional[int] = None


class BalanceResponse(BaseModel):
    user_id: UUID
    balance: float
    currency: str
