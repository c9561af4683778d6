"""
Quiz session API endpoints
"""
from fastapi import APIRouter, Depends, HTTPException, Response
from uuid import UUID
import logging

from lms_quiz.schemas.quiz import (
    AcknowledgeResponse,
    AnswerRequest,
    AttemptHistoryResponse,
    AttemptRecordView,
    FeedbackEntry,
    NotificationView,
    QuestionView,
    QuizSessionView,
    ResultView,
    StartSessionRequest,
)
from lms_quiz.services.quiz_session import (
    QuizSession,
    QuizStateError,
    RetakeDeniedError,
    SessionState,
)
from lms_quiz.services.session_registry import (
    SessionNotFoundError,
    SessionRegistry,
    session_registry,
)
from lms_quiz.services.stores import ContentStore, LedgerStore, content_store, ledger_store


router = APIRouter(prefix="/api", tags=["quiz-sessions"])
logger = logging.getLogger(__name__)


# Dependencies (overridden in tests)
def get_content_store() -> ContentStore:
    return content_store


def get_ledger_store() -> LedgerStore:
    return ledger_store


def get_session_registry() -> SessionRegistry:
    return session_registry


def _format_time(seconds: int) -> str:
    return f"{seconds // 60}:{seconds % 60:02d}"


def _session_view(session: QuizSession) -> QuizSessionView:
    """Snapshot a session for the client, draining its pending notifications"""
    view = QuizSessionView(
        session_id=session.session_id,
        state=session.state.value,
        lesson_id=session.lesson_id,
        notifications=[
            NotificationView(title=n.title, description=n.description, variant=n.variant)
            for n in session.drain_notifications()
        ],
    )

    definition = session.definition
    attempt = session.attempt
    if definition is None or attempt is None:
        return view

    total = len(definition.questions)
    index = attempt.current_question_index
    question = session.current_question

    view.quiz_id = definition.id
    view.passing_threshold = definition.passing_threshold
    view.total_questions = total
    view.current_question_index = index
    view.question = QuestionView(index=index, text=question.text, options=question.options)
    view.selected_option = attempt.answers.get(index)
    view.answered_count = len(attempt.answers)
    view.remaining_seconds = attempt.remaining_seconds
    view.time_display = _format_time(attempt.remaining_seconds)
    view.progress_percent = round((index + 1) / total * 100, 2)

    if session.result is not None:
        result = session.result
        view.result = ResultView(
            score_percent=result.score_percent,
            passed=result.passed,
            correct_count=result.correct_count,
            total_questions=result.question_count,
            feedback=[
                FeedbackEntry(question_index=f.question_index, correct=f.correct, tip=f.tip)
                for f in result.feedback
            ],
        )
    return view


def _require_session(registry: SessionRegistry, session_id: str) -> QuizSession:
    try:
        return registry.get(session_id)
    except SessionNotFoundError:
        raise HTTPException(status_code=404, detail="Quiz session not found")


@router.post("/lessons/{lesson_id}/quiz-sessions", response_model=QuizSessionView, status_code=201)
async def start_quiz_session(
    lesson_id: UUID,
    request: StartSessionRequest,
    contents: ContentStore = Depends(get_content_store),
    ledger: LedgerStore = Depends(get_ledger_store),
    registry: SessionRegistry = Depends(get_session_registry),
):
    """
    Open a timed quiz session for a lesson

    - Uses the lesson's most recently created quiz
    - Starts the countdown immediately
    - 404 when the lesson has no quiz, 503 when it could not be loaded
    """
    logger.info(f"Starting quiz session for lesson {lesson_id}, user {request.user_id}")

    session = await QuizSession.load(str(lesson_id), str(request.user_id), contents, ledger)

    if session.state is SessionState.LOADING:
        session.dispose()
        raise HTTPException(status_code=503, detail="Unable to load quiz data. Please try again.")
    if session.state is SessionState.EMPTY:
        session.dispose()
        raise HTTPException(status_code=404, detail="This lesson doesn't have a quiz yet.")

    registry.add(session)
    return _session_view(session)


@router.get("/quiz-sessions/{session_id}", response_model=QuizSessionView)
async def get_quiz_session(
    session_id: str,
    registry: SessionRegistry = Depends(get_session_registry),
):
    """Current question, countdown and (after submission) the result"""
    return _session_view(_require_session(registry, session_id))


@router.put("/quiz-sessions/{session_id}/answers/{question_index}", response_model=QuizSessionView)
async def select_answer(
    session_id: str,
    question_index: int,
    request: AnswerRequest,
    registry: SessionRegistry = Depends(get_session_registry),
):
    """Record or change the answer for a question"""
    session = _require_session(registry, session_id)
    try:
        session.select_answer(question_index, request.option_index)
    except QuizStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return _session_view(session)


@router.post("/quiz-sessions/{session_id}/advance", response_model=QuizSessionView)
async def advance_question(
    session_id: str,
    registry: SessionRegistry = Depends(get_session_registry),
):
    session = _require_session(registry, session_id)
    try:
        session.advance()
    except QuizStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _session_view(session)


@router.post("/quiz-sessions/{session_id}/retreat", response_model=QuizSessionView)
async def retreat_question(
    session_id: str,
    registry: SessionRegistry = Depends(get_session_registry),
):
    session = _require_session(registry, session_id)
    try:
        session.retreat()
    except QuizStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _session_view(session)


@router.post("/quiz-sessions/{session_id}/submit", response_model=QuizSessionView)
async def submit_quiz_session(
    session_id: str,
    registry: SessionRegistry = Depends(get_session_registry),
):
    """
    Submit and grade the quiz

    - Only from the final question, once it is answered
    - A repeated submit (or one racing the timer) returns the existing result
    - Saving the attempt or crediting the pass reward may fail; the result still stands
    """
    session = _require_session(registry, session_id)
    try:
        await session.submit()
    except QuizStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _session_view(session)


@router.post("/quiz-sessions/{session_id}/retake", response_model=QuizSessionView)
async def retake_quiz_session(
    session_id: str,
    registry: SessionRegistry = Depends(get_session_registry),
):
    """Spend credits on a fresh attempt after failing (402 when the balance is short)"""
    session = _require_session(registry, session_id)
    try:
        await session.retake()
    except RetakeDeniedError as e:
        raise HTTPException(status_code=402, detail=str(e))
    except QuizStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _session_view(session)


@router.post("/quiz-sessions/{session_id}/acknowledge", response_model=AcknowledgeResponse)
async def acknowledge_quiz_session(
    session_id: str,
    registry: SessionRegistry = Depends(get_session_registry),
):
    """Close a scored session and report whether the learner may move on"""
    session = _require_session(registry, session_id)
    try:
        passed = session.acknowledge()
    except QuizStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    registry.remove(session_id)
    return AcknowledgeResponse(session_id=session_id, passed=passed)


@router.delete("/quiz-sessions/{session_id}", status_code=204)
async def close_quiz_session(
    session_id: str,
    registry: SessionRegistry = Depends(get_session_registry),
):
    """Abandon a session; its countdown is cancelled and nothing is submitted"""
    _require_session(registry, session_id)
    registry.remove(session_id)
    return Response(status_code=204)


@router.get("/quiz-sessions/{session_id}/attempts", response_model=AttemptHistoryResponse)
async def get_attempt_history(
    session_id: str,
    registry: SessionRegistry = Depends(get_session_registry),
):
    """Previous attempts of this learner on this quiz, newest first"""
    session = _require_session(registry, session_id)
    history = await session.refresh_history()

    attempts = [
        AttemptRecordView(
            quiz_id=record.quiz_id,
            user_id=record.user_id,
            score_percent=record.score_percent,
            passed=record.passed,
            feedback=[
                FeedbackEntry(question_index=f.question_index, correct=f.correct, tip=f.tip)
                for f in record.feedback
            ],
            attempted_at=record.attempted_at,
        )
        for record in history
    ]

    return AttemptHistoryResponse(
        quiz_id=session.definition.id if session.definition else None,
        attempts=attempts,
        total_attempts=len(attempts),
        best_score=max((a.score_percent for a in attempts), default=None),
    )
