"""
Persistence collaborators for quiz sessions

ContentStore: quiz definitions and attempt records
LedgerStore: per-user credit balance

Quiz sessions only depend on the protocols; the SQLAlchemy implementations
below are what the API wires in.
"""
import asyncio
import logging
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Protocol

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from lms_quiz.database import SessionLocal
from lms_quiz.models import Quiz, QuizAttempt, User
from lms_quiz.services.quiz_definition import FeedbackItem, QuizAttemptRecord
from lms_quiz.utils.cache import CacheService, cache_service

logger = logging.getLogger(__name__)


class ContentStore(Protocol):
    async def fetch_quiz_definition(self, lesson_id: str) -> Optional[Dict[str, Any]]: ...

    async def record_attempt(self, record: QuizAttemptRecord) -> bool: ...

    async def fetch_attempt_history(self, quiz_id: str, user_id: str) -> List[QuizAttemptRecord]: ...


class LedgerStore(Protocol):
    async def get_balance(self, user_id: str) -> Optional[float]: ...

    async def adjust_balance(self, user_id: str, delta: float, require_sufficient: bool = False) -> bool: ...


def _as_uuid(value: Any) -> uuid.UUID:
    return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))


class SqlContentStore:
    """
    Quiz definitions and attempts backed by SQLAlchemy, definitions cached in Redis

    Blocking database work runs in a worker thread so live session countdowns
    keep ticking during slow queries.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        cache: Optional[CacheService] = None
    ):
        self._session_factory = session_factory
        self._cache = cache

    async def fetch_quiz_definition(self, lesson_id: str) -> Optional[Dict[str, Any]]:
        """
        Fetch the most recently created quiz for a lesson

        The newest quiz id is always resolved against the database; only the
        row body is cached, keyed by quiz id, so a newly created quiz wins at once.

        Returns:
            Raw row as a dict (quiz_json untouched) or None when the lesson has no quiz
        """
        return await asyncio.to_thread(self._fetch_quiz_definition, lesson_id)

    def _fetch_quiz_definition(self, lesson_id: str) -> Optional[Dict[str, Any]]:
        with self._session_factory() as db:
            quiz_id = db.execute(
                select(Quiz.id)
                .where(Quiz.lesson_id == _as_uuid(lesson_id))
                .order_by(Quiz.created_at.desc())
                .limit(1)
            ).scalar()

            if quiz_id is None:
                logger.info(f"No quiz defined for lesson {lesson_id}")
                return None

            cache_key = None
            if self._cache is not None:
                cache_key = self._cache.quiz_definition_key(str(quiz_id))
                cached = self._cache.get(cache_key)
                if cached:
                    return cached

            quiz = db.get(Quiz, quiz_id)
            row = {
                "id": str(quiz.id),
                "lesson_id": str(quiz.lesson_id),
                "quiz_json": quiz.quiz_json,
                "passing_threshold": quiz.passing_threshold,
                "timer_minutes": quiz.timer_minutes,
            }

        if cache_key is not None:
            self._cache.set(cache_key, row)
        return row

    async def record_attempt(self, record: QuizAttemptRecord) -> bool:
        return await asyncio.to_thread(self._record_attempt, record)

    def _record_attempt(self, record: QuizAttemptRecord) -> bool:
        with self._session_factory() as db:
            attempt = QuizAttempt(
                quiz_id=_as_uuid(record.quiz_id),
                user_id=_as_uuid(record.user_id),
                score=record.score_percent,
                passed=record.passed,
                feedback=[item.to_dict() for item in record.feedback],
                attempt_at=record.attempted_at or datetime.utcnow(),
            )
            try:
                db.add(attempt)
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Failed to save quiz attempt for quiz {record.quiz_id}: {str(e)}")
                return False

            logger.info(f"Quiz attempt saved: {attempt.id}, score: {record.score_percent}%")
            return True

    async def fetch_attempt_history(self, quiz_id: str, user_id: str) -> List[QuizAttemptRecord]:
        """Attempts of one user on one quiz, newest first"""
        return await asyncio.to_thread(self._fetch_attempt_history, quiz_id, user_id)

    def _fetch_attempt_history(self, quiz_id: str, user_id: str) -> List[QuizAttemptRecord]:
        with self._session_factory() as db:
            attempts = db.execute(
                select(QuizAttempt)
                .where(
                    QuizAttempt.quiz_id == _as_uuid(quiz_id),
                    QuizAttempt.user_id == _as_uuid(user_id),
                )
                .order_by(QuizAttempt.attempt_at.desc())
            ).scalars().all()

            return [
                QuizAttemptRecord(
                    quiz_id=str(a.quiz_id),
                    user_id=str(a.user_id),
                    score_percent=a.score or 0,
                    passed=bool(a.passed),
                    feedback=[FeedbackItem.from_dict(item) for item in (a.feedback or [])],
                    attempted_at=a.attempt_at,
                )
                for a in attempts
            ]


class SqlLedgerStore:
    """
    Credit balances stored on users.bitcred_balance

    Every change is a single UPDATE computed by the database, so two sessions
    of the same user cannot overwrite each other's adjustment.
    """

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self._session_factory = session_factory

    async def get_balance(self, user_id: str) -> Optional[float]:
        return await asyncio.to_thread(self._get_balance, user_id)

    def _get_balance(self, user_id: str) -> Optional[float]:
        with self._session_factory() as db:
            row = db.execute(
                select(User.bitcred_balance).where(User.id == _as_uuid(user_id))
            ).first()
            if row is None:
                return None
            return float(row[0] or 0)

    async def adjust_balance(self, user_id: str, delta: float, require_sufficient: bool = False) -> bool:
        """
        Atomically add delta to the balance

        Args:
            user_id: User whose balance changes
            delta: Signed amount (+reward, -cost)
            require_sufficient: Only apply when the resulting balance stays >= 0

        Returns:
            True when exactly one row was changed
        """
        return await asyncio.to_thread(self._adjust_balance, user_id, delta, require_sufficient)

    def _adjust_balance(self, user_id: str, delta: float, require_sufficient: bool) -> bool:
        current = func.coalesce(User.bitcred_balance, 0)
        stmt = (
            update(User)
            .where(User.id == _as_uuid(user_id))
            .values(bitcred_balance=current + delta)
            .execution_options(synchronize_session=False)
        )
        if require_sufficient:
            stmt = stmt.where(current + delta >= 0)

        with self._session_factory() as db:
            try:
                result = db.execute(stmt)
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Balance update failed for user {user_id}: {str(e)}")
                raise

            applied = result.rowcount == 1
            logger.info(f"Balance adjust user={user_id} delta={delta:+.2f} applied={applied}")
            return applied


# Global instances
content_store = SqlContentStore(SessionLocal, cache_service)
ledger_store = SqlLedgerStore(SessionLocal)
