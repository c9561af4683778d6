import threading
import uuid
from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from lms_quiz.database import Base
from lms_quiz.models import Quiz, User
from lms_quiz.services.quiz_definition import FeedbackItem, QuizAttemptRecord
from lms_quiz.services.stores import SqlContentStore, SqlLedgerStore


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def user_id(session_factory):
    with session_factory() as db:
        user = User(username="learner", bitcred_balance=2.0)
        db.add(user)
        db.commit()
        return str(user.id)


def _add_quiz(session_factory, lesson_id, created_at, threshold=80, questions=None):
    with session_factory() as db:
        quiz = Quiz(
            lesson_id=lesson_id,
            quiz_json={"questions": questions or [{"question": "Q", "options": ["a", "b"], "correct": 1}]},
            passing_threshold=threshold,
            timer_minutes=5,
            created_at=created_at,
        )
        db.add(quiz)
        db.commit()
        return str(quiz.id)


class FakeCache:
    def __init__(self):
        self.values = {}

    def quiz_definition_key(self, quiz_id):
        return f"quiz:definition:{quiz_id}"

    def get(self, key):
        return self.values.get(key)

    def set(self, key, value, ttl=None):
        self.values[key] = value
        return True


# ---- content store ---------------------------------------------------------

async def test_newest_quiz_for_lesson_wins(session_factory):
    lesson_id = uuid.uuid4()
    now = datetime.utcnow()
    _add_quiz(session_factory, lesson_id, now - timedelta(days=1), threshold=50)
    newest = _add_quiz(session_factory, lesson_id, now, threshold=90)
    _add_quiz(session_factory, uuid.uuid4(), now + timedelta(days=1), threshold=10)

    row = await SqlContentStore(session_factory).fetch_quiz_definition(str(lesson_id))

    assert row["id"] == newest
    assert row["passing_threshold"] == 90
    assert row["quiz_json"]["questions"][0]["correct"] == 1


async def test_lesson_without_quiz_returns_none(session_factory):
    assert await SqlContentStore(session_factory).fetch_quiz_definition(str(uuid.uuid4())) is None


async def test_definition_served_from_cache(session_factory):
    lesson_id = uuid.uuid4()
    quiz_id = _add_quiz(session_factory, lesson_id, datetime.utcnow())
    cache = FakeCache()
    store = SqlContentStore(session_factory, cache)

    first = await store.fetch_quiz_definition(str(lesson_id))
    cache.values[cache.quiz_definition_key(quiz_id)]["timer_minutes"] = 9
    second = await store.fetch_quiz_definition(str(lesson_id))

    assert first["id"] == second["id"] == quiz_id
    assert second["timer_minutes"] == 9


async def test_newer_quiz_replaces_cached_definition(session_factory):
    lesson_id = uuid.uuid4()
    now = datetime.utcnow()
    older = _add_quiz(session_factory, lesson_id, now - timedelta(minutes=5), threshold=50)
    store = SqlContentStore(session_factory, FakeCache())

    assert (await store.fetch_quiz_definition(str(lesson_id)))["id"] == older

    newer = _add_quiz(session_factory, lesson_id, now, threshold=90)
    row = await store.fetch_quiz_definition(str(lesson_id))

    assert row["id"] == newer
    assert row["passing_threshold"] == 90


async def test_queries_run_off_the_event_loop_thread(session_factory, user_id):
    threads = []

    def tracking_factory():
        threads.append(threading.get_ident())
        return session_factory()

    ledger = SqlLedgerStore(tracking_factory)
    await ledger.get_balance(user_id)
    await ledger.adjust_balance(user_id, 0.5)

    assert len(threads) == 2
    assert threading.get_ident() not in threads


async def test_attempt_history_newest_first(session_factory, user_id):
    quiz_id = _add_quiz(session_factory, uuid.uuid4(), datetime.utcnow())
    store = SqlContentStore(session_factory)
    start = datetime(2024, 5, 1, 12, 0, 0)

    for offset, score in enumerate([40, 75, 100]):
        saved = await store.record_attempt(QuizAttemptRecord(
            quiz_id=quiz_id,
            user_id=user_id,
            score_percent=score,
            passed=score >= 80,
            feedback=[FeedbackItem(question_index=0, correct=score >= 80, tip=None if score >= 80 else "Again")],
            attempted_at=start + timedelta(minutes=offset),
        ))
        assert saved is True

    history = await store.fetch_attempt_history(quiz_id, user_id)

    assert [r.score_percent for r in history] == [100, 75, 40]
    assert history[0].passed is True
    assert history[2].feedback == [FeedbackItem(question_index=0, correct=False, tip="Again")]


async def test_attempt_history_is_per_user(session_factory, user_id):
    quiz_id = _add_quiz(session_factory, uuid.uuid4(), datetime.utcnow())
    store = SqlContentStore(session_factory)
    await store.record_attempt(QuizAttemptRecord(quiz_id=quiz_id, user_id=user_id, score_percent=10, passed=False))

    assert await store.fetch_attempt_history(quiz_id, str(uuid.uuid4())) == []


# ---- ledger store ----------------------------------------------------------

async def test_reward_is_added(session_factory, user_id):
    ledger = SqlLedgerStore(session_factory)

    assert await ledger.adjust_balance(user_id, 0.5) is True
    assert await ledger.get_balance(user_id) == pytest.approx(2.5)


async def test_debit_applies_when_covered(session_factory, user_id):
    ledger = SqlLedgerStore(session_factory)

    assert await ledger.adjust_balance(user_id, -2.0, require_sufficient=True) is True
    assert await ledger.get_balance(user_id) == pytest.approx(0.0)


async def test_debit_refused_when_short(session_factory):
    with session_factory() as db:
        user = User(username="short", bitcred_balance=1.9)
        db.add(user)
        db.commit()
        user_id = str(user.id)
    ledger = SqlLedgerStore(session_factory)

    assert await ledger.adjust_balance(user_id, -2.0, require_sufficient=True) is False
    assert await ledger.get_balance(user_id) == pytest.approx(1.9)


async def test_null_balance_counts_as_zero(session_factory):
    with session_factory() as db:
        user = User(username="fresh", bitcred_balance=None)
        db.add(user)
        db.commit()
        user_id = str(user.id)
    ledger = SqlLedgerStore(session_factory)

    assert await ledger.get_balance(user_id) == 0.0
    assert await ledger.adjust_balance(user_id, 0.5) is True
    assert await ledger.get_balance(user_id) == pytest.approx(0.5)


async def test_unknown_user(session_factory):
    ledger = SqlLedgerStore(session_factory)
    missing = str(uuid.uuid4())

    assert await ledger.get_balance(missing) is None
    assert await ledger.adjust_balance(missing, 0.5) is False


async def test_consecutive_adjustments_do_not_overwrite(session_factory, user_id):
    ledger_a = SqlLedgerStore(session_factory)
    ledger_b = SqlLedgerStore(session_factory)

    await ledger_a.adjust_balance(user_id, 0.5)
    await ledger_b.adjust_balance(user_id, -2.0, require_sufficient=True)
    await ledger_a.adjust_balance(user_id, 0.5)

    assert await ledger_a.get_balance(user_id) == pytest.approx(1.0)
