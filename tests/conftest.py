import os

# Settings are read at import time, so configure before importing the package
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["CACHE_ENABLED"] = "false"
os.environ["RATE_LIMIT_PER_MINUTE"] = "100000"
os.environ["RATE_LIMIT_PER_HOUR"] = "100000"
# Background countdowns must not move while HTTP tests run
os.environ["TIMER_TICK_SECONDS"] = "30"

import pytest

from lms_quiz.services.quiz_session import QuizSession
from tests.fakes import LESSON_ID, USER_ID, FakeContentStore, FakeLedgerStore, make_quiz_row


@pytest.fixture
def quiz_row():
    return make_quiz_row(tips=["Re-read section 1", None, None, "Revisit the last example"])


@pytest.fixture
def content_store(quiz_row):
    return FakeContentStore(quiz_row)


@pytest.fixture
def ledger_store():
    return FakeLedgerStore({USER_ID: 1.0})


@pytest.fixture
def load_session(content_store, ledger_store):
    """Load a session without the background countdown so tests drive ticks directly"""

    async def _load(**options):
        options.setdefault("autostart_timer", False)
        return await QuizSession.load(LESSON_ID, USER_ID, content_store, ledger_store, **options)

    return _load
