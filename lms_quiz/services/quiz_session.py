"""
Quiz session controller
Owns one learner's pass through one lesson quiz: navigation, answers,
countdown, scoring, attempt persistence, pass rewards and paid retakes.

State machine:
    LOADING -> ACTIVE | EMPTY
    ACTIVE -> SUBMITTING (manual submit on the final question, or timer expiry)
    SUBMITTING -> RESULTS
    RESULTS -> ACTIVE (retake purchased) | COMPLETED (acknowledged)

Store failures never escape this class; they are logged and turned into
notifications for the learner.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional
from uuid import uuid4

from lms_quiz.config import settings
from lms_quiz.services.grading_service import GradeResult, GradingService, grading_service
from lms_quiz.services.quiz_definition import (
    Question,
    QuizAttemptRecord,
    QuizDefinition,
    normalize_quiz,
)
from lms_quiz.services.stores import ContentStore, LedgerStore

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    LOADING = "loading"
    EMPTY = "empty"
    ACTIVE = "active"
    SUBMITTING = "submitting"
    RESULTS = "results"
    COMPLETED = "completed"


class QuizStateError(Exception):
    """Operation not allowed in the session's current state"""


class RetakeDeniedError(QuizStateError):
    """Retake refused: balance too low or could not be verified"""


@dataclass
class AttemptState:
    remaining_seconds: int
    current_question_index: int = 0
    answers: Dict[int, int] = field(default_factory=dict)
    submitted: bool = False


@dataclass(frozen=True)
class Notification:
    title: str
    description: str
    variant: str = "default"  # "default" or "destructive"


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class QuizSession:
    """One learner, one lesson quiz. Build with QuizSession.load(), end with dispose()."""

    def __init__(
        self,
        lesson_id: str,
        user_id: str,
        content_store: ContentStore,
        ledger_store: LedgerStore,
        grader: GradingService = grading_service,
        tick_interval: float = settings.TIMER_TICK_SECONDS,
        autostart_timer: bool = True,
        pass_reward: float = settings.PASS_REWARD_CREDITS,
        retake_cost: float = settings.RETAKE_COST_CREDITS,
    ):
        self.session_id = str(uuid4())
        self.lesson_id = str(lesson_id)
        self.user_id = str(user_id)
        self.state = SessionState.LOADING
        self.definition: Optional[QuizDefinition] = None
        self.attempt: Optional[AttemptState] = None
        self.result: Optional[GradeResult] = None
        self.history: List[QuizAttemptRecord] = []

        self._content = content_store
        self._ledger = ledger_store
        self._grader = grader
        self._tick_interval = tick_interval
        self._autostart_timer = autostart_timer
        self._pass_reward = pass_reward
        self._retake_cost = retake_cost
        self._notifications: List[Notification] = []
        self._timer_task: Optional[asyncio.Task] = None
        self._retake_pending = False
        self._disposed = False

    # ---- Construction ------------------------------------------------------

    @classmethod
    async def load(
        cls,
        lesson_id: str,
        user_id: str,
        content_store: ContentStore,
        ledger_store: LedgerStore,
        **options
    ) -> "QuizSession":
        """
        Fetch and normalize the lesson's newest quiz and start the countdown

        The returned session is ACTIVE on success, EMPTY when the lesson has no
        quiz, and still LOADING when the definition could not be fetched.
        """
        session = cls(lesson_id, user_id, content_store, ledger_store, **options)
        await session._load()
        return session

    async def _load(self) -> None:
        try:
            row = await self._content.fetch_quiz_definition(self.lesson_id)
            definition = normalize_quiz(row) if row else None
        except Exception as e:
            logger.error(f"Error fetching quiz for lesson {self.lesson_id}: {str(e)}")
            self._notify("Error loading quiz", "Unable to load quiz data. Please try again.", "destructive")
            return

        if definition is None or not definition.questions:
            self.state = SessionState.EMPTY
            self._notify("No quiz available", "This lesson doesn't have a quiz yet.", "destructive")
            return

        self.definition = definition
        self.attempt = AttemptState(remaining_seconds=definition.duration_seconds)
        self.state = SessionState.ACTIVE
        logger.info(
            f"Session {self.session_id} loaded quiz {definition.id} "
            f"({len(definition.questions)} questions, {definition.timer_minutes} min)"
        )

        await self.refresh_history()
        self._start_timer()

    async def refresh_history(self) -> List[QuizAttemptRecord]:
        """Reload this user's previous attempts; informational only"""
        if self.definition is None:
            return self.history
        try:
            self.history = await self._content.fetch_attempt_history(self.definition.id, self.user_id)
        except Exception as e:
            logger.warning(f"Could not fetch attempt history for quiz {self.definition.id}: {str(e)}")
        return self.history

    # ---- Read-only views ---------------------------------------------------

    @property
    def questions(self) -> List[Question]:
        return self.definition.questions if self.definition else []

    @property
    def current_question(self) -> Optional[Question]:
        if self.attempt is None or not self.questions:
            return None
        return self.questions[self.attempt.current_question_index]

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    @property
    def notifications(self) -> List[Notification]:
        return list(self._notifications)

    def drain_notifications(self) -> List[Notification]:
        pending, self._notifications = self._notifications, []
        return pending

    # ---- Answering and navigation -----------------------------------------

    def select_answer(self, question_index: int, option_index: int) -> None:
        """Store (or overwrite) the chosen option; the option index is not range-checked"""
        self._require_state(SessionState.ACTIVE)
        if not 0 <= question_index < len(self.questions):
            raise ValueError(f"question_index {question_index} is out of range")
        self.attempt.answers[question_index] = option_index

    def advance(self) -> int:
        self._require_state(SessionState.ACTIVE)
        if self.attempt.current_question_index >= len(self.questions) - 1:
            raise QuizStateError("Already on the final question; submit the quiz instead")
        self.attempt.current_question_index += 1
        return self.attempt.current_question_index

    def retreat(self) -> int:
        self._require_state(SessionState.ACTIVE)
        if self.attempt.current_question_index > 0:
            self.attempt.current_question_index -= 1
        return self.attempt.current_question_index

    # ---- Countdown ---------------------------------------------------------

    def tick(self) -> bool:
        """Consume one second; True once the countdown has run out"""
        if self._disposed or self.state is not SessionState.ACTIVE or self.attempt.submitted:
            return False
        if self.attempt.remaining_seconds > 0:
            self.attempt.remaining_seconds -= 1
        return self.attempt.remaining_seconds == 0

    async def on_tick(self) -> bool:
        """One timer step: count down and submit on expiry"""
        if not self.tick():
            return False
        await self._submit(trigger="timer")
        return True

    def _start_timer(self) -> None:
        self._stop_timer()
        if self._autostart_timer and not self._disposed:
            self._timer_task = asyncio.create_task(self._run_timer())

    def _stop_timer(self) -> None:
        task, self._timer_task = self._timer_task, None
        # The timer may be the caller (expiry path); it exits on its own once detached
        if task is not None and task is not _current_task() and not task.done():
            task.cancel()

    async def _run_timer(self) -> None:
        task = asyncio.current_task()
        try:
            while self._timer_task is task:
                await asyncio.sleep(self._tick_interval)
                if self._timer_task is not task:
                    break
                await self.on_tick()
        except asyncio.CancelledError:
            logger.debug(f"Timer cancelled for session {self.session_id}")
            raise

    # ---- Submission --------------------------------------------------------

    async def submit(self) -> Optional[GradeResult]:
        """
        Learner-initiated submission from the final question

        Returns:
            GradeResult, or None when a submission already happened
        """
        if self.attempt is not None and self.attempt.submitted:
            logger.debug(f"Duplicate submit suppressed for session {self.session_id}")
            return None

        self._require_state(SessionState.ACTIVE)
        last_index = len(self.questions) - 1
        if self.attempt.current_question_index != last_index:
            raise QuizStateError("The quiz can only be submitted from the final question")
        if last_index not in self.attempt.answers:
            raise QuizStateError("Answer the final question before submitting")

        return await self._submit(trigger="manual")

    async def _submit(self, trigger: str) -> Optional[GradeResult]:
        # Guard must flip before the first await: manual submit and timer expiry can race
        if self._disposed or self.state is not SessionState.ACTIVE or self.attempt.submitted:
            return None
        self.attempt.submitted = True
        self.state = SessionState.SUBMITTING
        self._stop_timer()

        definition = self.definition
        result = self._grader.grade_quiz(
            definition.questions, dict(self.attempt.answers), definition.passing_threshold
        )
        self.result = result
        record = QuizAttemptRecord(
            quiz_id=definition.id,
            user_id=self.user_id,
            score_percent=result.score_percent,
            passed=result.passed,
            feedback=result.feedback,
            attempted_at=datetime.utcnow(),
        )
        logger.info(
            f"Session {self.session_id} submitted ({trigger}): "
            f"score={result.score_percent}%, passed={result.passed}"
        )

        await self._persist_attempt(record)
        if result.passed:
            await self._credit_reward(result.score_percent)
        else:
            self._notify(
                "Quiz Failed",
                f"You scored {result.score_percent}%. Need {definition.passing_threshold}% to pass.",
                "destructive",
            )

        self.state = SessionState.RESULTS
        return result

    async def _persist_attempt(self, record: QuizAttemptRecord) -> None:
        saved = False
        try:
            saved = await self._content.record_attempt(record)
        except Exception as e:
            logger.error(f"Error saving attempt for session {self.session_id}: {str(e)}")

        if saved:
            self.history.insert(0, record)
        else:
            self._notify(
                "Attempt not saved",
                "Your result could not be saved, but it is shown below.",
                "destructive",
            )

    async def _credit_reward(self, score_percent: int) -> None:
        currency = settings.CURRENCY_NAME
        credited = False
        try:
            credited = await self._ledger.adjust_balance(self.user_id, self._pass_reward)
        except Exception as e:
            logger.error(f"Error crediting pass reward to user {self.user_id}: {str(e)}")

        if credited:
            self._notify(
                "Quiz Passed!",
                f"You scored {score_percent}%! Earned {self._pass_reward:g} {currency}",
            )
        else:
            self._notify("Quiz Passed!", f"You scored {score_percent}%!")
            self._notify(
                f"{currency} not credited",
                f"Unable to credit {self._pass_reward:g} {currency} right now.",
                "destructive",
            )

    # ---- Results -----------------------------------------------------------

    async def retake(self) -> None:
        """
        Buy another attempt after failing

        The debit is committed before the new attempt is granted; a low or
        unreadable balance raises RetakeDeniedError and leaves RESULTS as is.
        A session closed while the debit is in flight gets the cost refunded.
        """
        self._require_state(SessionState.RESULTS)
        if self.result is None or self.result.passed:
            raise QuizStateError("Only a failed attempt can be retaken")
        if self._retake_pending:
            raise QuizStateError("A retake is already being processed")

        currency = settings.CURRENCY_NAME
        self._retake_pending = True
        try:
            debited = await self._ledger.adjust_balance(
                self.user_id, -self._retake_cost, require_sufficient=True
            )
        except Exception as e:
            logger.error(f"Error debiting retake for user {self.user_id}: {str(e)}")
            self._notify(
                "Retake unavailable",
                f"Unable to verify your {currency} balance. Please try again.",
                "destructive",
            )
            raise RetakeDeniedError("Balance could not be verified") from e
        finally:
            self._retake_pending = False

        if not debited:
            self._notify(
                f"Insufficient {currency}",
                f"You need {self._retake_cost:g} {currency} to retake the quiz",
                "destructive",
            )
            raise RetakeDeniedError(f"Retake requires {self._retake_cost:g} {currency}")

        if self._disposed or self.state is not SessionState.RESULTS:
            await self._refund_retake()
            raise QuizStateError("Session closed while the retake was being processed")

        logger.info(f"Session {self.session_id} retake granted for user {self.user_id}")
        self.attempt = AttemptState(remaining_seconds=self.definition.duration_seconds)
        self.result = None
        self.state = SessionState.ACTIVE
        self._start_timer()

    async def _refund_retake(self) -> None:
        refunded = False
        try:
            refunded = await self._ledger.adjust_balance(self.user_id, self._retake_cost)
        except Exception as e:
            logger.error(f"Error refunding retake for user {self.user_id}: {str(e)}")

        if refunded:
            logger.info(f"Session {self.session_id} closed during retake; refunded user {self.user_id}")
        else:
            logger.error(
                f"Retake refund of {self._retake_cost:g} {settings.CURRENCY_NAME} "
                f"not applied for user {self.user_id}"
            )

    def acknowledge(self) -> bool:
        """Learner has seen the results; returns whether the quiz was passed"""
        self._require_state(SessionState.RESULTS)
        if self._retake_pending:
            raise QuizStateError("A retake is being processed")
        self.state = SessionState.COMPLETED
        self._stop_timer()
        return self.result.passed

    def dispose(self) -> None:
        """Tear down: cancel the countdown so no submission fires afterwards"""
        if self._disposed:
            return
        self._disposed = True
        self._stop_timer()
        logger.debug(f"Session {self.session_id} disposed in state {self.state.value}")

    # ---- internals ---------------------------------------------------------

    def _require_state(self, *allowed: SessionState) -> None:
        if self._disposed:
            raise QuizStateError("Session has been closed")
        if self.state not in allowed:
            raise QuizStateError(f"Not allowed while the quiz is {self.state.value}")

    def _notify(self, title: str, description: str, variant: str = "default") -> None:
        self._notifications.append(Notification(title=title, description=description, variant=variant))
