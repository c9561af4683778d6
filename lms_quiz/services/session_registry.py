"""
In-process registry of live quiz sessions
Swap for a shared store only together with moving the countdown out of process.
"""
import logging
from typing import Dict

from lms_quiz.services.quiz_session import QuizSession

logger = logging.getLogger(__name__)


class SessionNotFoundError(LookupError):
    """No live session with that id"""


class SessionRegistry:
    def __init__(self) -> None:
        self._sessions: Dict[str, QuizSession] = {}

    def add(self, session: QuizSession) -> None:
        self._sessions[session.session_id] = session

    def get(self, session_id: str) -> QuizSession:
        session = self._sessions.get(session_id)
        if session is None or session.is_disposed:
            raise SessionNotFoundError(session_id)
        return session

    def remove(self, session_id: str) -> None:
        """Dispose and forget a session; unknown ids are ignored"""
        session = self._sessions.pop(session_id, None)
        if session is not None:
            session.dispose()

    def dispose_all(self) -> None:
        count = len(self._sessions)
        for session_id in list(self._sessions):
            self.remove(session_id)
        logger.info(f"Disposed {count} quiz sessions")

    def __len__(self) -> int:
        return len(self._sessions)


# Global instance
session_registry = SessionRegistry()
