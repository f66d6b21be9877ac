"""
PAIDEIA - Session Store Interface

The persistence contract the tutor needs, independent of backend.

Consistency rules every implementation follows:
    - get_session returns None for unknown ids; not-found is not an error.
    - update_session is a full-document upsert guarded by optimistic
      concurrency: the stored version must equal ``session.version``,
      otherwise ConcurrencyConflictError is raised and nothing is written.
      On success the stored version and ``session.version`` are both
      incremented.
    - cache_quiz and cache_syntax_analysis are last-writer-wins upserts, so
      two concurrent cache misses never fail each other.
    - Returned objects are independent of the store's internal state.

Usage:
    from db.interfaces import SessionStore

    class TutorService:
        def __init__(self, store: SessionStore):
            self._store = store
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from domain.entities import ExegeticalInsight, QuizQuestion, StudySession
from domain.syntax import PassageSyntaxAnalysis


class SessionStore(ABC):
    """Persistence capability keyed by session id."""

    backend_name: str = "abstract"

    # -------------------------------------------------------------------------
    # Sessions
    # -------------------------------------------------------------------------

    @abstractmethod
    async def create_session(self, session: StudySession) -> None:
        """Insert a new session. Sets ``session.version`` to 1."""

    @abstractmethod
    async def get_session(self, session_id: str) -> Optional[StudySession]:
        """Load a session, or None when it does not exist."""

    @abstractmethod
    async def update_session(self, session: StudySession) -> None:
        """
        Versioned full-document upsert.

        Raises:
            ConcurrencyConflictError: the stored version differs from
                ``session.version``.
        """

    @abstractmethod
    async def list_sessions(self, user_id: str) -> List[StudySession]:
        """All sessions owned by a user, in no particular order."""

    @abstractmethod
    async def delete_session(self, session_id: str) -> bool:
        """Remove a session and its insights. Returns whether it existed."""

    # -------------------------------------------------------------------------
    # Insights
    # -------------------------------------------------------------------------

    @abstractmethod
    async def save_insight(self, insight: ExegeticalInsight) -> None:
        """Append an insight."""

    @abstractmethod
    async def get_insights_by_session(self, session_id: str) -> List[ExegeticalInsight]:
        """Insights of a session, oldest first."""

    # -------------------------------------------------------------------------
    # Shared caches
    # -------------------------------------------------------------------------

    @abstractmethod
    async def get_cached_quiz(self, fingerprint: str) -> Optional[List[QuizQuestion]]:
        """Cached question set for a fingerprint, or None."""

    @abstractmethod
    async def cache_quiz(self, fingerprint: str, questions: Sequence[QuizQuestion]) -> None:
        """Replace the cached question set for a fingerprint."""

    @abstractmethod
    async def get_cached_syntax_analysis(
        self, passage_reference: str
    ) -> Optional[PassageSyntaxAnalysis]:
        """Cached syntax analysis for a passage reference, or None."""

    @abstractmethod
    async def cache_syntax_analysis(self, analysis: PassageSyntaxAnalysis) -> None:
        """Replace the cached syntax analysis for its passage reference."""

    async def close(self) -> None:
        """Release backend resources."""
