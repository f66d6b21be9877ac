"""
PAIDEIA - In-Memory Session Store

Process-local SessionStore. Documents are kept in their serialized form so
that callers never share mutable state with the store, and all mutations
run under one asyncio.Lock.
"""
from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Any, Dict, List, Optional, Sequence

from core.errors import ConcurrencyConflictError, SessionStoreError
from db.interfaces import SessionStore
from domain.entities import ExegeticalInsight, QuizQuestion, StudySession
from domain.syntax import PassageSyntaxAnalysis, analysis_from_dict, analysis_to_dict
from observability.logging import get_logger

logger = get_logger(__name__)


class InMemorySessionStore(SessionStore):
    """SessionStore backed by dictionaries."""

    backend_name = "memory"

    def __init__(self) -> None:
        self._sessions: Dict[str, Dict[str, Any]] = {}
        self._insights: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        self._quiz_cache: Dict[str, List[Dict[str, Any]]] = {}
        self._syntax_cache: Dict[str, Dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    async def create_session(self, session: StudySession) -> None:
        async with self._lock:
            if session.id in self._sessions:
                raise SessionStoreError(
                    f"Session {session.id} already exists", backend=self.backend_name
                )
            session.version = 1
            self._sessions[session.id] = session.to_dict()
        logger.debug("Session created", session_id=session.id, backend=self.backend_name)

    async def get_session(self, session_id: str) -> Optional[StudySession]:
        document = self._sessions.get(session_id)
        if document is None:
            return None
        return StudySession.from_dict(document)

    async def update_session(self, session: StudySession) -> None:
        async with self._lock:
            stored = self._sessions.get(session.id)
            stored_version = stored["version"] if stored is not None else 0
            if stored_version != session.version:
                raise ConcurrencyConflictError(
                    f"Session {session.id} was modified concurrently",
                    session_id=session.id,
                    expected_version=session.version,
                    actual_version=stored_version,
                    backend=self.backend_name,
                )
            session.version = stored_version + 1
            self._sessions[session.id] = session.to_dict()

    async def list_sessions(self, user_id: str) -> List[StudySession]:
        return [
            StudySession.from_dict(doc)
            for doc in self._sessions.values()
            if doc["user_id"] == user_id
        ]

    async def delete_session(self, session_id: str) -> bool:
        async with self._lock:
            existed = self._sessions.pop(session_id, None) is not None
            self._insights.pop(session_id, None)
        return existed

    async def save_insight(self, insight: ExegeticalInsight) -> None:
        async with self._lock:
            self._insights[insight.session_id].append(insight.to_dict())

    async def get_insights_by_session(self, session_id: str) -> List[ExegeticalInsight]:
        return [ExegeticalInsight.from_dict(d) for d in self._insights.get(session_id, [])]

    async def get_cached_quiz(self, fingerprint: str) -> Optional[List[QuizQuestion]]:
        documents = self._quiz_cache.get(fingerprint)
        if documents is None:
            return None
        return [QuizQuestion.from_dict(d) for d in documents]

    async def cache_quiz(self, fingerprint: str, questions: Sequence[QuizQuestion]) -> None:
        async with self._lock:
            self._quiz_cache[fingerprint] = [q.to_dict() for q in questions]

    async def get_cached_syntax_analysis(
        self, passage_reference: str
    ) -> Optional[PassageSyntaxAnalysis]:
        document = self._syntax_cache.get(passage_reference)
        if document is None:
            return None
        return analysis_from_dict(document)

    async def cache_syntax_analysis(self, analysis: PassageSyntaxAnalysis) -> None:
        async with self._lock:
            self._syntax_cache[analysis.passage_reference] = analysis_to_dict(analysis)
