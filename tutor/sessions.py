"""
PAIDEIA - Study Session Service

Session lifecycle over a SessionStore: start or generate a session, append
units, record evaluated responses, complete, list, delete, plus insights
and per-unit progress.

Every mutation is load, apply, versioned write. A ConcurrencyConflictError
from the store means another writer won; the mutation is re-applied to a
fresh copy, so a guard that passed on the stale copy is checked again.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple, TypeVar

from config import TutorConfig
from core.errors import (
    SessionNotFoundError,
    SessionOwnershipError,
    SessionStoreError,
    UnknownUnitError,
)
from core.resilience import RetryPolicy, conflict_retry_config
from db.interfaces import SessionStore
from domain.entities import (
    ExegeticalInsight,
    PromptConfig,
    QuizAttempt,
    QuizQuestion,
    SessionStatus,
    StudySession,
    TrainingUnit,
    UnitProgress,
    UserResponse,
    new_id,
)
from observability.logging import LogContext, get_logger
from observability.metrics import TutorMetrics, get_tutor_metrics
from observability.tracing import create_span
from tutor.engine import TutorEngine

logger = get_logger(__name__)

R = TypeVar("R")

INSIGHT_TITLE_LENGTH = 80


async def gather_fail_fast(coros: Sequence[Awaitable[R]]) -> List[R]:
    """
    Run coroutines concurrently and return their results in order.

    On the first failure the remaining tasks are cancelled and awaited
    before the error is re-raised, so no generation call outlives the
    operation that started it.
    """
    tasks = [asyncio.ensure_future(coro) for coro in coros]
    if not tasks:
        return []
    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        errors = [
            task.exception() for task in tasks if task in done and not task.cancelled()
        ]
        failures = [error for error in errors if error is not None]
        if failures:
            raise failures[0]
        return [task.result() for task in tasks]
    finally:
        unfinished = [task for task in tasks if not task.done()]
        for task in unfinished:
            task.cancel()
        if unfinished:
            await asyncio.gather(*unfinished, return_exceptions=True)
            logger.info("Cancelled pending unit generation", cancelled=len(unfinished))


@dataclass(frozen=True)
class QuizAnswerResult:
    """Outcome of answering one quiz question."""
    attempt: QuizAttempt
    correct_answer: str
    explanation: str
    progress: Optional[UnitProgress]

    @property
    def is_correct(self) -> bool:
        return self.attempt.is_correct


class StudySessionService:
    """
    Orchestrates TutorEngine output into persisted study sessions.

    Usage:
        service = StudySessionService(store, engine, config.tutor)
        session = await service.generate_session("user-1", "John 1:1")
        response = await service.submit_response(session.id, unit_id, "...")
    """

    def __init__(
        self,
        store: SessionStore,
        engine: TutorEngine,
        config: Optional[TutorConfig] = None,
        metrics: Optional[TutorMetrics] = None,
    ) -> None:
        self.store = store
        self.engine = engine
        self.config = config or TutorConfig()
        self._metrics = metrics
        self._conflict_policy = RetryPolicy(
            conflict_retry_config(self.config.max_update_attempts)
        )

    @property
    def metrics(self) -> TutorMetrics:
        return self._metrics or get_tutor_metrics()

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _load(self, session_id: str) -> StudySession:
        session = await self.store.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(
                f"Session {session_id} not found", session_id=session_id
            )
        return session

    async def _update(
        self, session_id: str, mutate: Callable[[StudySession], R]
    ) -> Tuple[R, StudySession]:
        """Apply ``mutate`` to the latest session and write it back."""

        async def attempt() -> Tuple[R, StudySession]:
            session = await self._load(session_id)
            result = mutate(session)
            await self.store.update_session(session)
            return result, session

        return await self._conflict_policy.run(attempt)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start_session(
        self,
        user_id: str,
        passage: str,
        units: Sequence[TrainingUnit] = (),
    ) -> StudySession:
        """Create and persist an ACTIVE session, binding ``units`` to it."""
        session = StudySession.start(user_id, passage)
        for unit in units:
            session.add_unit(unit)
        await self.store.create_session(session)
        logger.info(
            "Study session started",
            session_id=session.id,
            user_id=user_id,
            passage=session.passage,
            units=len(session.units),
        )
        return session

    async def generate_session(
        self,
        user_id: str,
        passage: str,
        grounding_id: Optional[str] = None,
        prompt_config: Optional[PromptConfig] = None,
        language: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> StudySession:
        """Identify forms, build one unit per form and persist them as a new session."""
        with create_span("sessions.generate_session", {"session.passage": passage}):
            forms = await self.engine.identify_forms(
                passage,
                grounding_id=grounding_id,
                prompt_config=prompt_config,
                language=language,
                timeout=timeout,
            )
            if not forms:
                logger.warning("No forms identified for passage", passage=passage)

            units = await gather_fail_fast(
                [
                    self.engine.create_training_unit(
                        form,
                        passage,
                        grounding_id=grounding_id,
                        prompt_config=prompt_config,
                        language=language,
                        timeout=timeout,
                    )
                    for form in forms
                ]
            )
            return await self.start_session(user_id, passage, units)

    async def add_unit(self, session_id: str, unit: TrainingUnit) -> TrainingUnit:
        """Append a unit to an ACTIVE session. Returns the unit bound to the session."""
        bound, _ = await self._update(session_id, lambda s: s.add_unit(unit))
        logger.debug("Unit appended", session_id=session_id, unit_id=bound.id)
        return bound

    async def submit_response(
        self,
        session_id: str,
        unit_id: str,
        user_answer: str,
        grounding_id: Optional[str] = None,
        language: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> UserResponse:
        """
        Evaluate and record the learner's answer for one unit.

        All guards run before the evaluation call, so a rejected submission
        costs no generation. Each unit accepts one response.
        """
        with LogContext(session_id=session_id, unit_id=unit_id):
            session = await self._load(session_id)
            unit = session.ensure_can_respond(unit_id)

            evaluation = await self.engine.evaluate_response(
                unit,
                user_answer,
                grounding_id=grounding_id,
                language=language,
                timeout=timeout,
            )
            response = UserResponse(
                id=new_id(),
                unit_id=unit_id,
                user_answer=user_answer,
                feedback=evaluation.feedback,
                is_correct=evaluation.is_correct,
            )
            await self._update(session_id, lambda s: s.record_response(response))
            self.metrics.record_response(response.is_correct)
            logger.info("Response recorded", is_correct=response.is_correct)
            return response

    async def complete_session(self, session_id: str) -> StudySession:
        _, session = await self._update(session_id, lambda s: s.complete())
        logger.info(
            "Study session completed",
            session_id=session_id,
            units=len(session.units),
            responses=len(session.responses),
        )
        return session

    async def get_session(self, session_id: str) -> Optional[StudySession]:
        return await self.store.get_session(session_id)

    async def list_sessions(
        self,
        user_id: str,
        status: Optional[SessionStatus] = None,
        passage_contains: Optional[str] = None,
    ) -> List[StudySession]:
        """A user's sessions, most recently updated first."""
        sessions = await self.store.list_sessions(user_id)
        if status is not None:
            sessions = [s for s in sessions if s.status is status]
        if passage_contains:
            needle = passage_contains.casefold()
            sessions = [s for s in sessions if needle in s.passage.casefold()]
        return sorted(sessions, key=lambda s: s.updated_at, reverse=True)

    async def delete_session(self, session_id: str, user_id: str) -> bool:
        """Delete a session and its insights. Only the owner may delete."""
        session = await self._load(session_id)
        if session.user_id != user_id:
            raise SessionOwnershipError(
                f"User {user_id} does not own session {session_id}",
                session_id=session_id,
            )
        deleted = await self.store.delete_session(session_id)
        logger.info("Study session deleted", session_id=session_id, deleted=deleted)
        return deleted

    # -------------------------------------------------------------------------
    # Insights
    # -------------------------------------------------------------------------

    async def save_insight(
        self,
        session_id: str,
        content: str,
        unit_id: Optional[str] = None,
        title: str = "",
        question: str = "",
        tags: Sequence[str] = (),
    ) -> ExegeticalInsight:
        session = await self._load(session_id)
        unit = session.get_unit(unit_id) if unit_id else None
        if unit_id and unit is None:
            raise UnknownUnitError(
                f"Unit {unit_id} does not belong to session {session_id}",
                session_id=session_id,
                unit_id=unit_id,
            )

        insight = ExegeticalInsight(
            id=new_id(),
            session_id=session_id,
            unit_id=unit_id,
            user_id=session.user_id,
            title=title.strip() or self._derive_title(session, unit, question),
            question=question,
            content=content,
            tags=ExegeticalInsight.clean_tags(tags, limit=self.config.max_insight_tags),
        )
        await self.store.save_insight(insight)
        logger.info("Insight saved", session_id=session_id, insight_id=insight.id)
        return insight

    @staticmethod
    def _derive_title(
        session: StudySession, unit: Optional[TrainingUnit], question: str
    ) -> str:
        if question.strip():
            title = question.strip()
        elif unit is not None:
            title = f"{unit.greek_form.text} ({session.passage})"
        else:
            title = session.passage
        if len(title) > INSIGHT_TITLE_LENGTH:
            title = title[: INSIGHT_TITLE_LENGTH - 3].rstrip() + "..."
        return title

    async def get_insights(self, session_id: str) -> List[ExegeticalInsight]:
        return await self.store.get_insights_by_session(session_id)

    # -------------------------------------------------------------------------
    # Progress
    # -------------------------------------------------------------------------

    async def track_section_view(
        self, session_id: str, unit_id: str, section: str
    ) -> Optional[UnitProgress]:
        """
        Mark a unit section as viewed (mastery at least 1).

        Returns None when the progress could not be persisted.
        """
        try:
            progress, _ = await self._update(
                session_id, lambda s: s.record_section_view(unit_id, section)
            )
        except SessionStoreError as e:
            logger.warning(
                "Section view not persisted",
                session_id=session_id,
                unit_id=unit_id,
                section=section,
                error=type(e).__name__,
            )
            return None
        return progress

    async def submit_quiz_answer(
        self,
        session_id: str,
        unit_id: str,
        question: QuizQuestion,
        user_answer: str,
    ) -> QuizAnswerResult:
        """Grade a quiz answer and fold it into the unit's mastery level."""
        attempt = QuizAttempt(
            id=new_id(),
            unit_id=unit_id,
            question_id=question.id,
            user_answer=user_answer,
            is_correct=question.is_correct_answer(user_answer),
        )
        try:
            progress, _ = await self._update(
                session_id, lambda s: s.record_quiz_attempt(attempt)
            )
        except SessionStoreError as e:
            logger.warning(
                "Quiz attempt not persisted",
                session_id=session_id,
                unit_id=unit_id,
                question_id=question.id,
                error=type(e).__name__,
            )
            progress = None

        return QuizAnswerResult(
            attempt=attempt,
            correct_answer=question.correct_answer,
            explanation=question.explanation,
            progress=progress,
        )
