"""
PAIDEIA - SQL Session Store

SessionStore on SQLAlchemy 2.0 async. Works against PostgreSQL (asyncpg)
and SQLite (aiosqlite).

Session updates are ``UPDATE ... WHERE id = ? AND version = ?``; a zero
row count means another writer got there first. Cache tables use the
dialect's native ``INSERT ... ON CONFLICT DO UPDATE``.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Dict, List, Optional, Sequence, Type

from sqlalchemy import delete, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from core.errors import ConcurrencyConflictError, PaideiaError, SessionStoreError
from db.interfaces import SessionStore
from db.models import (
    Base,
    InsightRecord,
    QuizCacheRecord,
    StudySessionRecord,
    SyntaxAnalysisRecord,
)
from domain.entities import ExegeticalInsight, QuizQuestion, StudySession
from domain.syntax import PassageSyntaxAnalysis, analysis_from_dict, analysis_to_dict
from observability.logging import get_logger
from observability.tracing import span_decorator

logger = get_logger(__name__)


class SQLSessionStore(SessionStore):
    """
    Async SQL implementation of SessionStore.

    Usage:
        store = SQLSessionStore("sqlite+aiosqlite:///./paideia.db")
        await store.initialize(create_tables=True)
        ...
        await store.close()
    """

    backend_name = "sql"

    def __init__(
        self,
        database_url: str,
        pool_size: int = 5,
        echo: bool = False,
    ):
        self.database_url = database_url
        self.pool_size = pool_size
        self.echo = echo

        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    async def initialize(self, create_tables: bool = False) -> None:
        """Create the engine and session factory."""
        if self._engine is not None:
            return

        engine_kwargs: Dict[str, Any] = {"echo": self.echo}
        if self.database_url.startswith("sqlite"):
            if ":memory:" in self.database_url:
                # One shared connection, or each session sees an empty database
                engine_kwargs["poolclass"] = StaticPool
                engine_kwargs["connect_args"] = {"check_same_thread": False}
        else:
            engine_kwargs.update(
                pool_size=self.pool_size,
                pool_pre_ping=True,
                pool_recycle=1800,
            )

        self._engine = create_async_engine(self.database_url, **engine_kwargs)
        self._session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

        if create_tables:
            await self.create_tables()

        logger.info(
            "SQL session store initialized",
            dialect=self._engine.dialect.name,
        )

    async def create_tables(self) -> None:
        """Create all tables."""
        if self._engine is None:
            await self.initialize()
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        """Close database connections."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("SQL session store closed")

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Transactional session; backend failures surface as SessionStoreError."""
        if self._session_factory is None:
            await self.initialize()

        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except PaideiaError:
                await session.rollback()
                raise
            except SQLAlchemyError as e:
                await session.rollback()
                raise SessionStoreError(
                    f"Database operation failed: {e.__class__.__name__}",
                    backend=self.backend_name,
                    cause=e,
                ) from e

    async def _upsert(
        self,
        session: AsyncSession,
        model: Type[Base],
        key: str,
        values: Dict[str, Any],
    ) -> None:
        dialect = session.bind.dialect.name
        if dialect == "postgresql":
            stmt = postgresql.insert(model).values(**values)
        elif dialect == "sqlite":
            stmt = sqlite.insert(model).values(**values)
        else:
            await session.merge(model(**values))
            return
        stmt = stmt.on_conflict_do_update(
            index_elements=[key],
            set_={k: v for k, v in values.items() if k != key},
        )
        await session.execute(stmt)

    # -------------------------------------------------------------------------
    # Sessions
    # -------------------------------------------------------------------------

    @staticmethod
    def _session_values(session: StudySession, version: int) -> Dict[str, Any]:
        document = session.to_dict()
        document["version"] = version
        return {
            "user_id": session.user_id,
            "passage": session.passage,
            "status": session.status.value,
            "version": version,
            "document": document,
            "created_at": session.created_at,
            "updated_at": session.updated_at,
        }

    @staticmethod
    def _to_session(record: StudySessionRecord) -> StudySession:
        document = dict(record.document)
        document["version"] = record.version
        return StudySession.from_dict(document)

    @span_decorator("store.create_session")
    async def create_session(self, session: StudySession) -> None:
        try:
            async with self.session() as db:
                db.add(StudySessionRecord(id=session.id, **self._session_values(session, 1)))
                await db.flush()
        except SessionStoreError as e:
            if isinstance(e.cause, IntegrityError):
                raise SessionStoreError(
                    f"Session {session.id} already exists",
                    backend=self.backend_name,
                    cause=e.cause,
                ) from e
            raise
        session.version = 1

    async def get_session(self, session_id: str) -> Optional[StudySession]:
        async with self.session() as db:
            record = await db.get(StudySessionRecord, session_id)
            return self._to_session(record) if record is not None else None

    @span_decorator("store.update_session")
    async def update_session(self, session: StudySession) -> None:
        new_version = session.version + 1
        values = self._session_values(session, new_version)
        try:
            async with self.session() as db:
                result = await db.execute(
                    update(StudySessionRecord)
                    .where(
                        StudySessionRecord.id == session.id,
                        StudySessionRecord.version == session.version,
                    )
                    .values(**values)
                )
                if result.rowcount == 0:
                    current = await db.scalar(
                        select(StudySessionRecord.version).where(
                            StudySessionRecord.id == session.id
                        )
                    )
                    if current is not None or session.version != 0:
                        raise ConcurrencyConflictError(
                            f"Session {session.id} was modified concurrently",
                            session_id=session.id,
                            expected_version=session.version,
                            actual_version=current or 0,
                            backend=self.backend_name,
                        )
                    db.add(StudySessionRecord(id=session.id, **values))
                    await db.flush()
        except SessionStoreError as e:
            # Lost an insert race on an unsaved session
            if isinstance(e.cause, IntegrityError):
                raise ConcurrencyConflictError(
                    f"Session {session.id} was created concurrently",
                    session_id=session.id,
                    expected_version=session.version,
                    backend=self.backend_name,
                    cause=e.cause,
                ) from e
            raise
        session.version = new_version

    async def list_sessions(self, user_id: str) -> List[StudySession]:
        async with self.session() as db:
            result = await db.execute(
                select(StudySessionRecord).where(StudySessionRecord.user_id == user_id)
            )
            return [self._to_session(r) for r in result.scalars().all()]

    async def delete_session(self, session_id: str) -> bool:
        async with self.session() as db:
            result = await db.execute(
                delete(StudySessionRecord).where(StudySessionRecord.id == session_id)
            )
            await db.execute(
                delete(InsightRecord).where(InsightRecord.session_id == session_id)
            )
            return result.rowcount > 0

    # -------------------------------------------------------------------------
    # Insights
    # -------------------------------------------------------------------------

    async def save_insight(self, insight: ExegeticalInsight) -> None:
        async with self.session() as db:
            db.add(
                InsightRecord(
                    id=insight.id,
                    session_id=insight.session_id,
                    unit_id=insight.unit_id,
                    content=insight.content,
                    document=insight.to_dict(),
                    created_at=insight.created_at,
                )
            )

    async def get_insights_by_session(self, session_id: str) -> List[ExegeticalInsight]:
        async with self.session() as db:
            result = await db.execute(
                select(InsightRecord)
                .where(InsightRecord.session_id == session_id)
                .order_by(InsightRecord.created_at)
            )
            return [ExegeticalInsight.from_dict(r.document) for r in result.scalars().all()]

    # -------------------------------------------------------------------------
    # Shared caches
    # -------------------------------------------------------------------------

    async def get_cached_quiz(self, fingerprint: str) -> Optional[List[QuizQuestion]]:
        async with self.session() as db:
            record = await db.get(QuizCacheRecord, fingerprint)
            if record is None:
                return None
            return [QuizQuestion.from_dict(q) for q in record.questions]

    async def cache_quiz(self, fingerprint: str, questions: Sequence[QuizQuestion]) -> None:
        async with self.session() as db:
            await self._upsert(
                db,
                QuizCacheRecord,
                "fingerprint",
                {
                    "fingerprint": fingerprint,
                    "questions": [q.to_dict() for q in questions],
                    "updated_at": datetime.now(timezone.utc),
                },
            )

    async def get_cached_syntax_analysis(
        self, passage_reference: str
    ) -> Optional[PassageSyntaxAnalysis]:
        async with self.session() as db:
            record = await db.get(SyntaxAnalysisRecord, passage_reference)
            return analysis_from_dict(record.document) if record is not None else None

    async def cache_syntax_analysis(self, analysis: PassageSyntaxAnalysis) -> None:
        async with self.session() as db:
            await self._upsert(
                db,
                SyntaxAnalysisRecord,
                "passage_reference",
                {
                    "passage_reference": analysis.passage_reference,
                    "document": analysis_to_dict(analysis),
                    "analyzed_at": analysis.analyzed_at,
                },
            )
