"""
PAIDEIA - SQLAlchemy ORM Models

Tables backing SQLSessionStore. Aggregates are stored as JSON documents
next to the few columns that are queried or versioned.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, DateTime, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
Document = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class StudySessionRecord(Base):
    """One study session document with its optimistic-concurrency version."""
    __tablename__ = "study_sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), index=True)
    passage: Mapped[str] = mapped_column(String(255))
    status: Mapped[str] = mapped_column(String(16), index=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    document: Mapped[Dict[str, Any]] = mapped_column(Document, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        Index("idx_sessions_user_updated", "user_id", "updated_at"),
    )

    def __repr__(self) -> str:
        return f"<StudySessionRecord {self.id} v{self.version}>"


class InsightRecord(Base):
    """Append-only exegetical insight."""
    __tablename__ = "exegetical_insights"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    session_id: Mapped[str] = mapped_column(String(36), index=True)
    unit_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    content: Mapped[str] = mapped_column(Text)
    document: Mapped[Dict[str, Any]] = mapped_column(Document, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        Index("idx_insights_session_created", "session_id", "created_at"),
    )


class QuizCacheRecord(Base):
    """Question set shared by every unit with the same fingerprint."""
    __tablename__ = "quiz_cache"

    fingerprint: Mapped[str] = mapped_column(String(255), primary_key=True)
    questions: Mapped[List[Dict[str, Any]]] = mapped_column(Document, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class SyntaxAnalysisRecord(Base):
    """Cached syntax analysis, one per passage reference."""
    __tablename__ = "syntax_analyses"

    passage_reference: Mapped[str] = mapped_column(String(255), primary_key=True)
    document: Mapped[Dict[str, Any]] = mapped_column(Document, nullable=False)
    analyzed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
