"""
PAIDEIA - Persistence Layer

SessionStore contract plus two backends:
- InMemorySessionStore: process-local, used by tests and single-process runs
- SQLSessionStore: SQLAlchemy async (PostgreSQL or SQLite)
"""
from db.interfaces import SessionStore
from db.memory import InMemorySessionStore
from db.sql_store import SQLSessionStore

__all__ = [
    "SessionStore",
    "InMemorySessionStore",
    "SQLSessionStore",
]
