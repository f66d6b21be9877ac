"""
PAIDEIA - Service Factory

Wires configuration into a ready tutor: generation client, session store,
quiz cache, engine, session service and syntax analyzer.

Usage:
    from config import get_config
    from tutor.factory import build_tutor

    tutor = await build_tutor(get_config())
    try:
        session = await tutor.sessions.generate_session("user-1", "John 1:1")
    finally:
        await tutor.close()
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from config import Config, StoreBackend, get_config
from core.resilience import RetryConfig, RetryPolicy
from db.interfaces import SessionStore
from db.memory import InMemorySessionStore
from db.sql_store import SQLSessionStore
from observability.logging import get_logger
from tutor.engine import TutorEngine
from tutor.generation import GeminiGenerationClient, GenerationClient, ResilientGenerator
from tutor.quiz_cache import QuizCache
from tutor.sessions import StudySessionService
from tutor.syntax_analyzer import SyntaxAnalyzer

logger = get_logger(__name__)


@dataclass
class Tutor:
    """The assembled services. close() releases the client and the store."""
    config: Config
    client: GenerationClient
    store: SessionStore
    generator: ResilientGenerator
    quiz_cache: QuizCache
    engine: TutorEngine
    sessions: StudySessionService
    syntax: SyntaxAnalyzer

    async def close(self) -> None:
        aclose = getattr(self.client, "aclose", None)
        if aclose is not None:
            await aclose()
        await self.store.close()
        logger.info("Tutor closed")


async def create_store(config: Config) -> SessionStore:
    """Create the configured SessionStore backend."""
    if config.store.backend is StoreBackend.SQL:
        store = SQLSessionStore(
            config.store.database_url,
            pool_size=config.store.pool_size,
            echo=config.store.echo,
        )
        await store.initialize(create_tables=True)
        return store
    return InMemorySessionStore()


async def build_tutor(
    config: Optional[Config] = None,
    client: Optional[GenerationClient] = None,
    store: Optional[SessionStore] = None,
) -> Tutor:
    """
    Assemble a Tutor.

    ``client`` and ``store`` override the configured Gemini client and
    store backend.
    """
    config = config or get_config()
    client = client or GeminiGenerationClient(config.generation)
    store = store or await create_store(config)

    generator = ResilientGenerator(
        client,
        retry_policy=RetryPolicy(
            RetryConfig(
                max_attempts=config.generation.max_attempts,
                base_delay=config.generation.base_delay,
                max_delay=config.generation.max_delay,
            )
        ),
        default_timeout=config.generation.timeout_seconds,
    )
    quiz_cache = QuizCache(
        store,
        generator,
        default_language=config.tutor.default_language,
        default_count=config.tutor.quiz_default_count,
    )
    engine = TutorEngine(generator, quiz_cache, config.tutor)

    logger.info(
        "Tutor assembled",
        store=type(store).__name__,
        client=type(client).__name__,
        model=config.generation.model,
    )
    return Tutor(
        config=config,
        client=client,
        store=store,
        generator=generator,
        quiz_cache=quiz_cache,
        engine=engine,
        sessions=StudySessionService(store, engine, config.tutor),
        syntax=SyntaxAnalyzer(store, generator, default_language=config.tutor.default_language),
    )
