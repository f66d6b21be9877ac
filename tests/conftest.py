"""
PAIDEIA - Test Configuration

Shared fixtures: a scripted generation client, an in-memory store and the
John 1:1 sample data used across the tutor tests.
"""
import json
from collections import deque
from typing import Any, Deque, List, Tuple, Union

import pytest

from config import TutorConfig
from core.resilience import RetryConfig, RetryPolicy
from db.memory import InMemorySessionStore
from domain.entities import GreekForm, TrainingUnit
from tutor.engine import TutorEngine
from tutor.generation import GenerationOptions, ResilientGenerator
from tutor.quiz_cache import QuizCache
from tutor.sessions import StudySessionService
from tutor.syntax_analyzer import SyntaxAnalyzer

Scripted = Union[str, BaseException]


class FakeGenerationClient:
    """
    GenerationClient that replays scripted replies.

    Each call pops the next reply; exceptions are raised instead of
    returned. Calls are recorded as (prompt, options) pairs.
    """

    def __init__(self, *replies: Scripted):
        self.replies: Deque[Scripted] = deque(replies)
        self.calls: List[Tuple[str, GenerationOptions]] = []

    def script(self, *replies: Scripted) -> None:
        self.replies.extend(replies)

    @property
    def call_count(self) -> int:
        return len(self.calls)

    @property
    def operations(self) -> List[str]:
        return [options.operation for _, options in self.calls]

    async def generate(self, prompt: str, options: GenerationOptions) -> str:
        self.calls.append((prompt, options))
        if not self.replies:
            raise AssertionError(f"Unexpected generation call: {options.operation}")
        reply = self.replies.popleft()
        if isinstance(reply, BaseException):
            raise reply
        return reply


def as_json(data: Any) -> str:
    return json.dumps(data, ensure_ascii=False)


# =============================================================================
# Sample payloads
# =============================================================================

JOHN_1_1 = "Ἐν ἀρχῇ ἦν ὁ λόγος, καὶ ὁ λόγος ἦν πρὸς τὸν θεόν, καὶ θεὸς ἦν ὁ λόγος."
JOHN_1_1_WORDS = [
    "Ἐν", "ἀρχῇ", "ἦν", "ὁ", "λόγος",
    "καὶ", "ὁ", "λόγος", "ἦν", "πρὸς", "τὸν", "θεόν",
    "καὶ", "θεὸς", "ἦν", "ὁ", "λόγος",
]


def unit_payload(
    text: str = "ἦν",
    lemma: str = "eimi",
    category: str = "Verb",
) -> dict:
    return {
        "identification": "Imperfect active indicative, 3rd person singular",
        "recognitionGuidance": "Augmented stem without a personal ending",
        "functionInContext": "Main verb asserting the Word's existence",
        "significance": "The imperfect presents continuous existence in the beginning",
        "reflectiveQuestion": "Why does John use the imperfect rather than the aorist?",
        "greekForm": {
            "text": text,
            "transliteration": "ēn",
            "lemma": lemma,
            "morphology": "V-IAI-3S",
            "gloss": "was",
            "grammaticalCategory": category,
        },
    }


def quiz_payload(count: int) -> dict:
    return {
        "questions": [
            {
                "type": "multiple-choice",
                "question": f"Pregunta {i + 1}",
                "options": ["A", "B", "C", "D"],
                "correctAnswer": "A",
                "explanation": "Porque A.",
            }
            for i in range(count)
        ]
    }


def syntax_payload() -> dict:
    return {
        "clauses": [
            {
                "id": "c1",
                "type": "MAIN",
                "wordIndices": [0, 1, 2, 3, 4],
                "mainVerbIndex": 2,
                "parentClauseId": None,
                "translation": "In the beginning was the Word",
            },
            {
                "id": "c2",
                "type": "MAIN",
                "wordIndices": [5, 6, 7, 8, 9, 10, 11],
                "mainVerbIndex": 8,
                "parentClauseId": None,
                "conjunction": "καὶ",
            },
            {
                "id": "c3",
                "type": "MAIN",
                "wordIndices": [12, 13, 14, 15, 16],
                "mainVerbIndex": 14,
                "parentClauseId": None,
                "conjunction": "καὶ",
            },
        ],
        "rootClauseId": "c1",
        "structureDescription": "Three coordinated main clauses",
    }


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def fake_client() -> FakeGenerationClient:
    return FakeGenerationClient()


@pytest.fixture
def store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def tutor_config() -> TutorConfig:
    return TutorConfig(
        default_language="es",
        quiz_default_count=3,
        max_update_attempts=5,
        max_insight_tags=10,
    )


@pytest.fixture
def generator(fake_client) -> ResilientGenerator:
    """Retries three times with no backoff."""
    return ResilientGenerator(
        fake_client,
        retry_policy=RetryPolicy(RetryConfig(max_attempts=3, base_delay=0.0, jitter=False)),
        default_timeout=5.0,
    )


@pytest.fixture
def quiz_cache(store, generator, tutor_config) -> QuizCache:
    return QuizCache(
        store,
        generator,
        default_language=tutor_config.default_language,
        default_count=tutor_config.quiz_default_count,
    )


@pytest.fixture
def engine(generator, quiz_cache, tutor_config) -> TutorEngine:
    return TutorEngine(generator, quiz_cache, tutor_config)


@pytest.fixture
def session_service(store, engine, tutor_config) -> StudySessionService:
    return StudySessionService(store, engine, tutor_config)


@pytest.fixture
def syntax_analyzer(store, generator) -> SyntaxAnalyzer:
    return SyntaxAnalyzer(store, generator, default_language="es")


@pytest.fixture
def greek_form() -> GreekForm:
    return GreekForm(
        text="ἦν",
        transliteration="ēn",
        lemma="eimi",
        morphology="V-IAI-3S",
        gloss="was",
        grammatical_category="Verb",
    )


@pytest.fixture
def training_unit(greek_form) -> TrainingUnit:
    return TrainingUnit(
        id="unit-1",
        session_id="",
        greek_form=greek_form,
        identification="Imperfect active indicative",
        function_in_context="Main verb",
        significance="Continuous existence",
        reflective_question="Why the imperfect?",
    )
