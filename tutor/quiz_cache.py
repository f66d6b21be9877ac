"""
PAIDEIA - Quiz Cache

Quiz questions are expensive to generate and depend only on the
grammatical identity of a unit and the answer language, so question sets
are pooled across units by fingerprint.

Lookup has three outcomes:
- hit with enough questions: serve the first ``count``, rewritten to the
  requesting unit, no generation;
- miss (absent or too few): generate exactly once, store, serve;
- store failure on read: treated as a miss.

Writes are best-effort. A failed write is logged and counted, never raised.
"""
from __future__ import annotations

import unicodedata
from typing import List, Optional, Sequence

from core.errors import GenerationParseError, TutorValidationError
from db.interfaces import SessionStore
from domain.entities import QuizQuestion, QuizQuestionType, TrainingUnit, new_id
from observability.logging import get_logger
from observability.metrics import TutorMetrics, get_tutor_metrics
from observability.tracing import create_span
from tutor import prompts
from tutor.generation import GenerationOptions, ResilientGenerator, extract_json
from tutor.schemas import QuizPayload, parse_payload

logger = get_logger(__name__)

QUIZ_TEMPERATURE = 0.7


def normalize_key_part(value: str) -> str:
    """NFC-normalize, trim and case-fold one fingerprint component."""
    return unicodedata.normalize("NFC", value or "").strip().casefold()


def quiz_fingerprint(unit: TrainingUnit, language: str) -> str:
    """
    Cache key for a unit's quiz: ``lemma:category:language``.

    Example: a unit for the lemma "eimi" in category "Verb" quizzed in
    Spanish has fingerprint ``"eimi:verb:es"``.
    """
    form = unit.greek_form
    return ":".join(
        normalize_key_part(part)
        for part in (form.lemma, form.grammatical_category, language)
    )


class QuizCache:
    """Fingerprint-keyed quiz cache in front of quiz generation."""

    def __init__(
        self,
        store: SessionStore,
        generator: ResilientGenerator,
        default_language: str = "es",
        default_count: int = 3,
        metrics: Optional[TutorMetrics] = None,
    ) -> None:
        self.store = store
        self.generator = generator
        self.default_language = default_language
        self.default_count = default_count
        self._metrics = metrics

    @property
    def metrics(self) -> TutorMetrics:
        return self._metrics or get_tutor_metrics()

    async def get_quiz_questions(
        self,
        unit: TrainingUnit,
        count: Optional[int] = None,
        grounding_id: Optional[str] = None,
        language: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> List[QuizQuestion]:
        count = self.default_count if count is None else count
        if count < 1:
            raise TutorValidationError(
                f"Quiz question count must be at least 1: {count}",
                field_name="count",
                actual_value=count,
            )
        language = language or self.default_language
        fingerprint = quiz_fingerprint(unit, language)

        with create_span(
            "quiz_cache.get_quiz_questions",
            {"quiz.fingerprint": fingerprint, "quiz.count": count, "unit.id": unit.id},
        ) as span:
            cached = await self._read(fingerprint)

            if cached is not None and len(cached) >= count:
                span.set_attribute("quiz.cache_hit", True)
                self.metrics.record_cache_access(hit=True)
                served = [q.served_for(unit.id) for q in cached[:count]]
                await self._write(fingerprint, served + list(cached[count:]))
                logger.info(
                    "Quiz cache hit",
                    fingerprint=fingerprint,
                    unit_id=unit.id,
                    served=len(served),
                )
                return served

            span.set_attribute("quiz.cache_hit", False)
            self.metrics.record_cache_access(hit=False)
            logger.info(
                "Quiz cache miss",
                fingerprint=fingerprint,
                unit_id=unit.id,
                cached=len(cached) if cached is not None else 0,
            )
            questions = await self._generate(
                unit, count, fingerprint, grounding_id, language, timeout
            )
            await self._write(fingerprint, questions)
            return questions

    async def _read(self, fingerprint: str) -> Optional[List[QuizQuestion]]:
        try:
            return await self.store.get_cached_quiz(fingerprint)
        except Exception as e:
            logger.warning(
                "Quiz cache read failed, generating instead",
                fingerprint=fingerprint,
                error=type(e).__name__,
                detail=str(e),
            )
            return None

    async def _write(self, fingerprint: str, questions: Sequence[QuizQuestion]) -> None:
        try:
            await self.store.cache_quiz(fingerprint, questions)
        except Exception as e:
            self.metrics.record_cache_write_failure("quiz")
            logger.warning(
                "Quiz cache write failed",
                fingerprint=fingerprint,
                error=type(e).__name__,
                detail=str(e),
            )

    async def _generate(
        self,
        unit: TrainingUnit,
        count: int,
        fingerprint: str,
        grounding_id: Optional[str],
        language: str,
        timeout: Optional[float],
    ) -> List[QuizQuestion]:
        prompt = prompts.quiz(unit, count, prompts.language_name(language))
        options = GenerationOptions(
            grounding_id=grounding_id,
            response_format="json",
            language=language,
            system_instruction=prompt.system,
            temperature=QUIZ_TEMPERATURE,
            operation="quiz",
        )
        text = await self.generator.generate(prompt.user, options, timeout=timeout)

        data = extract_json(text, operation="quiz")
        if isinstance(data, list):
            data = {"questions": data}
        payload = parse_payload(QuizPayload, data, operation="quiz")

        if len(payload.questions) < count:
            raise GenerationParseError(
                f"Generated {len(payload.questions)} quiz questions, {count} requested",
                raw_text=text[:500],
                operation="quiz",
            )

        return [
            QuizQuestion(
                id=new_id(),
                unit_id=unit.id,
                type=QuizQuestionType(item.type),
                question=item.question,
                options=tuple(item.options),
                correct_answer=item.correct_answer,
                explanation=item.explanation,
                usage_count=1,
                fingerprint=fingerprint,
            )
            for item in payload.questions[:count]
        ]
