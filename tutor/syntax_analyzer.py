"""
PAIDEIA - Syntax Analyzer

Generation-backed clause analysis of a passage. The model proposes clauses
over indexed words; the proposal is admitted only through build_clause /
build_analysis and a full word-coverage check, so a cached analysis always
satisfies the ClauseGraph invariants. A rejected proposal surfaces as
GenerationParseError carrying the clause graph error as its cause.

Analyses are cached per passage reference in the SessionStore. Cache reads
and writes are best-effort.
"""
from __future__ import annotations

from typing import Optional, Sequence

from core.errors import GenerationParseError, TutorValidationError
from db.interfaces import SessionStore
from domain.syntax import (
    PassageSyntaxAnalysis,
    build_analysis,
    build_clause,
    check_word_coverage,
)
from observability.logging import get_logger
from observability.metrics import TutorMetrics, get_tutor_metrics
from observability.tracing import create_span
from tutor import prompts
from tutor.generation import GenerationOptions, ResilientGenerator, extract_json
from tutor.schemas import SyntaxPayload, parse_payload

logger = get_logger(__name__)


class SyntaxAnalyzer:
    """Builds and caches PassageSyntaxAnalysis objects."""

    def __init__(
        self,
        store: SessionStore,
        generator: ResilientGenerator,
        default_language: str = "es",
        metrics: Optional[TutorMetrics] = None,
    ) -> None:
        self.store = store
        self.generator = generator
        self.default_language = default_language
        self._metrics = metrics

    @property
    def metrics(self) -> TutorMetrics:
        return self._metrics or get_tutor_metrics()

    async def analyze(
        self,
        reference: str,
        words: Sequence[str],
        language: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> PassageSyntaxAnalysis:
        if not reference or not reference.strip():
            raise TutorValidationError("A passage reference is required", field_name="reference")
        if not words:
            raise TutorValidationError("A passage needs at least one word", field_name="words")

        language = language or self.default_language
        with create_span(
            "syntax.analyze", {"passage.reference": reference, "passage.words": len(words)}
        ) as span:
            cached = await self._read(reference)
            if cached is not None:
                span.set_attribute("syntax.cache_hit", True)
                self.metrics.record_cache_access(hit=True, cache_type="syntax")
                return cached

            span.set_attribute("syntax.cache_hit", False)
            self.metrics.record_cache_access(hit=False, cache_type="syntax")

            analysis = await self._generate(reference, words, language, timeout)
            await self._write(analysis)
            logger.info(
                "Syntax analysis built",
                reference=reference,
                clauses=len(analysis),
                words=len(words),
            )
            return analysis

    async def _generate(
        self,
        reference: str,
        words: Sequence[str],
        language: str,
        timeout: Optional[float],
    ) -> PassageSyntaxAnalysis:
        prompt = prompts.syntax_analysis(reference, words, prompts.language_name(language))
        options = GenerationOptions(
            response_format="json",
            language=language,
            system_instruction=prompt.system,
            operation="syntax_analysis",
        )
        text = await self.generator.generate(prompt.user, options, timeout=timeout)
        payload = parse_payload(
            SyntaxPayload,
            extract_json(text, operation="syntax_analysis"),
            operation="syntax_analysis",
        )

        try:
            clauses = [
                build_clause(
                    id=c.id,
                    type=c.type,
                    word_indices=c.word_indices,
                    main_verb_index=c.main_verb_index,
                    parent_clause_id=c.parent_clause_id,
                    conjunction=c.conjunction,
                    translation=c.translation,
                    syntactic_function=c.syntactic_function,
                    greek_text=" ".join(
                        words[i] for i in sorted(c.word_indices) if 0 <= i < len(words)
                    ),
                )
                for c in payload.clauses
            ]
            analysis = build_analysis(
                passage_reference=reference,
                clauses=clauses,
                root_clause_id=payload.root_clause_id,
                structure_description=payload.structure_description,
                word_count=len(words),
            )
            check_word_coverage(analysis, len(words))
        except TutorValidationError as e:
            # Clause graph violations here come from the model output
            raise GenerationParseError(
                f"Generated clause tree for {reference} is invalid: {e.message}",
                raw_text=text,
                operation="syntax_analysis",
                cause=e,
            ) from e
        return analysis

    async def _read(self, reference: str) -> Optional[PassageSyntaxAnalysis]:
        try:
            return await self.store.get_cached_syntax_analysis(reference)
        except Exception as e:
            logger.warning(
                "Syntax cache read failed, analyzing instead",
                reference=reference,
                error=type(e).__name__,
                detail=str(e),
            )
            return None

    async def _write(self, analysis: PassageSyntaxAnalysis) -> None:
        try:
            await self.store.cache_syntax_analysis(analysis)
        except Exception as e:
            self.metrics.record_cache_write_failure("syntax")
            logger.warning(
                "Syntax cache write failed",
                reference=analysis.passage_reference,
                error=type(e).__name__,
                detail=str(e),
            )
