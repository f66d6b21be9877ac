"""
PAIDEIA - Tutor Engine

Stateless pedagogical operations over the generation capability:
form selection, training units, answer evaluation, morphology breakdowns,
free questions and quizzes. Nothing here touches session state; the
session service persists what the engine produces.

Every operation bounds each generation call by ``timeout`` and retries
timeouts and rate limits. Malformed output raises GenerationParseError
and is never retried.
"""
from __future__ import annotations

from typing import Any, List, Optional

from config import TutorConfig
from core.errors import GenerationParseError
from domain.entities import (
    Evaluation,
    GreekForm,
    MorphemeComponent,
    MorphemeType,
    MorphologyBreakdown,
    PromptConfig,
    QuestionContext,
    QuizQuestion,
    TrainingUnit,
    new_id,
)
from observability.logging import get_logger
from observability.tracing import create_span
from tutor import prompts
from tutor.generation import GenerationOptions, ResilientGenerator, extract_json
from tutor.quiz_cache import QuizCache
from tutor.schemas import (
    EvaluationPayload,
    MorphologyPayload,
    TrainingUnitPayload,
    parse_payload,
)

logger = get_logger(__name__)

FREE_QUESTION_TEMPERATURE = 0.7

# Keys under which models tend to wrap a list of forms
FORM_LIST_KEYS = ("forms", "greekForms", "words", "items")


def forms_from_payload(data: Any) -> Optional[List[Any]]:
    """
    Find the list of forms in a decoded reply.

    Accepts a bare array, an object with one of FORM_LIST_KEYS, or an
    object with any array value. Returns None when there is no array.
    """
    if isinstance(data, list):
        return data
    if not isinstance(data, dict):
        return None
    for key in FORM_LIST_KEYS:
        if isinstance(data.get(key), list):
            return data[key]
    for value in data.values():
        if isinstance(value, list):
            return value
    return None


class TutorEngine:
    """
    Generation-backed tutoring operations.

    Usage:
        engine = TutorEngine(generator, quiz_cache, config.tutor)
        forms = await engine.identify_forms("Ἐν ἀρχῇ ἦν ὁ λόγος")
        unit = await engine.create_training_unit(forms[0], "John 1:1")
    """

    def __init__(
        self,
        generator: ResilientGenerator,
        quiz_cache: QuizCache,
        config: Optional[TutorConfig] = None,
    ) -> None:
        self.generator = generator
        self.quiz_cache = quiz_cache
        self.config = config or TutorConfig()

    def _language(self, language: Optional[str]) -> str:
        return language or self.config.default_language

    async def _generate(
        self,
        prompt: prompts.Prompt,
        operation: str,
        grounding_id: Optional[str],
        language: str,
        response_format: str = "json",
        temperature: Optional[float] = None,
        timeout: Optional[float] = None,
    ) -> str:
        options = GenerationOptions(
            grounding_id=grounding_id,
            response_format=response_format,  # type: ignore[arg-type]
            language=language,
            system_instruction=prompt.system,
            temperature=temperature,
            operation=operation,
        )
        return await self.generator.generate(prompt.user, options, timeout=timeout)

    # -------------------------------------------------------------------------
    # Forms and units
    # -------------------------------------------------------------------------

    async def identify_forms(
        self,
        passage: str,
        grounding_id: Optional[str] = None,
        prompt_config: Optional[PromptConfig] = None,
        language: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> List[str]:
        """Select the exegetically significant forms of a passage."""
        language = self._language(language)
        with create_span("tutor.identify_forms", {"tutor.grounded": bool(grounding_id)}):
            prompt = prompts.form_selection(
                passage, prompts.language_name(language), prompt_config
            )
            text = await self._generate(
                prompt, "identify_forms", grounding_id, language, timeout=timeout
            )
            data = extract_json(text, operation="identify_forms")

            forms = forms_from_payload(data)
            if forms is None:
                logger.warning(
                    "Form selection reply held no list of forms",
                    keys=sorted(data.keys()) if isinstance(data, dict) else None,
                )
                return []
            return [str(f).strip() for f in forms if f is not None and str(f).strip()]

    async def create_training_unit(
        self,
        form: str,
        passage: str,
        grounding_id: Optional[str] = None,
        prompt_config: Optional[PromptConfig] = None,
        language: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> TrainingUnit:
        """Generate a training unit for one form. The unit is not bound to a session."""
        language = self._language(language)
        with create_span("tutor.create_training_unit", {"tutor.form": form}):
            prompt = prompts.training_unit(
                form, passage, prompts.language_name(language), prompt_config
            )
            text = await self._generate(
                prompt, "training_unit", grounding_id, language, timeout=timeout
            )
            payload = parse_payload(
                TrainingUnitPayload,
                extract_json(text, operation="training_unit"),
                operation="training_unit",
            )

        gf = payload.greek_form
        return TrainingUnit(
            id=new_id(),
            session_id="",
            greek_form=GreekForm(
                text=gf.text,
                transliteration=gf.transliteration,
                lemma=gf.lemma,
                morphology=gf.morphology,
                gloss=gf.gloss,
                grammatical_category=gf.grammatical_category,
            ),
            identification=payload.identification,
            recognition_guidance=payload.recognition_guidance or None,
            function_in_context=payload.function_in_context,
            significance=payload.significance,
            reflective_question=payload.reflective_question,
        )

    # -------------------------------------------------------------------------
    # Evaluation and explanation
    # -------------------------------------------------------------------------

    async def evaluate_response(
        self,
        unit: TrainingUnit,
        user_answer: str,
        grounding_id: Optional[str] = None,
        language: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> Evaluation:
        language = self._language(language)
        with create_span("tutor.evaluate_response", {"unit.id": unit.id}):
            prompt = prompts.feedback(unit, user_answer, prompts.language_name(language))
            text = await self._generate(
                prompt, "evaluate_response", grounding_id, language, timeout=timeout
            )
            payload = parse_payload(
                EvaluationPayload,
                extract_json(text, operation="evaluate_response"),
                operation="evaluate_response",
            )
        return Evaluation(feedback=payload.feedback, is_correct=payload.is_correct)

    async def explain_morphology(
        self,
        word: str,
        passage: str,
        grounding_id: Optional[str] = None,
        language: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> MorphologyBreakdown:
        language = self._language(language)
        with create_span("tutor.explain_morphology", {"tutor.word": word}):
            prompt = prompts.morphology(word, passage, prompts.language_name(language))
            text = await self._generate(
                prompt, "explain_morphology", grounding_id, language, timeout=timeout
            )
            payload = parse_payload(
                MorphologyPayload,
                extract_json(text, operation="explain_morphology"),
                operation="explain_morphology",
            )
        return MorphologyBreakdown(
            word=payload.word or word,
            components=tuple(
                MorphemeComponent(
                    part=c.part, type=MorphemeType.parse(c.type), meaning=c.meaning
                )
                for c in payload.components
            ),
            summary=payload.summary,
        )

    async def answer_free_question(
        self,
        question: str,
        context: Optional[QuestionContext] = None,
        grounding_id: Optional[str] = None,
        language: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> str:
        """Answer a free-form question, in markdown."""
        language = self._language(language)
        context = context or QuestionContext()
        general = not context.greek_word and not context.passage
        with create_span("tutor.answer_free_question", {"tutor.general": general}):
            prompt = prompts.free_question(question, context, prompts.language_name(language))
            text = await self._generate(
                prompt,
                "free_question",
                grounding_id,
                language,
                response_format="text",
                temperature=FREE_QUESTION_TEMPERATURE,
                timeout=timeout,
            )
        answer = text.strip()
        if not answer:
            raise GenerationParseError(
                "Generation returned an empty answer", raw_text=text, operation="free_question"
            )
        return answer

    # -------------------------------------------------------------------------
    # Quiz
    # -------------------------------------------------------------------------

    async def get_quiz_questions(
        self,
        unit: TrainingUnit,
        count: Optional[int] = None,
        grounding_id: Optional[str] = None,
        language: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> List[QuizQuestion]:
        return await self.quiz_cache.get_quiz_questions(
            unit,
            count if count is not None else self.config.quiz_default_count,
            grounding_id=grounding_id,
            language=self._language(language),
            timeout=timeout,
        )
