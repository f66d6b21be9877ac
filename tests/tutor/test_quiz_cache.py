"""
Tests for tutor/quiz_cache.py - Fingerprint-keyed quiz cache.

Covers:
- Miss: exactly one generation, count honoured, stored under fingerprint
- Hit: no generation, unit id rewritten, usage counted
- Partial hit treated as miss
- Store read/write failures do not fail the request
- Short or malformed generated quizzes
"""
import dataclasses
from unittest.mock import AsyncMock, patch

import pytest

from core.errors import GenerationParseError, SessionStoreError, TutorValidationError
from domain.entities import QuizQuestionType
from tests.conftest import as_json, quiz_payload


def _other_unit(unit, unit_id="unit-2", **form_changes):
    return dataclasses.replace(
        unit,
        id=unit_id,
        greek_form=dataclasses.replace(unit.greek_form, **form_changes),
    )


class TestQuizCacheMiss:
    """Tests for the generate-and-store branch."""

    @pytest.mark.asyncio
    async def test_miss_generates_once_and_stores(self, quiz_cache, fake_client, store, training_unit):
        fake_client.script(as_json(quiz_payload(3)))

        questions = await quiz_cache.get_quiz_questions(training_unit, 3)

        assert fake_client.call_count == 1
        assert len(questions) == 3
        assert all(q.unit_id == training_unit.id for q in questions)
        assert all(q.usage_count == 1 for q in questions)
        assert all(q.fingerprint == "eimi:verb:es" for q in questions)
        assert len({q.id for q in questions}) == 3

        cached = await store.get_cached_quiz("eimi:verb:es")
        assert [q.id for q in cached] == [q.id for q in questions]

    @pytest.mark.asyncio
    async def test_quiz_generation_options(self, quiz_cache, fake_client, training_unit):
        fake_client.script(as_json(quiz_payload(2)))

        await quiz_cache.get_quiz_questions(training_unit, 2, grounding_id="store-1", language="en")

        prompt, options = fake_client.calls[0]
        assert options.operation == "quiz"
        assert options.temperature == 0.7
        assert options.grounding_id == "store-1"
        assert "exactly 2" in prompt
        assert "English" in prompt

    @pytest.mark.asyncio
    async def test_extra_questions_truncated(self, quiz_cache, fake_client, training_unit):
        fake_client.script(as_json(quiz_payload(5)))

        questions = await quiz_cache.get_quiz_questions(training_unit, 3)

        assert len(questions) == 3

    @pytest.mark.asyncio
    async def test_too_few_questions_is_parse_error(self, quiz_cache, fake_client, store, training_unit):
        fake_client.script(as_json(quiz_payload(1)))

        with pytest.raises(GenerationParseError):
            await quiz_cache.get_quiz_questions(training_unit, 3)
        assert await store.get_cached_quiz("eimi:verb:es") is None

    @pytest.mark.asyncio
    async def test_bare_question_array_accepted(self, quiz_cache, fake_client, training_unit):
        fake_client.script(as_json(quiz_payload(2)["questions"]))
        assert len(await quiz_cache.get_quiz_questions(training_unit, 2)) == 2

    @pytest.mark.asyncio
    async def test_true_false_questions(self, quiz_cache, fake_client, training_unit):
        fake_client.script(as_json({"questions": [{
            "type": "true-false",
            "question": "ἦν es aoristo",
            "options": ["Verdadero", "Falso"],
            "correctAnswer": "Falso",
            "explanation": "Es imperfecto.",
        }]}))

        [question] = await quiz_cache.get_quiz_questions(training_unit, 1)

        assert question.type is QuizQuestionType.TRUE_FALSE
        assert question.options == ("Verdadero", "Falso")

    @pytest.mark.asyncio
    async def test_count_below_one_rejected(self, quiz_cache, fake_client, training_unit):
        with pytest.raises(TutorValidationError):
            await quiz_cache.get_quiz_questions(training_unit, 0)
        assert fake_client.call_count == 0


class TestQuizCacheHit:
    """Tests for the serve-from-cache branch."""

    @pytest.mark.asyncio
    async def test_hit_serves_without_generation(self, quiz_cache, fake_client, training_unit):
        fake_client.script(as_json(quiz_payload(3)))
        first = await quiz_cache.get_quiz_questions(training_unit, 3)

        other = _other_unit(training_unit, text="ἐστιν", lemma="EIMI")
        second = await quiz_cache.get_quiz_questions(other, 2)

        assert fake_client.call_count == 1
        assert [q.id for q in second] == [q.id for q in first[:2]]
        assert all(q.unit_id == "unit-2" for q in second)
        assert all(q.usage_count == 2 for q in second)

    @pytest.mark.asyncio
    async def test_usage_counts_written_back(self, quiz_cache, fake_client, store, training_unit):
        fake_client.script(as_json(quiz_payload(3)))
        await quiz_cache.get_quiz_questions(training_unit, 3)
        await quiz_cache.get_quiz_questions(training_unit, 2)

        cached = await store.get_cached_quiz("eimi:verb:es")
        assert [q.usage_count for q in cached] == [2, 2, 1]

    @pytest.mark.asyncio
    async def test_partial_hit_regenerates(self, quiz_cache, fake_client, store, training_unit):
        fake_client.script(as_json(quiz_payload(2)), as_json(quiz_payload(4)))
        await quiz_cache.get_quiz_questions(training_unit, 2)

        questions = await quiz_cache.get_quiz_questions(training_unit, 4)

        assert fake_client.call_count == 2
        assert len(questions) == 4
        assert len(await store.get_cached_quiz("eimi:verb:es")) == 4

    @pytest.mark.asyncio
    async def test_language_separates_entries(self, quiz_cache, fake_client, training_unit):
        fake_client.script(as_json(quiz_payload(2)), as_json(quiz_payload(2)))

        await quiz_cache.get_quiz_questions(training_unit, 2, language="es")
        await quiz_cache.get_quiz_questions(training_unit, 2, language="en")

        assert fake_client.call_count == 2


class TestQuizCacheFailures:
    """Store failures degrade to generation, never to an error."""

    @pytest.mark.asyncio
    async def test_read_failure_treated_as_miss(self, quiz_cache, fake_client, store, training_unit):
        fake_client.script(as_json(quiz_payload(3)))
        with patch.object(
            store, "get_cached_quiz",
            AsyncMock(side_effect=SessionStoreError("down", backend="memory")),
        ):
            questions = await quiz_cache.get_quiz_questions(training_unit, 3)

        assert len(questions) == 3
        assert fake_client.call_count == 1

    @pytest.mark.asyncio
    async def test_write_failure_swallowed(self, quiz_cache, fake_client, store, training_unit):
        fake_client.script(as_json(quiz_payload(3)))
        with patch.object(
            store, "cache_quiz",
            AsyncMock(side_effect=SessionStoreError("read-only", backend="memory")),
        ) as cache_quiz:
            questions = await quiz_cache.get_quiz_questions(training_unit, 3)

        assert len(questions) == 3
        cache_quiz.assert_awaited_once()
        assert await store.get_cached_quiz("eimi:verb:es") is None

    @pytest.mark.asyncio
    async def test_write_failure_on_hit_still_serves(self, quiz_cache, fake_client, store, training_unit):
        fake_client.script(as_json(quiz_payload(3)))
        await quiz_cache.get_quiz_questions(training_unit, 3)

        with patch.object(store, "cache_quiz", AsyncMock(side_effect=RuntimeError("boom"))):
            served = await quiz_cache.get_quiz_questions(training_unit, 3)

        assert len(served) == 3
        assert fake_client.call_count == 1
