"""
Tests for domain/entities.py - Value objects and the StudySession aggregate.

Covers:
- Session state machine (ACTIVE -> COMPLETED, terminal)
- One response per unit, unknown units
- Unit progress and mastery levels
- Quiz answer comparison
- Insight validation and tag cleaning
- Persisted document shape
"""
import pytest

from core.errors import (
    DuplicateResponseError,
    SessionCompletedError,
    TutorValidationError,
    UnknownUnitError,
)
from domain.entities import (
    ExegeticalInsight,
    MorphemeType,
    PromptConfig,
    QuestionContext,
    QuizAttempt,
    QuizQuestion,
    QuizQuestionType,
    SessionStatus,
    StudySession,
    UnitProgress,
    UserResponse,
)


def _response(unit_id: str, correct: bool = True) -> UserResponse:
    return UserResponse(
        id=f"r-{unit_id}",
        unit_id=unit_id,
        user_answer="Because the imperfect is durative",
        feedback="Good",
        is_correct=correct,
    )


def _attempt(unit_id: str, correct: bool) -> QuizAttempt:
    return QuizAttempt(
        id="a", unit_id=unit_id, question_id="q", user_answer="x", is_correct=correct
    )


# =============================================================================
# StudySession
# =============================================================================


class TestStudySessionLifecycle:
    """Tests for the session state machine."""

    def test_new_session_is_active(self):
        session = StudySession.start("user-1", "  John 1:1 ")

        assert session.status is SessionStatus.ACTIVE
        assert session.is_active
        assert session.passage == "John 1:1"
        assert session.units == []
        assert session.version == 0

    def test_start_requires_user_and_passage(self):
        with pytest.raises(TutorValidationError):
            StudySession.start("", "John 1:1")
        with pytest.raises(TutorValidationError):
            StudySession.start("user-1", "   ")

    def test_add_unit_binds_session(self, training_unit):
        session = StudySession.start("user-1", "John 1:1")
        bound = session.add_unit(training_unit)

        assert bound.session_id == session.id
        assert training_unit.session_id == ""
        assert session.units == [bound]

    def test_duplicate_unit_rejected(self, training_unit):
        session = StudySession.start("user-1", "John 1:1")
        session.add_unit(training_unit)
        with pytest.raises(TutorValidationError):
            session.add_unit(training_unit)

    def test_completed_session_rejects_mutations(self, training_unit):
        session = StudySession.start("user-1", "John 1:1")
        session.add_unit(training_unit)
        session.complete()

        assert session.status is SessionStatus.COMPLETED
        with pytest.raises(SessionCompletedError):
            session.add_unit(training_unit)
        with pytest.raises(SessionCompletedError):
            session.record_response(_response(training_unit.id))
        with pytest.raises(SessionCompletedError):
            session.record_quiz_attempt(_attempt(training_unit.id, True))
        with pytest.raises(SessionCompletedError):
            session.complete()

    def test_one_response_per_unit(self, training_unit):
        session = StudySession.start("user-1", "John 1:1")
        session.add_unit(training_unit)
        session.record_response(_response(training_unit.id))

        assert session.has_response(training_unit.id)
        with pytest.raises(DuplicateResponseError):
            session.record_response(_response(training_unit.id, correct=False))
        assert session.responses[training_unit.id].is_correct is True

    def test_response_for_unknown_unit_rejected(self):
        session = StudySession.start("user-1", "John 1:1")
        with pytest.raises(UnknownUnitError):
            session.record_response(_response("ghost"))

    def test_copy_is_independent(self, training_unit):
        session = StudySession.start("user-1", "John 1:1")
        clone = session.copy()
        clone.add_unit(training_unit)

        assert session.units == []

    def test_document_round_trip(self, training_unit):
        session = StudySession.start("user-1", "John 1:1")
        session.add_unit(training_unit)
        session.record_response(_response(training_unit.id))
        session.record_section_view(training_unit.id, "identification")
        session.version = 4

        restored = StudySession.from_dict(session.to_dict())

        assert restored.id == session.id
        assert restored.units == session.units
        assert restored.responses == session.responses
        assert restored.progress == session.progress
        assert restored.version == 4


# =============================================================================
# Progress and mastery
# =============================================================================


class TestUnitProgress:
    """Tests for mastery computation."""

    def test_section_view_sets_mastery_one(self):
        progress = UnitProgress().viewed("significance")

        assert progress.mastery_level == 1
        assert progress.viewed_sections == ("significance",)
        assert progress.last_viewed_at is not None

    def test_section_view_is_idempotent(self):
        progress = UnitProgress().viewed("significance").viewed("significance")
        assert progress.viewed_sections == ("significance",)

    def test_section_view_never_lowers_mastery(self):
        progress = UnitProgress(mastery_level=3).viewed("significance")
        assert progress.mastery_level == 3

    @pytest.mark.parametrize(
        "results,expected",
        [
            ([True, True, True], 3),
            ([True, True, True, True, False], 3),
            ([True, True], 2),
            ([True, False], 2),
            ([True, False, False], 1),
            ([False], 1),
        ],
    )
    def test_mastery_levels(self, results, expected):
        attempts = [_attempt("u", r) for r in results]
        assert UnitProgress.mastery_for(attempts) == expected

    def test_mastery_out_of_range_rejected(self):
        with pytest.raises(TutorValidationError):
            UnitProgress(mastery_level=4)

    def test_session_quiz_accuracy(self, training_unit):
        session = StudySession.start("user-1", "John 1:1")
        session.add_unit(training_unit)
        session.record_quiz_attempt(_attempt(training_unit.id, True))
        session.record_quiz_attempt(_attempt(training_unit.id, False))

        assert session.quiz_accuracy == 50.0
        assert session.units_completed == 1


# =============================================================================
# Value objects
# =============================================================================


class TestValueObjects:
    """Tests for smaller value objects."""

    def test_quiz_answer_comparison_ignores_case_and_whitespace(self):
        question = QuizQuestion(
            id="q1",
            unit_id="u1",
            type=QuizQuestionType.TRUE_FALSE,
            question="¿Es imperfecto?",
            correct_answer="Verdadero",
            explanation="",
            options=("Verdadero", "Falso"),
        )
        assert question.is_correct_answer("  verdadero ")
        assert not question.is_correct_answer("Falso")

    def test_served_for_rewrites_unit_and_counts_use(self):
        question = QuizQuestion(
            id="q1", unit_id="u1", type=QuizQuestionType.MULTIPLE_CHOICE,
            question="?", correct_answer="A", explanation="",
        )
        served = question.served_for("u2")

        assert served.unit_id == "u2"
        assert served.usage_count == 2
        assert question.unit_id == "u1"

    def test_insight_requires_content(self):
        with pytest.raises(TutorValidationError):
            ExegeticalInsight(id="i1", session_id="s1", content="   ")

    def test_insight_tags_cleaned(self):
        tags = ExegeticalInsight.clean_tags(["  Aorist", "aorist", "", "Logos "])
        assert tags == ("aorist", "logos")

    def test_insight_tags_capped(self):
        tags = ExegeticalInsight.clean_tags([f"t{i}" for i in range(15)], limit=10)
        assert len(tags) == 10

    def test_morpheme_type_falls_back_to_other(self):
        assert MorphemeType.parse("Prefix") is MorphemeType.PREFIX
        assert MorphemeType.parse("augment") is MorphemeType.OTHER

    def test_question_context_from_unit(self, training_unit):
        context = QuestionContext.from_unit(training_unit, "John 1:1")

        assert context.greek_word == "ἦν"
        assert context.passage == "John 1:1"
        assert not context.is_empty
        assert QuestionContext().is_empty

    def test_prompt_config_drops_blank_prompts(self):
        config = PromptConfig(user_prompts=("Focus on verbs", "  ", ""))
        assert config.user_prompts == ("Focus on verbs",)
