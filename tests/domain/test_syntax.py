"""
Tests for domain/syntax.py - Clause graph construction and navigation.

Covers:
- build_clause validation
- build_analysis tree invariants (root, parents, cycles, bounds)
- Child derivation and read-only navigation
- Word coverage checks
- Persisted shape round trip
"""
import dataclasses

import pytest

from core.errors import (
    EmptyAnalysisError,
    InvalidClauseError,
    MalformedTreeError,
    TutorValidationError,
    UnknownRootError,
)
from domain.syntax import (
    ClauseType,
    analysis_from_dict,
    analysis_to_dict,
    build_analysis,
    build_clause,
    check_word_coverage,
)


def _tree():
    """Main clause with a purpose clause that has a participial child."""
    clauses = [
        build_clause("c1", ClauseType.MAIN, [0, 1, 2], main_verb_index=1),
        build_clause("c2", ClauseType.SUBORDINATE_PURPOSE, [3, 4], parent_clause_id="c1",
                     conjunction="ἵνα"),
        build_clause("c3", ClauseType.PARTICIPIAL, [5], parent_clause_id="c2"),
        build_clause("c4", ClauseType.RELATIVE, [6, 7], parent_clause_id="c1"),
    ]
    return build_analysis("John 3:16", clauses, "c1", "Main clause with purpose", word_count=8)


# =============================================================================
# build_clause
# =============================================================================


class TestBuildClause:
    """Tests for clause validation."""

    def test_valid_clause(self):
        """A valid clause keeps its fields and sorts its indices."""
        clause = build_clause("c1", "MAIN", [2, 0, 1], main_verb_index=2)

        assert clause.type is ClauseType.MAIN
        assert clause.word_indices == (0, 1, 2)
        assert clause.main_verb_index == 2
        assert clause.child_clause_ids == ()
        assert clause.is_root_level

    def test_type_parsing_is_lenient(self):
        """Clause types accept any case and hyphens."""
        clause = build_clause("c1", "subordinate-purpose", [0])
        assert clause.type is ClauseType.SUBORDINATE_PURPOSE
        assert clause.type.is_subordinate

    def test_empty_indices_rejected(self):
        with pytest.raises(InvalidClauseError):
            build_clause("c1", ClauseType.MAIN, [])

    def test_negative_index_rejected(self):
        with pytest.raises(InvalidClauseError):
            build_clause("c1", ClauseType.MAIN, [0, -1])

    def test_duplicate_index_rejected(self):
        with pytest.raises(InvalidClauseError):
            build_clause("c1", ClauseType.MAIN, [0, 1, 1])

    def test_main_verb_outside_clause_rejected(self):
        with pytest.raises(InvalidClauseError) as exc_info:
            build_clause("c1", ClauseType.MAIN, [0, 1], main_verb_index=5)
        assert exc_info.value.clause_id == "c1"

    def test_unknown_type_rejected(self):
        with pytest.raises(InvalidClauseError):
            build_clause("c1", "ADVERBIAL", [0])

    def test_self_parent_rejected(self):
        with pytest.raises(InvalidClauseError):
            build_clause("c1", ClauseType.MAIN, [0], parent_clause_id="c1")

    def test_clause_is_immutable(self):
        clause = build_clause("c1", ClauseType.MAIN, [0])
        with pytest.raises(dataclasses.FrozenInstanceError):
            clause.word_indices = (1,)  # type: ignore[misc]

    def test_validation_errors_are_not_retryable(self):
        with pytest.raises(TutorValidationError) as exc_info:
            build_clause("c1", ClauseType.MAIN, [])
        assert exc_info.value.recoverable is False


# =============================================================================
# build_analysis
# =============================================================================


class TestBuildAnalysis:
    """Tests for analysis invariants."""

    def test_empty_analysis_rejected(self):
        with pytest.raises(EmptyAnalysisError):
            build_analysis("John 1:1", [], "c1", "")

    def test_unknown_root_rejected(self):
        clauses = [build_clause("c1", ClauseType.MAIN, [0])]
        with pytest.raises(UnknownRootError):
            build_analysis("John 1:1", clauses, "c9", "")

    def test_dangling_parent_rejected(self):
        clauses = [
            build_clause("c1", ClauseType.MAIN, [0]),
            build_clause("c2", ClauseType.RELATIVE, [1], parent_clause_id="c7"),
        ]
        with pytest.raises(MalformedTreeError) as exc_info:
            build_analysis("John 1:1", clauses, "c1", "")
        assert exc_info.value.clause_ids == ["c2"]

    def test_cycle_rejected(self):
        clauses = [
            build_clause("c1", ClauseType.MAIN, [0]),
            build_clause("c2", ClauseType.RELATIVE, [1], parent_clause_id="c3"),
            build_clause("c3", ClauseType.RELATIVE, [2], parent_clause_id="c2"),
        ]
        with pytest.raises(MalformedTreeError):
            build_analysis("John 1:1", clauses, "c1", "")

    def test_root_with_parent_rejected(self):
        clauses = [
            build_clause("c1", ClauseType.MAIN, [0]),
            build_clause("c2", ClauseType.RELATIVE, [1], parent_clause_id="c1"),
        ]
        with pytest.raises(MalformedTreeError):
            build_analysis("John 1:1", clauses, "c2", "")

    def test_duplicate_ids_rejected(self):
        clauses = [
            build_clause("c1", ClauseType.MAIN, [0]),
            build_clause("c1", ClauseType.RELATIVE, [1]),
        ]
        with pytest.raises(MalformedTreeError):
            build_analysis("John 1:1", clauses, "c1", "")

    def test_index_beyond_word_count_rejected(self):
        clauses = [build_clause("c1", ClauseType.MAIN, [0, 1, 5])]
        with pytest.raises(MalformedTreeError):
            build_analysis("John 1:1", clauses, "c1", "", word_count=3)

    def test_children_derived_in_clause_order(self):
        analysis = _tree()

        assert analysis.root_clause.child_clause_ids == ("c2", "c4")
        assert analysis.get_clause("c2").child_clause_ids == ("c3",)
        assert analysis.get_clause("c3").child_clause_ids == ()

    def test_supplied_child_links_are_ignored(self):
        clause = dataclasses.replace(
            build_clause("c1", ClauseType.MAIN, [0]), child_clause_ids=("ghost",)
        )
        analysis = build_analysis("John 1:1", [clause], "c1", "")
        assert analysis.root_clause.child_clause_ids == ()

    def test_length_preserved(self):
        assert len(_tree()) == 4

    def test_analysis_is_immutable(self):
        analysis = _tree()
        with pytest.raises(dataclasses.FrozenInstanceError):
            analysis.root_clause_id = "c2"  # type: ignore[misc]


# =============================================================================
# Navigation
# =============================================================================


class TestNavigation:
    """Tests for read-only tree navigation."""

    def test_parent_and_ancestors(self):
        analysis = _tree()

        assert analysis.parent_of("c3").id == "c2"
        assert analysis.parent_of("c1") is None
        assert [c.id for c in analysis.ancestors_of("c3")] == ["c2", "c1"]
        assert analysis.depth_of("c3") == 2
        assert analysis.depth_of("c1") == 0

    def test_children_of_unknown_clause_is_empty(self):
        assert _tree().children_of("missing") == []

    def test_depth_first_order(self):
        ids = [c.id for c in _tree().iter_depth_first()]
        assert ids == ["c1", "c2", "c3", "c4"]

    def test_depth_first_visits_other_roots_after_designated_root(self):
        clauses = [
            build_clause("a", ClauseType.MAIN, [0]),
            build_clause("b", ClauseType.MAIN, [1]),
            build_clause("b1", ClauseType.RELATIVE, [2], parent_clause_id="b"),
        ]
        analysis = build_analysis("Ref", clauses, "b", "")
        assert [c.id for c in analysis.iter_depth_first()] == ["b", "b1", "a"]

    def test_clause_for_word(self):
        analysis = _tree()
        assert analysis.clause_for_word(4).id == "c2"
        assert analysis.clause_for_word(99) is None

    def test_reconstruct_text(self):
        words = ["οὕτως", "ἠγάπησεν", "ὁ", "ἵνα", "πᾶς", "πιστεύων", "ἔχῃ", "ζωὴν"]
        assert _tree().reconstruct_text("c2", words) == "ἵνα πᾶς"


# =============================================================================
# Word coverage and persistence
# =============================================================================


class TestWordCoverage:
    """Tests for check_word_coverage."""

    def test_full_coverage_passes(self):
        check_word_coverage(_tree(), 8)

    def test_missing_word_rejected(self):
        with pytest.raises(MalformedTreeError, match="not assigned"):
            check_word_coverage(_tree(), 9)

    def test_overlap_rejected(self):
        clauses = [
            build_clause("c1", ClauseType.MAIN, [0, 1]),
            build_clause("c2", ClauseType.RELATIVE, [1, 2], parent_clause_id="c1"),
        ]
        analysis = build_analysis("Ref", clauses, "c1", "")
        with pytest.raises(MalformedTreeError, match="more than one"):
            check_word_coverage(analysis, 3)


class TestPersistedShape:
    """Tests for analysis_to_dict / analysis_from_dict."""

    def test_round_trip_preserves_structure(self):
        analysis = _tree()
        restored = analysis_from_dict(analysis_to_dict(analysis))

        assert restored.passage_reference == analysis.passage_reference
        assert restored.root_clause_id == "c1"
        assert [c.id for c in restored.clauses] == ["c1", "c2", "c3", "c4"]
        assert restored.get_clause("c2").conjunction == "ἵνα"
        assert restored.analyzed_at == analysis.analyzed_at

    def test_corrupted_document_fails_validation(self):
        document = analysis_to_dict(_tree())
        document["root_clause_id"] = "nope"
        with pytest.raises(UnknownRootError):
            analysis_from_dict(document)
