"""
Custom Hypothesis Strategies for Clause Graphs and Training Units

Provides domain-specific strategies for generating valid clause forests
and Greek forms.
"""
from hypothesis import strategies as st

from domain.entities import GreekForm, TrainingUnit
from domain.syntax import ClauseType, build_clause


# =============================================================================
# CLAUSE STRATEGIES
# =============================================================================

CLAUSE_TYPES = list(ClauseType)


@st.composite
def clause_forest_strategy(draw, max_clauses=8, max_words_per_clause=4):
    """
    Generate a valid clause forest over a contiguous passage.

    Clauses are emitted in an order where every parent precedes its
    children; words are partitioned so coverage is exact.

    Returns:
        (clauses, root_clause_id, word_count)
    """
    n = draw(st.integers(min_value=1, max_value=max_clauses))
    sizes = draw(
        st.lists(
            st.integers(min_value=1, max_value=max_words_per_clause),
            min_size=n,
            max_size=n,
        )
    )

    clauses = []
    next_word = 0
    for i, size in enumerate(sizes):
        indices = list(range(next_word, next_word + size))
        next_word += size

        parent = None
        if i > 0:
            # None keeps the clause at root level
            parent_index = draw(st.one_of(st.none(), st.integers(min_value=0, max_value=i - 1)))
            parent = f"c{parent_index}" if parent_index is not None else None

        clause_type = ClauseType.MAIN if i == 0 else draw(st.sampled_from(CLAUSE_TYPES))
        main_verb = draw(st.one_of(st.none(), st.sampled_from(indices)))
        clauses.append(
            build_clause(
                f"c{i}",
                clause_type,
                draw(st.permutations(indices)),
                main_verb_index=main_verb,
                parent_clause_id=parent,
            )
        )

    return clauses, "c0", next_word


# =============================================================================
# FORM STRATEGIES
# =============================================================================

GREEK_LETTERS = "αβγδεζηθικλμνξοπρστυφχψωάέήίόύώἀἐἠἰὀὐὠῆῶ"

greek_word_strategy = st.text(alphabet=GREEK_LETTERS, min_size=1, max_size=12)
latin_word_strategy = st.text(
    alphabet=st.characters(categories=("Ll", "Lu")), min_size=1, max_size=12
)


@st.composite
def training_unit_strategy(draw, lemma=None, category=None):
    """Generate a TrainingUnit with optionally fixed lemma and category."""
    form = GreekForm(
        text=draw(greek_word_strategy),
        transliteration=draw(latin_word_strategy),
        lemma=lemma if lemma is not None else draw(latin_word_strategy),
        morphology="V-IAI-3S",
        gloss="was",
        grammatical_category=category if category is not None else draw(
            st.sampled_from(["Verb", "Noun", "Participle", "Preposition", "Article"])
        ),
    )
    return TrainingUnit(
        id=draw(st.uuids()).hex,
        session_id="",
        greek_form=form,
        identification="id",
        function_in_context="fn",
        significance="sig",
        reflective_question="q?",
    )
