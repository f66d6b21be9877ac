"""
PAIDEIA - Passage Syntax Model

Clause-dependency trees over the words of a passage.

Clauses reference each other by id rather than by embedded ownership.
An analysis keeps its clauses as an ordered tuple plus an id -> clause
index, and every structural question (children, parent, depth) is
answered through that index.

Construction goes through two validating factories:
    - build_clause: checks a single clause description
    - build_analysis: checks the whole tree and derives child links

Both are pure functions. A PassageSyntaxAnalysis is immutable once built;
corrections are made by building a new one from a new clause list.
"""
from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import (
    Any,
    Dict,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
    Sequence,
    Set,
    Tuple,
    Union,
)

from core.errors import (
    EmptyAnalysisError,
    InvalidClauseError,
    MalformedTreeError,
    UnknownRootError,
)


class ClauseType(str, Enum):
    """Syntactic category of a clause."""

    MAIN = "MAIN"
    SUBORDINATE_PURPOSE = "SUBORDINATE_PURPOSE"
    SUBORDINATE_RESULT = "SUBORDINATE_RESULT"
    SUBORDINATE_CAUSAL = "SUBORDINATE_CAUSAL"
    SUBORDINATE_CONDITIONAL = "SUBORDINATE_CONDITIONAL"
    SUBORDINATE_TEMPORAL = "SUBORDINATE_TEMPORAL"
    SUBORDINATE_INDIRECT_QUESTION = "SUBORDINATE_INDIRECT_QUESTION"
    PARTICIPIAL = "PARTICIPIAL"
    INFINITIVAL = "INFINITIVAL"
    RELATIVE = "RELATIVE"

    @classmethod
    def parse(cls, value: Union[str, "ClauseType"]) -> "ClauseType":
        """
        Parse a clause type name.

        Accepts the enum value in any case, with spaces or hyphens in place
        of underscores ("subordinate-purpose", "Relative").
        """
        if isinstance(value, ClauseType):
            return value
        normalized = str(value).strip().upper().replace("-", "_").replace(" ", "_")
        try:
            return cls(normalized)
        except ValueError:
            raise ValueError(f"Unknown clause type: {value!r}") from None

    @property
    def is_subordinate(self) -> bool:
        return self is not ClauseType.MAIN


@dataclass(frozen=True, slots=True)
class Clause:
    """
    A node of the clause-dependency tree.

    ``child_clause_ids`` is derived by build_analysis from the parent
    relation; a clause fresh out of build_clause has none.
    """
    id: str
    type: ClauseType
    word_indices: Tuple[int, ...]
    main_verb_index: Optional[int] = None
    parent_clause_id: Optional[str] = None
    child_clause_ids: Tuple[str, ...] = ()
    conjunction: Optional[str] = None
    translation: Optional[str] = None
    syntactic_function: Optional[str] = None
    greek_text: str = ""

    @property
    def is_root_level(self) -> bool:
        return self.parent_clause_id is None

    def contains(self, word_index: int) -> bool:
        return word_index in self.word_indices

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "word_indices": list(self.word_indices),
            "main_verb_index": self.main_verb_index,
            "parent_clause_id": self.parent_clause_id,
            "child_clause_ids": list(self.child_clause_ids),
            "conjunction": self.conjunction,
            "translation": self.translation,
            "syntactic_function": self.syntactic_function,
            "greek_text": self.greek_text,
        }


def build_clause(
    id: str,
    type: Union[ClauseType, str],
    word_indices: Iterable[int],
    main_verb_index: Optional[int] = None,
    parent_clause_id: Optional[str] = None,
    conjunction: Optional[str] = None,
    translation: Optional[str] = None,
    syntactic_function: Optional[str] = None,
    greek_text: str = "",
) -> Clause:
    """
    Validate a clause description and produce a Clause.

    Word indices are stored sorted, as an immutable tuple.

    Raises:
        InvalidClauseError: empty id, unknown type, empty/negative/duplicate
            word indices, or a main verb outside the clause.
    """
    if not id or not str(id).strip():
        raise InvalidClauseError("Clause id must be a non-empty string", field_name="id")

    try:
        clause_type = ClauseType.parse(type)
    except ValueError as e:
        raise InvalidClauseError(
            str(e), clause_id=id, field_name="type", actual_value=type, cause=e
        ) from e

    indices = list(word_indices)
    if not indices:
        raise InvalidClauseError(
            f"Clause {id} has no word indices",
            clause_id=id,
            field_name="word_indices",
        )
    for index in indices:
        if isinstance(index, bool) or not isinstance(index, int) or index < 0:
            raise InvalidClauseError(
                f"Clause {id} has invalid word index {index!r}",
                clause_id=id,
                field_name="word_indices",
                actual_value=index,
            )
    if len(set(indices)) != len(indices):
        raise InvalidClauseError(
            f"Clause {id} repeats a word index",
            clause_id=id,
            field_name="word_indices",
            actual_value=indices,
        )

    if main_verb_index is not None and main_verb_index not in indices:
        raise InvalidClauseError(
            f"Main verb index {main_verb_index} of clause {id} is not among its words",
            clause_id=id,
            field_name="main_verb_index",
            actual_value=main_verb_index,
        )

    if parent_clause_id is not None and parent_clause_id == id:
        raise InvalidClauseError(
            f"Clause {id} cannot be its own parent",
            clause_id=id,
            field_name="parent_clause_id",
        )

    return Clause(
        id=id,
        type=clause_type,
        word_indices=tuple(sorted(indices)),
        main_verb_index=main_verb_index,
        parent_clause_id=parent_clause_id or None,
        conjunction=conjunction or None,
        translation=translation or None,
        syntactic_function=syntactic_function or None,
        greek_text=greek_text,
    )


@dataclass(frozen=True, slots=True)
class PassageSyntaxAnalysis:
    """
    Aggregate root: the validated clause tree of one passage.

    Instances come from build_analysis; the clause tuple and the id index
    are read-only.
    """
    passage_reference: str
    clauses: Tuple[Clause, ...]
    root_clause_id: str
    structure_description: str
    analyzed_at: datetime
    _index: Mapping[str, Clause] = field(
        init=False, repr=False, compare=False, hash=False, default=None
    )

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "_index", MappingProxyType({c.id: c for c in self.clauses})
        )

    def __len__(self) -> int:
        return len(self.clauses)

    @property
    def root_clause(self) -> Clause:
        return self._index[self.root_clause_id]

    @property
    def word_count_covered(self) -> int:
        return sum(len(c.word_indices) for c in self.clauses)

    def get_clause(self, clause_id: str) -> Optional[Clause]:
        return self._index.get(clause_id)

    def children_of(self, clause_id: str) -> List[Clause]:
        clause = self._index.get(clause_id)
        if clause is None:
            return []
        return [self._index[child_id] for child_id in clause.child_clause_ids]

    def parent_of(self, clause_id: str) -> Optional[Clause]:
        clause = self._index.get(clause_id)
        if clause is None or clause.parent_clause_id is None:
            return None
        return self._index[clause.parent_clause_id]

    def root_clauses(self) -> List[Clause]:
        """Root-level clauses in declaration order."""
        return [c for c in self.clauses if c.parent_clause_id is None]

    def ancestors_of(self, clause_id: str) -> List[Clause]:
        """Parents from nearest to farthest."""
        ancestors: List[Clause] = []
        parent = self.parent_of(clause_id)
        while parent is not None:
            ancestors.append(parent)
            parent = self.parent_of(parent.id)
        return ancestors

    def depth_of(self, clause_id: str) -> int:
        return len(self.ancestors_of(clause_id))

    def iter_depth_first(self) -> Iterator[Clause]:
        """Pre-order traversal starting at the designated root."""
        ordered_roots = [self.root_clause] + [
            c for c in self.root_clauses() if c.id != self.root_clause_id
        ]
        stack = list(reversed(ordered_roots))
        while stack:
            clause = stack.pop()
            yield clause
            stack.extend(reversed(self.children_of(clause.id)))

    def clause_for_word(self, word_index: int) -> Optional[Clause]:
        for clause in self.clauses:
            if word_index in clause.word_indices:
                return clause
        return None

    def reconstruct_text(self, clause_id: str, words: Sequence[str]) -> str:
        """Join the passage words that belong to a clause."""
        clause = self._index[clause_id]
        return " ".join(words[i] for i in clause.word_indices if i < len(words))

    def to_dict(self) -> Dict[str, Any]:
        return analysis_to_dict(self)


def build_analysis(
    passage_reference: str,
    clauses: Sequence[Clause],
    root_clause_id: str,
    structure_description: str,
    analyzed_at: Optional[datetime] = None,
    word_count: Optional[int] = None,
) -> PassageSyntaxAnalysis:
    """
    Validate a flat clause list and assemble the analysis aggregate.

    Child links supplied on the input clauses are ignored and re-derived
    from the parent relation, in clause order.

    Raises:
        EmptyAnalysisError: no clauses.
        UnknownRootError: root_clause_id names no clause.
        MalformedTreeError: duplicate ids, a parent that does not resolve,
            a cycle, a designated root with a parent, or a word index
            outside ``word_count``.
    """
    clause_list = list(clauses)
    if not clause_list:
        raise EmptyAnalysisError(
            f"Syntax analysis of {passage_reference} has no clauses",
            field_name="clauses",
        )

    by_id: Dict[str, Clause] = {}
    duplicates: List[str] = []
    for clause in clause_list:
        if clause.id in by_id:
            duplicates.append(clause.id)
        by_id[clause.id] = clause
    if duplicates:
        raise MalformedTreeError(
            f"Duplicate clause ids: {', '.join(sorted(set(duplicates)))}",
            clause_ids=sorted(set(duplicates)),
        )

    if root_clause_id not in by_id:
        raise UnknownRootError(
            f"Root clause {root_clause_id!r} is not among the clauses",
            root_clause_id=root_clause_id,
            field_name="root_clause_id",
        )

    dangling = [
        c.id for c in clause_list
        if c.parent_clause_id is not None and c.parent_clause_id not in by_id
    ]
    if dangling:
        raise MalformedTreeError(
            f"Clauses reference unknown parents: {', '.join(dangling)}",
            clause_ids=dangling,
        )

    _check_acyclic(clause_list, by_id)

    if by_id[root_clause_id].parent_clause_id is not None:
        raise MalformedTreeError(
            f"Root clause {root_clause_id} has a parent",
            clause_ids=[root_clause_id],
        )

    if word_count is not None:
        out_of_range = [
            c.id for c in clause_list
            if any(i >= word_count for i in c.word_indices)
        ]
        if out_of_range:
            raise MalformedTreeError(
                f"Clauses reference words beyond the {word_count}-word passage: "
                f"{', '.join(out_of_range)}",
                clause_ids=out_of_range,
            )

    children: Dict[str, List[str]] = {c.id: [] for c in clause_list}
    for clause in clause_list:
        if clause.parent_clause_id is not None:
            children[clause.parent_clause_id].append(clause.id)

    linked = tuple(
        dataclasses.replace(c, child_clause_ids=tuple(children[c.id]))
        for c in clause_list
    )

    return PassageSyntaxAnalysis(
        passage_reference=passage_reference,
        clauses=linked,
        root_clause_id=root_clause_id,
        structure_description=structure_description,
        analyzed_at=analyzed_at or datetime.now(timezone.utc),
    )


def _check_acyclic(clauses: Sequence[Clause], by_id: Mapping[str, Clause]) -> None:
    """Walk parent pointers from every clause; revisiting a node is a cycle."""
    settled: Set[str] = set()
    for clause in clauses:
        path: List[str] = []
        on_path: Set[str] = set()
        current: Optional[str] = clause.id
        while current is not None and current not in settled:
            if current in on_path:
                cycle = path[path.index(current):]
                raise MalformedTreeError(
                    f"Clause parent relation has a cycle: {' -> '.join(cycle + [current])}",
                    clause_ids=cycle,
                )
            on_path.add(current)
            path.append(current)
            current = by_id[current].parent_clause_id
        settled.update(path)


def check_word_coverage(analysis: PassageSyntaxAnalysis, word_count: int) -> None:
    """
    Check that every word of the passage belongs to exactly one clause.

    Raises:
        MalformedTreeError: overlapping clauses, uncovered words, or
            indices outside the passage.
    """
    owner: Dict[int, str] = {}
    overlaps: List[int] = []
    out_of_range: List[int] = []
    for clause in analysis.clauses:
        for index in clause.word_indices:
            if index >= word_count:
                out_of_range.append(index)
            elif index in owner:
                overlaps.append(index)
            else:
                owner[index] = clause.id

    if out_of_range:
        raise MalformedTreeError(
            f"Word indices outside the {word_count}-word passage: {sorted(set(out_of_range))}"
        )
    if overlaps:
        raise MalformedTreeError(
            f"Words assigned to more than one clause: {sorted(set(overlaps))}"
        )
    missing = [i for i in range(word_count) if i not in owner]
    if missing:
        raise MalformedTreeError(f"Words not assigned to any clause: {missing}")


def analysis_to_dict(analysis: PassageSyntaxAnalysis) -> Dict[str, Any]:
    """Persisted shape of an analysis."""
    return {
        "passage_reference": analysis.passage_reference,
        "clauses": [c.to_dict() for c in analysis.clauses],
        "root_clause_id": analysis.root_clause_id,
        "structure_description": analysis.structure_description,
        "analyzed_at": analysis.analyzed_at.isoformat(),
    }


def analysis_from_dict(data: Mapping[str, Any]) -> PassageSyntaxAnalysis:
    """Rebuild an analysis from its persisted shape, re-running validation."""
    clauses = [
        build_clause(
            id=c["id"],
            type=c["type"],
            word_indices=c["word_indices"],
            main_verb_index=c.get("main_verb_index"),
            parent_clause_id=c.get("parent_clause_id"),
            conjunction=c.get("conjunction"),
            translation=c.get("translation"),
            syntactic_function=c.get("syntactic_function"),
            greek_text=c.get("greek_text", ""),
        )
        for c in data["clauses"]
    ]
    analyzed_at = data.get("analyzed_at")
    return build_analysis(
        passage_reference=data["passage_reference"],
        clauses=clauses,
        root_clause_id=data["root_clause_id"],
        structure_description=data.get("structure_description", ""),
        analyzed_at=datetime.fromisoformat(analyzed_at) if analyzed_at else None,
    )
