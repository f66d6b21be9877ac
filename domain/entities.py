"""
PAIDEIA - Domain Entities

Value objects and aggregates of the tutoring domain.

Value objects (GreekForm, TrainingUnit, UserResponse, QuizQuestion, ...)
are frozen and self-validating. StudySession is the aggregate root of a
learner's work on a passage: its mutators enforce the session state
machine and the one-response-per-unit rule, and it carries a version
number that SessionStore implementations use for optimistic concurrency.

Every entity round-trips through to_dict()/from_dict(), which is the
persisted document shape.
"""
from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Sequence, Tuple
from uuid import uuid4

from core.errors import (
    DuplicateResponseError,
    SessionCompletedError,
    TutorValidationError,
    UnknownUnitError,
)


def new_id() -> str:
    return str(uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


# =============================================================================
# VALUE OBJECTS
# =============================================================================


@dataclass(frozen=True, slots=True)
class GreekForm:
    """
    A word or phrase selected for study.

    ``morphology`` is a parsing code such as "V-IAI-3S".
    """
    text: str
    transliteration: str
    lemma: str
    morphology: str
    gloss: str
    grammatical_category: str

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "GreekForm":
        return cls(
            text=data["text"],
            transliteration=data.get("transliteration", ""),
            lemma=data["lemma"],
            morphology=data.get("morphology", ""),
            gloss=data.get("gloss", ""),
            grammatical_category=data.get("grammatical_category", ""),
        )


@dataclass(frozen=True, slots=True)
class TrainingUnit:
    """
    Teaching material generated for one form of a passage.

    Units are created outside any session (``session_id`` empty) and
    bound to one with with_session() when appended.
    """
    id: str
    session_id: str
    greek_form: GreekForm
    identification: str
    function_in_context: str
    significance: str
    reflective_question: str
    recognition_guidance: Optional[str] = None

    def with_session(self, session_id: str) -> "TrainingUnit":
        return dataclasses.replace(self, session_id=session_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "greek_form": self.greek_form.to_dict(),
            "identification": self.identification,
            "recognition_guidance": self.recognition_guidance,
            "function_in_context": self.function_in_context,
            "significance": self.significance,
            "reflective_question": self.reflective_question,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TrainingUnit":
        return cls(
            id=data["id"],
            session_id=data.get("session_id", ""),
            greek_form=GreekForm.from_dict(data["greek_form"]),
            identification=data["identification"],
            recognition_guidance=data.get("recognition_guidance"),
            function_in_context=data["function_in_context"],
            significance=data["significance"],
            reflective_question=data["reflective_question"],
        )


@dataclass(frozen=True, slots=True)
class UserResponse:
    """A learner's answer to a unit's reflective question, with its evaluation."""
    id: str
    unit_id: str
    user_answer: str
    feedback: str
    is_correct: bool
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "unit_id": self.unit_id,
            "user_answer": self.user_answer,
            "feedback": self.feedback,
            "is_correct": self.is_correct,
            "created_at": _iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "UserResponse":
        return cls(
            id=data["id"],
            unit_id=data["unit_id"],
            user_answer=data["user_answer"],
            feedback=data["feedback"],
            is_correct=bool(data["is_correct"]),
            created_at=_parse_datetime(data.get("created_at")) or utc_now(),
        )


@dataclass(frozen=True, slots=True)
class Evaluation:
    """Generated judgment of a learner answer."""
    feedback: str
    is_correct: bool


class MorphemeType(str, Enum):
    PREFIX = "prefix"
    ROOT = "root"
    FORMATIVE = "formative"
    ENDING = "ending"
    OTHER = "other"

    @classmethod
    def parse(cls, value: str) -> "MorphemeType":
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.OTHER


@dataclass(frozen=True, slots=True)
class MorphemeComponent:
    part: str
    type: MorphemeType
    meaning: str

    def to_dict(self) -> Dict[str, Any]:
        return {"part": self.part, "type": self.type.value, "meaning": self.meaning}


@dataclass(frozen=True, slots=True)
class MorphologyBreakdown:
    """Morpheme-by-morpheme analysis of a single word."""
    word: str
    components: Tuple[MorphemeComponent, ...]
    summary: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "word": self.word,
            "components": [c.to_dict() for c in self.components],
            "summary": self.summary,
        }


@dataclass(frozen=True, slots=True)
class QuestionContext:
    """
    What a free-form question is about.

    All fields are optional; an empty context means a general question
    about the passage or the language.
    """
    greek_word: str = ""
    transliteration: str = ""
    gloss: str = ""
    identification: str = ""
    function_in_context: str = ""
    significance: str = ""
    passage: str = ""

    @property
    def is_empty(self) -> bool:
        return not any(dataclasses.astuple(self))

    @classmethod
    def from_unit(cls, unit: TrainingUnit, passage: str = "") -> "QuestionContext":
        return cls(
            greek_word=unit.greek_form.text,
            transliteration=unit.greek_form.transliteration,
            gloss=unit.greek_form.gloss,
            identification=unit.identification,
            function_in_context=unit.function_in_context,
            significance=unit.significance,
            passage=passage,
        )


@dataclass(frozen=True, slots=True)
class PromptConfig:
    """
    Caller-supplied prompt overrides.

    ``base_prompt`` replaces the system instruction; ``user_prompts`` are
    extra instructions appended to the request.
    """
    base_prompt: Optional[str] = None
    user_prompts: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "user_prompts", tuple(p.strip() for p in self.user_prompts if p and p.strip())
        )


class QuizQuestionType(str, Enum):
    MULTIPLE_CHOICE = "multiple-choice"
    TRUE_FALSE = "true-false"


@dataclass(frozen=True, slots=True)
class QuizQuestion:
    """
    A comprehension question.

    Questions are pooled by ``fingerprint`` across units; ``unit_id`` names
    the unit the question is currently being served for.
    """
    id: str
    unit_id: str
    type: QuizQuestionType
    question: str
    correct_answer: str
    explanation: str
    options: Tuple[str, ...] = ()
    usage_count: int = 1
    fingerprint: str = ""
    created_at: datetime = field(default_factory=utc_now)

    def served_for(self, unit_id: str) -> "QuizQuestion":
        """Copy rewritten to the requesting unit, with one more use counted."""
        return dataclasses.replace(self, unit_id=unit_id, usage_count=self.usage_count + 1)

    def is_correct_answer(self, answer: str) -> bool:
        return answer.strip().lower() == self.correct_answer.strip().lower()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "unit_id": self.unit_id,
            "type": self.type.value,
            "question": self.question,
            "options": list(self.options),
            "correct_answer": self.correct_answer,
            "explanation": self.explanation,
            "usage_count": self.usage_count,
            "fingerprint": self.fingerprint,
            "created_at": _iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "QuizQuestion":
        return cls(
            id=data["id"],
            unit_id=data.get("unit_id", ""),
            type=QuizQuestionType(data["type"]),
            question=data["question"],
            options=tuple(data.get("options") or ()),
            correct_answer=data["correct_answer"],
            explanation=data.get("explanation", ""),
            usage_count=int(data.get("usage_count", 1)),
            fingerprint=data.get("fingerprint", ""),
            created_at=_parse_datetime(data.get("created_at")) or utc_now(),
        )


@dataclass(frozen=True, slots=True)
class QuizAttempt:
    id: str
    unit_id: str
    question_id: str
    user_answer: str
    is_correct: bool
    attempted_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "unit_id": self.unit_id,
            "question_id": self.question_id,
            "user_answer": self.user_answer,
            "is_correct": self.is_correct,
            "attempted_at": _iso(self.attempted_at),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "QuizAttempt":
        return cls(
            id=data["id"],
            unit_id=data["unit_id"],
            question_id=data["question_id"],
            user_answer=data["user_answer"],
            is_correct=bool(data["is_correct"]),
            attempted_at=_parse_datetime(data.get("attempted_at")) or utc_now(),
        )


@dataclass(frozen=True, slots=True)
class UnitProgress:
    """
    Learner progress on one unit.

    Mastery levels: 0 not viewed, 1 viewed, 2 practiced, 3 mastered.
    """
    viewed_sections: Tuple[str, ...] = ()
    quiz_attempts: Tuple[QuizAttempt, ...] = ()
    mastery_level: int = 0
    last_viewed_at: Optional[datetime] = None

    MASTERED_ACCURACY: ClassVar[float] = 0.8
    MASTERED_MIN_ATTEMPTS: ClassVar[int] = 3
    PRACTICED_ACCURACY: ClassVar[float] = 0.5

    def __post_init__(self) -> None:
        if not 0 <= self.mastery_level <= 3:
            raise TutorValidationError(
                f"Mastery level must be between 0 and 3: {self.mastery_level}",
                field_name="mastery_level",
                actual_value=self.mastery_level,
            )

    @property
    def accuracy(self) -> Optional[float]:
        if not self.quiz_attempts:
            return None
        correct = sum(1 for a in self.quiz_attempts if a.is_correct)
        return correct / len(self.quiz_attempts)

    def viewed(self, section: str, at: Optional[datetime] = None) -> "UnitProgress":
        sections = self.viewed_sections
        if section not in sections:
            sections = sections + (section,)
        return dataclasses.replace(
            self,
            viewed_sections=sections,
            mastery_level=max(self.mastery_level, 1),
            last_viewed_at=at or utc_now(),
        )

    def with_attempt(self, attempt: QuizAttempt) -> "UnitProgress":
        attempts = self.quiz_attempts + (attempt,)
        return dataclasses.replace(
            self,
            quiz_attempts=attempts,
            mastery_level=self.mastery_for(attempts),
            last_viewed_at=attempt.attempted_at,
        )

    @classmethod
    def mastery_for(cls, attempts: Sequence[QuizAttempt]) -> int:
        if not attempts:
            return 1
        accuracy = sum(1 for a in attempts if a.is_correct) / len(attempts)
        if accuracy >= cls.MASTERED_ACCURACY and len(attempts) >= cls.MASTERED_MIN_ATTEMPTS:
            return 3
        if accuracy >= cls.PRACTICED_ACCURACY:
            return 2
        return 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "viewed_sections": list(self.viewed_sections),
            "quiz_attempts": [a.to_dict() for a in self.quiz_attempts],
            "mastery_level": self.mastery_level,
            "last_viewed_at": _iso(self.last_viewed_at),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "UnitProgress":
        return cls(
            viewed_sections=tuple(data.get("viewed_sections") or ()),
            quiz_attempts=tuple(QuizAttempt.from_dict(a) for a in data.get("quiz_attempts") or ()),
            mastery_level=int(data.get("mastery_level", 0)),
            last_viewed_at=_parse_datetime(data.get("last_viewed_at")),
        )


@dataclass(frozen=True, slots=True)
class ExegeticalInsight:
    """A note saved by the learner. Append-only."""
    id: str
    session_id: str
    content: str
    unit_id: Optional[str] = None
    user_id: str = ""
    title: str = ""
    question: str = ""
    tags: Tuple[str, ...] = ()
    created_at: datetime = field(default_factory=utc_now)

    MAX_TAGS: ClassVar[int] = 10

    def __post_init__(self) -> None:
        if not self.content or not self.content.strip():
            raise TutorValidationError("Insight content cannot be empty", field_name="content")

    @staticmethod
    def clean_tags(tags: Sequence[str], limit: int = 10) -> Tuple[str, ...]:
        """Trim, lower-case and de-duplicate tags, keeping first occurrences."""
        seen: List[str] = []
        for tag in tags:
            cleaned = tag.strip().lower()
            if cleaned and cleaned not in seen:
                seen.append(cleaned)
        return tuple(seen[:limit])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "unit_id": self.unit_id,
            "user_id": self.user_id,
            "title": self.title,
            "question": self.question,
            "content": self.content,
            "tags": list(self.tags),
            "created_at": _iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ExegeticalInsight":
        return cls(
            id=data["id"],
            session_id=data["session_id"],
            unit_id=data.get("unit_id"),
            user_id=data.get("user_id", ""),
            title=data.get("title", ""),
            question=data.get("question", ""),
            content=data["content"],
            tags=tuple(data.get("tags") or ()),
            created_at=_parse_datetime(data.get("created_at")) or utc_now(),
        )


# =============================================================================
# AGGREGATE ROOT
# =============================================================================


class SessionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"


@dataclass
class StudySession:
    """
    A learner's study of one passage.

    ACTIVE -> COMPLETED, and COMPLETED is terminal. Units are append-only
    and each unit accepts at most one response. ``version`` belongs to the
    store: it is compared and bumped by SessionStore.update_session.
    """
    id: str
    user_id: str
    passage: str
    status: SessionStatus = SessionStatus.ACTIVE
    units: List[TrainingUnit] = field(default_factory=list)
    responses: Dict[str, UserResponse] = field(default_factory=dict)
    progress: Dict[str, UnitProgress] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    version: int = 0

    @classmethod
    def start(cls, user_id: str, passage: str) -> "StudySession":
        if not user_id:
            raise TutorValidationError("A session needs an owning user", field_name="user_id")
        if not passage or not passage.strip():
            raise TutorValidationError("A session needs a passage", field_name="passage")
        return cls(id=new_id(), user_id=user_id, passage=passage.strip())

    @property
    def is_active(self) -> bool:
        return self.status is SessionStatus.ACTIVE

    def get_unit(self, unit_id: str) -> Optional[TrainingUnit]:
        for unit in self.units:
            if unit.id == unit_id:
                return unit
        return None

    def has_response(self, unit_id: str) -> bool:
        return unit_id in self.responses

    def _ensure_active(self, action: str) -> None:
        if not self.is_active:
            raise SessionCompletedError(
                f"Cannot {action}: session {self.id} is completed",
                session_id=self.id,
            )

    def _ensure_unit(self, unit_id: str) -> TrainingUnit:
        unit = self.get_unit(unit_id)
        if unit is None:
            raise UnknownUnitError(
                f"Unit {unit_id} does not belong to session {self.id}",
                session_id=self.id,
                unit_id=unit_id,
            )
        return unit

    def _touch(self) -> None:
        self.updated_at = utc_now()

    def ensure_can_respond(self, unit_id: str) -> TrainingUnit:
        """Check every precondition of record_response without mutating."""
        self._ensure_active("record a response")
        unit = self._ensure_unit(unit_id)
        if unit_id in self.responses:
            raise DuplicateResponseError(
                f"Unit {unit_id} already has a response",
                session_id=self.id,
                unit_id=unit_id,
            )
        return unit

    def add_unit(self, unit: TrainingUnit) -> TrainingUnit:
        """Append a unit, binding it to this session. Returns the bound unit."""
        self._ensure_active("add a unit")
        if self.get_unit(unit.id) is not None:
            raise TutorValidationError(
                f"Unit {unit.id} is already part of session {self.id}",
                field_name="unit_id",
                actual_value=unit.id,
            )
        bound = unit if unit.session_id == self.id else unit.with_session(self.id)
        self.units.append(bound)
        self._touch()
        return bound

    def record_response(self, response: UserResponse) -> None:
        self.ensure_can_respond(response.unit_id)
        self.responses[response.unit_id] = response
        self._touch()

    def unit_progress(self, unit_id: str) -> UnitProgress:
        return self.progress.get(unit_id, UnitProgress())

    def record_section_view(self, unit_id: str, section: str) -> UnitProgress:
        self._ensure_unit(unit_id)
        updated = self.unit_progress(unit_id).viewed(section)
        self.progress[unit_id] = updated
        self._touch()
        return updated

    def record_quiz_attempt(self, attempt: QuizAttempt) -> UnitProgress:
        self._ensure_active("record a quiz attempt")
        self._ensure_unit(attempt.unit_id)
        updated = self.unit_progress(attempt.unit_id).with_attempt(attempt)
        self.progress[attempt.unit_id] = updated
        self._touch()
        return updated

    def complete(self) -> None:
        self._ensure_active("complete the session")
        self.status = SessionStatus.COMPLETED
        self._touch()

    @property
    def units_completed(self) -> int:
        """Units practiced at least to mastery level 2."""
        return sum(1 for p in self.progress.values() if p.mastery_level >= 2)

    @property
    def quiz_accuracy(self) -> float:
        """Percentage of correct quiz answers across all units (0-100)."""
        attempts = [a for p in self.progress.values() for a in p.quiz_attempts]
        if not attempts:
            return 0.0
        return 100.0 * sum(1 for a in attempts if a.is_correct) / len(attempts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "passage": self.passage,
            "status": self.status.value,
            "units": [u.to_dict() for u in self.units],
            "responses": {k: v.to_dict() for k, v in self.responses.items()},
            "progress": {k: v.to_dict() for k, v in self.progress.items()},
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "StudySession":
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            passage=data["passage"],
            status=SessionStatus(data.get("status", SessionStatus.ACTIVE.value)),
            units=[TrainingUnit.from_dict(u) for u in data.get("units") or ()],
            responses={
                k: UserResponse.from_dict(v) for k, v in (data.get("responses") or {}).items()
            },
            progress={
                k: UnitProgress.from_dict(v) for k, v in (data.get("progress") or {}).items()
            },
            created_at=_parse_datetime(data.get("created_at")) or utc_now(),
            updated_at=_parse_datetime(data.get("updated_at")) or utc_now(),
            version=int(data.get("version", 0)),
        )

    def copy(self) -> "StudySession":
        """Independent copy sharing only immutable members."""
        return dataclasses.replace(
            self,
            units=list(self.units),
            responses=dict(self.responses),
            progress=dict(self.progress),
        )
