"""
PAIDEIA - Generated Payload Schemas

Pydantic models for the JSON the generation service is asked to produce.
Field names follow the camelCase keys used in the prompts; every model also
accepts snake_case names. Validation failures surface as
GenerationParseError through parse_payload().
"""
from __future__ import annotations

from typing import Any, List, Literal, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from core.errors import GenerationParseError
from domain.syntax import ClauseType

M = TypeVar("M", bound=BaseModel)


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, str_strip_whitespace=True)


class GreekFormPayload(_Payload):
    text: str = Field(..., min_length=1)
    transliteration: str = ""
    lemma: str = Field(..., min_length=1)
    morphology: str = ""
    gloss: str = ""
    grammatical_category: str = Field(default="", alias="grammaticalCategory")


class TrainingUnitPayload(_Payload):
    identification: str = Field(..., min_length=1)
    recognition_guidance: Optional[str] = Field(default=None, alias="recognitionGuidance")
    function_in_context: str = Field(..., min_length=1, alias="functionInContext")
    significance: str = Field(..., min_length=1)
    reflective_question: str = Field(..., min_length=1, alias="reflectiveQuestion")
    greek_form: GreekFormPayload = Field(..., alias="greekForm")


class EvaluationPayload(_Payload):
    feedback: str = Field(..., min_length=1)
    is_correct: bool = Field(..., alias="isCorrect")


class MorphemePayload(_Payload):
    part: str = Field(..., min_length=1)
    type: str = "other"
    meaning: str = ""


class MorphologyPayload(_Payload):
    word: Optional[str] = None
    components: List[MorphemePayload] = Field(default_factory=list)
    summary: str = ""


class QuizQuestionPayload(_Payload):
    type: Literal["multiple-choice", "true-false"] = "multiple-choice"
    question: str = Field(..., min_length=1)
    options: List[str] = Field(default_factory=list)
    correct_answer: str = Field(..., min_length=1, alias="correctAnswer")
    explanation: str = ""

    @field_validator("options")
    @classmethod
    def drop_blank_options(cls, v: List[str]) -> List[str]:
        return [o.strip() for o in v if o and o.strip()]

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower().replace("_", "-").replace(" ", "-")
        return v


class QuizPayload(_Payload):
    questions: List[QuizQuestionPayload] = Field(default_factory=list)


class ClausePayload(_Payload):
    id: str = Field(..., min_length=1)
    type: ClauseType
    word_indices: List[int] = Field(..., alias="wordIndices")
    main_verb_index: Optional[int] = Field(default=None, alias="mainVerbIndex")
    parent_clause_id: Optional[str] = Field(default=None, alias="parentClauseId")
    conjunction: Optional[str] = None
    translation: Optional[str] = None
    syntactic_function: Optional[str] = Field(default=None, alias="syntacticFunction")

    @field_validator("type", mode="before")
    @classmethod
    def parse_clause_type(cls, v: Any) -> ClauseType:
        return ClauseType.parse(v)


class SyntaxPayload(_Payload):
    clauses: List[ClausePayload] = Field(..., min_length=1)
    root_clause_id: str = Field(..., min_length=1, alias="rootClauseId")
    structure_description: str = Field(default="", alias="structureDescription")


def parse_payload(model: Type[M], data: Any, operation: str) -> M:
    """Validate decoded JSON against ``model``."""
    try:
        return model.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0] if e.errors() else {}
        location = ".".join(str(p) for p in first.get("loc", ()))
        raise GenerationParseError(
            f"Generated {operation} payload is malformed"
            + (f" at {location}: {first.get('msg')}" if location else ""),
            operation=operation,
            cause=e,
        ) from e
