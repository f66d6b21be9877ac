"""
PAIDEIA - Domain Layer

Entities of the tutoring domain and the clause graph of a passage.
Aggregate roots (StudySession, PassageSyntaxAnalysis) guard their own
invariants; nothing here performs I/O.
"""
from domain.entities import (
    Evaluation,
    ExegeticalInsight,
    GreekForm,
    MorphemeComponent,
    MorphemeType,
    MorphologyBreakdown,
    PromptConfig,
    QuestionContext,
    QuizAttempt,
    QuizQuestion,
    QuizQuestionType,
    SessionStatus,
    StudySession,
    TrainingUnit,
    UnitProgress,
    UserResponse,
)
from domain.syntax import (
    Clause,
    ClauseType,
    PassageSyntaxAnalysis,
    analysis_from_dict,
    analysis_to_dict,
    build_analysis,
    build_clause,
    check_word_coverage,
)

__all__ = [
    # Entities
    "GreekForm",
    "TrainingUnit",
    "UserResponse",
    "Evaluation",
    "MorphemeType",
    "MorphemeComponent",
    "MorphologyBreakdown",
    "QuestionContext",
    "PromptConfig",
    "QuizQuestionType",
    "QuizQuestion",
    "QuizAttempt",
    "UnitProgress",
    "ExegeticalInsight",
    "SessionStatus",
    "StudySession",
    # Syntax
    "ClauseType",
    "Clause",
    "PassageSyntaxAnalysis",
    "build_clause",
    "build_analysis",
    "check_word_coverage",
    "analysis_to_dict",
    "analysis_from_dict",
]
