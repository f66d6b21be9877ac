"""
PAIDEIA - Tutor Services

Generation-backed tutoring: engine, quiz cache, session service and
syntax analyzer, assembled by tutor.factory.build_tutor.
"""
from tutor.engine import TutorEngine
from tutor.factory import Tutor, build_tutor
from tutor.generation import (
    GeminiGenerationClient,
    GenerationClient,
    GenerationOptions,
    ResilientGenerator,
)
from tutor.quiz_cache import QuizCache, quiz_fingerprint
from tutor.sessions import QuizAnswerResult, StudySessionService
from tutor.syntax_analyzer import SyntaxAnalyzer

__all__ = [
    "TutorEngine",
    "Tutor",
    "build_tutor",
    "GenerationClient",
    "GenerationOptions",
    "GeminiGenerationClient",
    "ResilientGenerator",
    "QuizCache",
    "quiz_fingerprint",
    "StudySessionService",
    "QuizAnswerResult",
    "SyntaxAnalyzer",
]
