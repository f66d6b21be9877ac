"""
PAIDEIA - Core Module

Foundational pieces shared by every layer:
- Error hierarchy with severity, context and span recording
- Retry and timeout helpers for the generation service

Usage:
    from core import PaideiaError, RetryPolicy, is_retryable
"""
from core.errors import (
    ConcurrencyConflictError,
    ConfigError,
    DuplicateResponseError,
    EmptyAnalysisError,
    ErrorContext,
    ErrorSeverity,
    GenerationError,
    GenerationParseError,
    GenerationServiceError,
    GenerationTimeoutError,
    InvalidClauseError,
    MalformedTreeError,
    PaideiaError,
    RateLimitedError,
    SessionCompletedError,
    SessionError,
    SessionNotFoundError,
    SessionOwnershipError,
    SessionStoreError,
    TutorValidationError,
    UnknownRootError,
    UnknownUnitError,
    classify_error,
    is_retryable,
)
from core.resilience import (
    RetryConfig,
    RetryPolicy,
    call_with_timeout,
    conflict_retry_config,
)

__all__ = [
    # Errors
    "PaideiaError",
    "ErrorContext",
    "ErrorSeverity",
    "ConfigError",
    "TutorValidationError",
    "InvalidClauseError",
    "EmptyAnalysisError",
    "UnknownRootError",
    "MalformedTreeError",
    "GenerationError",
    "GenerationTimeoutError",
    "RateLimitedError",
    "GenerationServiceError",
    "GenerationParseError",
    "SessionStoreError",
    "ConcurrencyConflictError",
    "SessionError",
    "SessionNotFoundError",
    "SessionCompletedError",
    "DuplicateResponseError",
    "UnknownUnitError",
    "SessionOwnershipError",
    "classify_error",
    "is_retryable",
    # Resilience
    "RetryConfig",
    "RetryPolicy",
    "call_with_timeout",
    "conflict_retry_config",
]
