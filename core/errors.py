"""
PAIDEIA - Unified Error Handling

Provides the error hierarchy shared by the syntax model, the tutor
engine and the session store adapters.

Three families are distinguished:
- Validation errors: malformed clause/analysis construction (caller bug)
- Generation errors: transient (timeout, rate limit) or structural
  (unparsable generated content)
- Persistence errors: raised by SessionStore implementations and the
  session service guards

Every error records itself on the current OpenTelemetry span.
"""

from __future__ import annotations

import asyncio
import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Type

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode


class ErrorSeverity(Enum):
    """Error severity levels for prioritized handling."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"      # Degraded operation, caller may retry
    ERROR = "error"          # Operation failed
    CRITICAL = "critical"    # Misconfiguration, requires attention


@dataclass
class ErrorContext:
    """Structured context for error debugging and tracing."""

    operation: str
    component: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    trace_id: Optional[str] = None
    span_id: Optional[str] = None
    session_id: Optional[str] = None
    passage_reference: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    stack_trace: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert context to dictionary for serialization."""
        return {
            "operation": self.operation,
            "component": self.component,
            "timestamp": self.timestamp.isoformat(),
            "trace_id": self.trace_id,
            "span_id": self.span_id,
            "session_id": self.session_id,
            "passage_reference": self.passage_reference,
            "metadata": self.metadata,
            "stack_trace": self.stack_trace,
        }

    @classmethod
    def from_current_span(
        cls,
        operation: str,
        component: str,
        **kwargs: Any
    ) -> "ErrorContext":
        """Create context from current OpenTelemetry span."""
        span = trace.get_current_span()
        trace_id = None
        span_id = None

        if span and span.is_recording():
            ctx = span.get_span_context()
            if ctx.is_valid:
                trace_id = format(ctx.trace_id, "032x")
                span_id = format(ctx.span_id, "016x")

        return cls(
            operation=operation,
            component=component,
            trace_id=trace_id,
            span_id=span_id,
            stack_trace=traceback.format_exc(),
            **kwargs
        )


class PaideiaError(Exception):
    """
    Base exception for all PAIDEIA errors.

    Provides:
    - Structured error context
    - Severity level and recoverable flag
    - Chained exception support
    - OpenTelemetry span recording
    """

    default_severity: ErrorSeverity = ErrorSeverity.ERROR
    default_suggestions: List[str] = []
    error_code: str = "PAIDEIA_ERROR"

    def __init__(
        self,
        message: str,
        context: Optional[ErrorContext] = None,
        severity: Optional[ErrorSeverity] = None,
        cause: Optional[Exception] = None,
        recoverable: bool = False,
        suggestions: Optional[List[str]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.context = context
        self.severity = severity or self.default_severity
        self.cause = cause
        self.recoverable = recoverable
        self.suggestions = suggestions or list(self.default_suggestions)
        self.timestamp = datetime.now(timezone.utc)

        self._record_to_span()

    def _record_to_span(self) -> None:
        """Record exception to current OpenTelemetry span."""
        span = trace.get_current_span()
        if span and span.is_recording():
            span.set_status(Status(StatusCode.ERROR, self.message))
            span.record_exception(self)
            span.set_attribute("error.code", self.error_code)
            span.set_attribute("error.severity", self.severity.value)
            span.set_attribute("error.recoverable", self.recoverable)
            if self.context:
                span.set_attribute("error.component", self.context.component)
                span.set_attribute("error.operation", self.context.operation)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "severity": self.severity.value,
            "recoverable": self.recoverable,
            "suggestions": self.suggestions,
            "timestamp": self.timestamp.isoformat(),
            "context": self.context.to_dict() if self.context else None,
            "cause": str(self.cause) if self.cause else None,
        }

    def __str__(self) -> str:
        parts = [f"[{self.error_code}] {self.message}"]
        if self.context:
            parts.append(f" (component: {self.context.component})")
        if self.cause:
            parts.append(f" [caused by: {self.cause}]")
        return "".join(parts)

    def with_context(self, **kwargs: Any) -> "PaideiaError":
        """Add additional context to the error."""
        if self.context:
            self.context.metadata.update(kwargs)
        else:
            self.context = ErrorContext(
                operation="unknown",
                component="unknown",
                metadata=kwargs
            )
        return self


class ConfigError(PaideiaError):
    """Configuration-related errors."""

    error_code = "CONFIG_ERROR"
    default_severity = ErrorSeverity.CRITICAL

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        actual_value: Any = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.config_key = config_key
        self.actual_value = actual_value


# =============================================================================
# Validation errors
# =============================================================================


class TutorValidationError(PaideiaError):
    """Invalid input to a domain factory or engine operation."""

    error_code = "VALIDATION_ERROR"
    default_severity = ErrorSeverity.WARNING

    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
        actual_value: Any = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.field_name = field_name
        self.actual_value = actual_value


class InvalidClauseError(TutorValidationError):
    """A clause description violates the clause invariants."""

    error_code = "INVALID_CLAUSE"

    def __init__(self, message: str, clause_id: Optional[str] = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.clause_id = clause_id


class EmptyAnalysisError(TutorValidationError):
    """A syntax analysis was requested over zero clauses."""

    error_code = "EMPTY_ANALYSIS"


class UnknownRootError(TutorValidationError):
    """The designated root clause id is not among the clauses."""

    error_code = "UNKNOWN_ROOT"

    def __init__(self, message: str, root_clause_id: Optional[str] = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.root_clause_id = root_clause_id


class MalformedTreeError(TutorValidationError):
    """The parent relation does not form a valid forest."""

    error_code = "MALFORMED_TREE"

    def __init__(
        self,
        message: str,
        clause_ids: Optional[List[str]] = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.clause_ids = clause_ids or []


# =============================================================================
# Generation errors
# =============================================================================


class GenerationError(PaideiaError):
    """Failure of the external text-generation capability."""

    error_code = "GENERATION_ERROR"
    default_severity = ErrorSeverity.ERROR

    def __init__(self, message: str, operation: Optional[str] = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.operation_name = operation


class GenerationTimeoutError(GenerationError):
    """A generation call exceeded its time budget."""

    error_code = "GENERATION_TIMEOUT"
    default_severity = ErrorSeverity.WARNING
    default_suggestions = ["Try again in a moment."]

    def __init__(
        self,
        message: str,
        timeout_seconds: Optional[float] = None,
        **kwargs: Any,
    ):
        kwargs.setdefault("recoverable", True)
        super().__init__(message, **kwargs)
        self.timeout_seconds = timeout_seconds


class RateLimitedError(GenerationError):
    """The generation service refused the call because of rate limits."""

    error_code = "RATE_LIMITED"
    default_severity = ErrorSeverity.WARNING
    default_suggestions = ["Try again in a moment."]

    def __init__(
        self,
        message: str,
        retry_after: Optional[float] = None,
        **kwargs: Any,
    ):
        kwargs.setdefault("recoverable", True)
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class GenerationServiceError(GenerationError):
    """The generation service returned an error response."""

    error_code = "GENERATION_SERVICE_ERROR"

    def __init__(self, message: str, status_code: Optional[int] = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.status_code = status_code


class GenerationParseError(GenerationError):
    """Generated content could not be parsed into the expected structure."""

    error_code = "GENERATION_PARSE_ERROR"
    default_suggestions = ["Could not produce this content, try rephrasing."]

    def __init__(self, message: str, raw_text: Optional[str] = None, **kwargs: Any):
        kwargs["recoverable"] = False
        super().__init__(message, **kwargs)
        self.raw_text = raw_text


# =============================================================================
# Persistence and session errors
# =============================================================================


class SessionStoreError(PaideiaError):
    """Storage backend failure."""

    error_code = "STORE_ERROR"

    def __init__(self, message: str, backend: Optional[str] = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.backend = backend


class ConcurrencyConflictError(SessionStoreError):
    """A versioned update lost a race against a concurrent writer."""

    error_code = "CONCURRENCY_CONFLICT"
    default_severity = ErrorSeverity.WARNING

    def __init__(
        self,
        message: str,
        session_id: Optional[str] = None,
        expected_version: Optional[int] = None,
        actual_version: Optional[int] = None,
        **kwargs: Any,
    ):
        kwargs.setdefault("recoverable", True)
        super().__init__(message, **kwargs)
        self.session_id = session_id
        self.expected_version = expected_version
        self.actual_version = actual_version


class SessionError(PaideiaError):
    """A session operation was rejected by the session state machine."""

    error_code = "SESSION_ERROR"
    default_severity = ErrorSeverity.WARNING

    def __init__(self, message: str, session_id: Optional[str] = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.session_id = session_id


class SessionNotFoundError(SessionError):
    """The referenced session does not exist."""

    error_code = "SESSION_NOT_FOUND"


class SessionCompletedError(SessionError):
    """Mutation attempted on a session that is already COMPLETED."""

    error_code = "SESSION_COMPLETED"


class DuplicateResponseError(SessionError):
    """A response has already been recorded for the unit."""

    error_code = "DUPLICATE_RESPONSE"

    def __init__(self, message: str, unit_id: Optional[str] = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.unit_id = unit_id


class UnknownUnitError(SessionError):
    """The referenced training unit does not belong to the session."""

    error_code = "UNKNOWN_UNIT"

    def __init__(self, message: str, unit_id: Optional[str] = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.unit_id = unit_id


class SessionOwnershipError(SessionError):
    """The caller does not own the session."""

    error_code = "SESSION_FORBIDDEN"


# Error mapping for automatic classification
ERROR_TYPE_MAP: Dict[Type[Exception], Type[PaideiaError]] = {
    asyncio.TimeoutError: GenerationTimeoutError,
    TimeoutError: GenerationTimeoutError,
    ConnectionError: GenerationServiceError,
    ValueError: TutorValidationError,
}


def classify_error(error: Exception) -> PaideiaError:
    """Classify a generic exception into the appropriate PaideiaError type."""
    if isinstance(error, PaideiaError):
        return error
    for error_type, paideia_type in ERROR_TYPE_MAP.items():
        if isinstance(error, error_type):
            return paideia_type(message=str(error) or error_type.__name__, cause=error)
    return PaideiaError(message=str(error), cause=error)


def is_retryable(error: BaseException) -> bool:
    """Whether an error is transient and worth an automatic retry."""
    return isinstance(error, PaideiaError) and error.recoverable
