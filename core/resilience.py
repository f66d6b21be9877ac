"""
PAIDEIA - Resilience Patterns

Retry and timeout helpers for calls to the external generation capability:
- Retry Policy: configurable retry with exponential backoff and jitter
- Timeout: bounds a single awaitable and converts expiry into a
  retryable GenerationTimeoutError

All patterns integrate with OpenTelemetry for observability.
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, field
from typing import (
    Any,
    Awaitable,
    Callable,
    Optional,
    Set,
    Type,
    TypeVar,
)

from opentelemetry import trace

from core.errors import (
    ConcurrencyConflictError,
    GenerationParseError,
    GenerationServiceError,
    GenerationTimeoutError,
    RateLimitedError,
    TutorValidationError,
)
from observability.logging import get_logger

T = TypeVar("T")

tracer = trace.get_tracer(__name__)
logger = get_logger(__name__)


@dataclass
class RetryConfig:
    """Configuration for retry policy."""

    max_attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 10.0
    exponential_base: float = 2.0
    jitter: bool = True
    retryable_exceptions: Set[Type[Exception]] = field(
        default_factory=lambda: {GenerationTimeoutError, RateLimitedError}
    )
    non_retryable_exceptions: Set[Type[Exception]] = field(
        default_factory=lambda: {
            GenerationParseError,
            GenerationServiceError,
            TutorValidationError,
        }
    )

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must be >= 0")


class RetryPolicy:
    """
    Configurable retry policy with exponential backoff.

    Only transient generation failures are retried by default; parse and
    service errors surface on the first attempt.

    Usage:
        policy = RetryPolicy(RetryConfig(max_attempts=3))
        result = await policy.run(client.generate, prompt, options)
    """

    def __init__(self, config: Optional[RetryConfig] = None):
        self.config = config or RetryConfig()

    def calculate_delay(self, attempt: int, error: Optional[Exception] = None) -> float:
        """Calculate delay for given attempt number."""
        delay = min(
            self.config.base_delay * (self.config.exponential_base ** attempt),
            self.config.max_delay
        )

        if self.config.jitter:
            delay *= (0.5 + random.random())

        # Honour a server-provided hint when it asks for longer
        retry_after = getattr(error, "retry_after", None)
        if retry_after is not None:
            delay = max(delay, min(float(retry_after), self.config.max_delay))

        return delay

    def is_retryable(self, exception: Exception) -> bool:
        """Check if exception should trigger retry."""
        exc_type = type(exception)

        if any(issubclass(exc_type, t) for t in self.config.non_retryable_exceptions):
            return False

        return any(issubclass(exc_type, t) for t in self.config.retryable_exceptions)

    async def run(
        self,
        func: Callable[..., Awaitable[T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """Await ``func(*args, **kwargs)`` under this policy."""
        last_exception: Optional[Exception] = None

        for attempt in range(self.config.max_attempts):
            with tracer.start_as_current_span(
                f"retry.attempt_{attempt}",
            ) as span:
                span.set_attribute("retry.attempt", attempt)
                span.set_attribute("retry.max_attempts", self.config.max_attempts)

                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    last_exception = e
                    span.set_attribute("retry.exception", type(e).__name__)

                    if not self.is_retryable(e):
                        raise

                    if attempt < self.config.max_attempts - 1:
                        delay = self.calculate_delay(attempt, e)
                        span.set_attribute("retry.delay_seconds", delay)
                        logger.warning(
                            "Retrying after transient failure",
                            attempt=attempt + 1,
                            max_attempts=self.config.max_attempts,
                            error=type(e).__name__,
                            delay_seconds=round(delay, 3),
                        )
                        await asyncio.sleep(delay)

        raise last_exception  # type: ignore


async def call_with_timeout(
    awaitable: Awaitable[T],
    timeout: Optional[float],
    operation: str = "generation",
) -> T:
    """
    Await with a deadline.

    Expiry is reported as GenerationTimeoutError, which the default retry
    policy treats as transient. ``timeout=None`` disables the bound.
    """
    if timeout is None:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as e:
        raise GenerationTimeoutError(
            message=f"{operation} timed out after {timeout}s",
            timeout_seconds=timeout,
            operation=operation,
            cause=e,
        ) from e


def conflict_retry_config(max_attempts: int) -> RetryConfig:
    """Retry configuration for optimistic-concurrency update loops."""
    return RetryConfig(
        max_attempts=max_attempts,
        base_delay=0.01,
        max_delay=0.2,
        retryable_exceptions={ConcurrencyConflictError},
        non_retryable_exceptions=set(),
    )
