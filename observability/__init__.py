"""
PAIDEIA - Observability Package

Tracing, metrics, and structured logging for the tutor engine.

Components:
- tracing: OpenTelemetry spans with optional OTLP export
- metrics: Generation latency and quiz cache effectiveness
- logging: Structlog integration with trace context propagation

Usage:
    from observability import setup_observability
    from config import get_config

    setup_observability(get_config().observability)
"""
from typing import Any

from .logging import (
    LogContext,
    LoggingConfig,
    bind_context,
    get_logger,
    setup_logging,
    shutdown_logging,
)
from .metrics import (
    MetricsConfig,
    TutorMetrics,
    get_meter,
    get_tutor_metrics,
    setup_metrics,
    shutdown_metrics,
)
from .tracing import (
    TracingConfig,
    create_span,
    get_tracer,
    setup_tracing,
    shutdown_tracing,
    span_decorator,
)

__all__ = [
    # Tracing
    "setup_tracing",
    "get_tracer",
    "create_span",
    "span_decorator",
    "TracingConfig",
    "shutdown_tracing",
    # Metrics
    "setup_metrics",
    "get_meter",
    "get_tutor_metrics",
    "MetricsConfig",
    "TutorMetrics",
    "shutdown_metrics",
    # Logging
    "setup_logging",
    "get_logger",
    "LoggingConfig",
    "LogContext",
    "bind_context",
    "shutdown_logging",
    # Combined setup
    "setup_observability",
    "shutdown_observability",
]


def setup_observability(config: Any) -> None:
    """
    Initialize observability from an ObservabilityConfig.

    Logging is always configured; tracing and metrics SDK providers are
    installed only when enabled.
    """
    setup_logging(LoggingConfig.from_observability(config))
    if config.tracing_enabled:
        setup_tracing(TracingConfig.from_observability(config))
    if config.metrics_enabled:
        setup_metrics(MetricsConfig.from_observability(config))


def shutdown_observability() -> None:
    """Flush and shut down all observability components."""
    shutdown_tracing()
    shutdown_metrics()
    shutdown_logging()
