"""
PAIDEIA - Distributed Tracing with OpenTelemetry

Span helpers for the tutor engine. Code throughout the project only talks
to the OpenTelemetry API; the SDK provider and its exporters are installed
by setup_tracing() at application start. Until then every span is a no-op,
which keeps library use and tests free of collector requirements.

Usage:
    from observability.tracing import setup_tracing, create_span

    setup_tracing(TracingConfig(otlp_endpoint="http://localhost:4317"))

    with create_span("tutor.create_training_unit", {"form": form}) as span:
        ...
"""
from __future__ import annotations

import functools
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterator, Optional, TypeVar, ParamSpec

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource, SERVICE_NAME, SERVICE_VERSION
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SimpleSpanProcessor,
)
from opentelemetry.trace import Span, SpanKind, Status, StatusCode

P = ParamSpec("P")
T = TypeVar("T")

# Global state
_tracer_provider: Optional[TracerProvider] = None

DEFAULT_TRACER = "paideia"


@dataclass
class TracingConfig:
    """Configuration for OpenTelemetry tracing."""

    service_name: str = "paideia"
    service_version: str = "1.0.0"
    otlp_endpoint: str = ""
    otlp_insecure: bool = True
    environment: str = "development"
    console_export: bool = False
    extra_attributes: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_observability(cls, config: Any) -> "TracingConfig":
        """Build from an ObservabilityConfig."""
        return cls(
            service_name=config.service_name,
            service_version=config.service_version,
            otlp_endpoint=config.otlp_endpoint,
            otlp_insecure=config.otlp_insecure,
            environment=config.environment,
            console_export=config.trace_console_export,
        )


def setup_tracing(config: Optional[TracingConfig] = None) -> TracerProvider:
    """
    Install an SDK tracer provider as the global provider.

    Spans are exported over OTLP/gRPC when an endpoint is configured and to
    stdout when console export is requested.
    """
    global _tracer_provider

    if _tracer_provider is not None:
        return _tracer_provider

    config = config or TracingConfig()

    resource = Resource.create({
        SERVICE_NAME: config.service_name,
        SERVICE_VERSION: config.service_version,
        "deployment.environment": config.environment,
        "service.namespace": "paideia",
        **config.extra_attributes,
    })
    provider = TracerProvider(resource=resource)

    if config.otlp_endpoint:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

        provider.add_span_processor(
            BatchSpanProcessor(
                OTLPSpanExporter(
                    endpoint=config.otlp_endpoint,
                    insecure=config.otlp_insecure,
                )
            )
        )

    if config.console_export:
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(provider)
    _tracer_provider = provider
    return provider


def get_tracer(name: str = DEFAULT_TRACER, version: str = "1.0.0") -> trace.Tracer:
    """Get a tracer from the global provider."""
    return trace.get_tracer(name, version)


def shutdown_tracing() -> None:
    """Flush pending spans and drop the SDK provider reference."""
    global _tracer_provider
    if _tracer_provider is not None:
        _tracer_provider.shutdown()
    _tracer_provider = None


def _set_safe_attribute(span: Span, key: str, value: Any) -> None:
    """Set span attribute with type coercion for safety."""
    if value is None:
        return
    if isinstance(value, (str, int, float, bool)):
        span.set_attribute(key, value)
    elif isinstance(value, (list, tuple)):
        span.set_attribute(key, [str(v)[:100] for v in value[:10]])
    else:
        span.set_attribute(key, str(value)[:200])


@contextmanager
def create_span(
    name: str,
    attributes: Optional[Dict[str, Any]] = None,
    kind: SpanKind = SpanKind.INTERNAL,
    tracer_name: str = DEFAULT_TRACER,
) -> Iterator[Span]:
    """
    Context manager for creating spans with automatic error handling.

    Example:
        >>> with create_span("quiz_cache.lookup", {"quiz.fingerprint": fp}) as span:
        ...     cached = await store.get_cached_quiz(fp)
        ...     span.set_attribute("quiz.cache_hit", cached is not None)
    """
    tracer = get_tracer(tracer_name)
    with tracer.start_as_current_span(name, kind=kind) as span:
        if attributes:
            for key, value in attributes.items():
                _set_safe_attribute(span, key, value)
        try:
            yield span
        except Exception as e:
            span.set_status(Status(StatusCode.ERROR, str(e)))
            span.record_exception(e)
            raise


def span_decorator(
    name: Optional[str] = None,
    kind: SpanKind = SpanKind.INTERNAL,
    attributes: Optional[Dict[str, Any]] = None,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """
    Decorator for automatic span creation around coroutine functions.

    Example:
        >>> @span_decorator("store.update_session")
        ... async def update_session(self, session): ...
    """

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        span_name = name or func.__qualname__

        @functools.wraps(func)
        async def async_wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            with create_span(span_name, attributes, kind=kind, tracer_name=func.__module__):
                return await func(*args, **kwargs)

        return async_wrapper

    return decorator
