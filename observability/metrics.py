"""
PAIDEIA - OpenTelemetry Metrics

Custom metrics for the tutor engine.

Key Metrics:
- paideia_generation_duration_seconds: Latency of generation calls by operation
- paideia_generation_failures_total: Failed generation calls by error code
- paideia_quiz_cache_hits_total / paideia_quiz_cache_misses_total: Quiz cache effectiveness
- paideia_cache_write_failures_total: Best-effort cache writes that failed
- paideia_responses_recorded_total: Learner responses by correctness

Instruments are created against the global meter provider. Without
setup_metrics() that provider is the API no-op, so recording is free.
"""
from __future__ import annotations

import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator, Optional

from opentelemetry import metrics
from opentelemetry.metrics import Meter
from opentelemetry.sdk.metrics import MeterProvider as SDKMeterProvider
from opentelemetry.sdk.metrics.export import (
    ConsoleMetricExporter,
    MetricReader,
    PeriodicExportingMetricReader,
)
from opentelemetry.sdk.resources import Resource, SERVICE_NAME, SERVICE_VERSION

# Global state
_meter_provider: Optional[SDKMeterProvider] = None
_tutor_metrics: Optional["TutorMetrics"] = None


@dataclass
class MetricsConfig:
    """Configuration for OpenTelemetry metrics."""

    service_name: str = "paideia"
    service_version: str = "1.0.0"
    otlp_endpoint: str = ""
    otlp_insecure: bool = True
    environment: str = "development"
    console_export: bool = False
    export_interval_millis: int = 60000

    @classmethod
    def from_observability(cls, config: Any) -> "MetricsConfig":
        """Build from an ObservabilityConfig."""
        return cls(
            service_name=config.service_name,
            service_version=config.service_version,
            otlp_endpoint=config.otlp_endpoint,
            otlp_insecure=config.otlp_insecure,
            environment=config.environment,
            export_interval_millis=config.metrics_export_interval,
        )


class TutorMetrics:
    """
    Central metrics collector for the tutor engine.
    """

    def __init__(self, meter: Meter):
        self.meter = meter

        self.generation_duration = meter.create_histogram(
            name="paideia_generation_duration_seconds",
            description="Duration of generation calls",
            unit="s",
        )
        self.generation_failures = meter.create_counter(
            name="paideia_generation_failures_total",
            description="Generation calls that raised",
            unit="1",
        )
        self.cache_hits = meter.create_counter(
            name="paideia_quiz_cache_hits_total",
            description="Quiz requests served from cache",
            unit="1",
        )
        self.cache_misses = meter.create_counter(
            name="paideia_quiz_cache_misses_total",
            description="Quiz requests that required generation",
            unit="1",
        )
        self.cache_write_failures = meter.create_counter(
            name="paideia_cache_write_failures_total",
            description="Best-effort cache writes that failed",
            unit="1",
        )
        self.responses_recorded = meter.create_counter(
            name="paideia_responses_recorded_total",
            description="Learner responses recorded on sessions",
            unit="1",
        )

    def record_generation(self, operation: str, duration: float) -> None:
        """Record a generation call latency."""
        self.generation_duration.record(duration, {"operation": operation})

    def record_generation_failure(self, operation: str, error_code: str) -> None:
        self.generation_failures.add(1, {"operation": operation, "error_code": error_code})

    def record_cache_access(self, hit: bool, cache_type: str = "quiz") -> None:
        """Record cache hit/miss."""
        attributes = {"cache_type": cache_type}
        if hit:
            self.cache_hits.add(1, attributes)
        else:
            self.cache_misses.add(1, attributes)

    def record_cache_write_failure(self, cache_type: str = "quiz") -> None:
        self.cache_write_failures.add(1, {"cache_type": cache_type})

    def record_response(self, is_correct: bool) -> None:
        self.responses_recorded.add(1, {"correct": str(is_correct).lower()})

    @contextmanager
    def timed_generation(self, operation: str) -> Iterator[None]:
        """Time a generation call, recording failures by error code."""
        start = time.perf_counter()
        try:
            yield
        except Exception as e:
            self.record_generation_failure(
                operation, getattr(e, "error_code", type(e).__name__)
            )
            raise
        finally:
            self.record_generation(operation, time.perf_counter() - start)


def setup_metrics(config: Optional[MetricsConfig] = None) -> SDKMeterProvider:
    """
    Configure OpenTelemetry metrics with OTLP or console export.
    """
    global _meter_provider, _tutor_metrics

    if _meter_provider is not None:
        return _meter_provider

    config = config or MetricsConfig()

    resource = Resource.create({
        SERVICE_NAME: config.service_name,
        SERVICE_VERSION: config.service_version,
        "deployment.environment": config.environment,
    })

    readers: list[MetricReader] = []
    if config.otlp_endpoint:
        from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter

        readers.append(
            PeriodicExportingMetricReader(
                OTLPMetricExporter(endpoint=config.otlp_endpoint, insecure=config.otlp_insecure),
                export_interval_millis=config.export_interval_millis,
            )
        )
    if config.console_export:
        readers.append(
            PeriodicExportingMetricReader(
                ConsoleMetricExporter(),
                export_interval_millis=config.export_interval_millis,
            )
        )

    _meter_provider = SDKMeterProvider(resource=resource, metric_readers=readers)
    metrics.set_meter_provider(_meter_provider)

    # Rebuild instruments against the new provider
    _tutor_metrics = None
    return _meter_provider


def get_meter(name: str = "paideia", version: str = "1.0.0") -> Meter:
    """Get a meter from the global provider."""
    return metrics.get_meter(name, version)


def get_tutor_metrics() -> TutorMetrics:
    """Get the process-wide TutorMetrics instance."""
    global _tutor_metrics
    if _tutor_metrics is None:
        _tutor_metrics = TutorMetrics(get_meter())
    return _tutor_metrics


def shutdown_metrics() -> None:
    """Gracefully shutdown metrics collection."""
    global _meter_provider, _tutor_metrics
    if _meter_provider is not None:
        _meter_provider.shutdown()
    _meter_provider = None
    _tutor_metrics = None
