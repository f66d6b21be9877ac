"""
Tests for observability/ - metrics, tracing helpers and log context.

Uses SDK in-memory readers and exporters; nothing is exported.
"""
from unittest.mock import patch

import pytest
import structlog
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import InMemoryMetricReader
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode

from core.errors import RateLimitedError
from observability.logging import LogContext, bind_context, clear_context
from observability.metrics import TutorMetrics
from observability.tracing import create_span
from tests.conftest import as_json, quiz_payload
from tutor.quiz_cache import QuizCache


def _points(reader: InMemoryMetricReader):
    """Flatten collected data points into {(metric, attrs): value}."""
    values = {}
    data = reader.get_metrics_data()
    for resource_metrics in data.resource_metrics:
        for scope_metrics in resource_metrics.scope_metrics:
            for metric in scope_metrics.metrics:
                for point in metric.data.data_points:
                    key = (metric.name, tuple(sorted(point.attributes.items())))
                    values[key] = getattr(point, "value", getattr(point, "count", None))
    return values


@pytest.fixture
def metric_reader():
    return InMemoryMetricReader()


@pytest.fixture
def tutor_metrics(metric_reader) -> TutorMetrics:
    provider = MeterProvider(metric_readers=[metric_reader])
    return TutorMetrics(provider.get_meter("paideia.test"))


# =============================================================================
# Metrics
# =============================================================================


class TestTutorMetrics:
    """Instrument recording."""

    def test_timed_generation_records_failures(self, tutor_metrics, metric_reader):
        with pytest.raises(RateLimitedError):
            with tutor_metrics.timed_generation("quiz"):
                raise RateLimitedError("busy")

        points = _points(metric_reader)
        failures = (
            "paideia_generation_failures_total",
            (("error_code", "RATE_LIMITED"), ("operation", "quiz")),
        )
        assert points[failures] == 1
        assert points[("paideia_generation_duration_seconds", (("operation", "quiz"),))] == 1

    def test_response_counter(self, tutor_metrics, metric_reader):
        tutor_metrics.record_response(True)
        tutor_metrics.record_response(True)
        tutor_metrics.record_response(False)

        points = _points(metric_reader)
        assert points[("paideia_responses_recorded_total", (("correct", "true"),))] == 2
        assert points[("paideia_responses_recorded_total", (("correct", "false"),))] == 1

    @pytest.mark.asyncio
    async def test_quiz_cache_counts_hits_and_misses(
        self, store, generator, fake_client, training_unit, tutor_metrics, metric_reader
    ):
        cache = QuizCache(store, generator, metrics=tutor_metrics)
        fake_client.script(as_json(quiz_payload(3)))

        await cache.get_quiz_questions(training_unit, 3)
        await cache.get_quiz_questions(training_unit, 2)

        points = _points(metric_reader)
        quiz = (("cache_type", "quiz"),)
        assert points[("paideia_quiz_cache_misses_total", quiz)] == 1
        assert points[("paideia_quiz_cache_hits_total", quiz)] == 1


# =============================================================================
# Tracing
# =============================================================================


class TestCreateSpan:
    """create_span attribute handling and error recording."""

    @pytest.fixture
    def exporter(self):
        exporter = InMemorySpanExporter()
        provider = TracerProvider()
        provider.add_span_processor(SimpleSpanProcessor(exporter))
        with patch(
            "observability.tracing.get_tracer",
            side_effect=lambda name, version="1.0.0": provider.get_tracer(name, version),
        ):
            yield exporter

    def test_attributes_coerced(self, exporter):
        with create_span("quiz_cache.lookup", {
            "quiz.fingerprint": "eimi:verb:es",
            "quiz.count": 3,
            "quiz.ids": ["a", "b"],
            "quiz.skipped": None,
        }):
            pass

        [span] = exporter.get_finished_spans()
        assert span.name == "quiz_cache.lookup"
        assert span.attributes["quiz.fingerprint"] == "eimi:verb:es"
        assert span.attributes["quiz.count"] == 3
        assert tuple(span.attributes["quiz.ids"]) == ("a", "b")
        assert "quiz.skipped" not in span.attributes

    def test_errors_recorded(self, exporter):
        with pytest.raises(ValueError):
            with create_span("syntax.analyze"):
                raise ValueError("bad clause")

        [span] = exporter.get_finished_spans()
        assert span.status.status_code is StatusCode.ERROR
        assert any(event.name == "exception" for event in span.events)


# =============================================================================
# Logging
# =============================================================================


class TestLogContext:
    """Context variables bound for the duration of a flow."""

    def teardown_method(self):
        clear_context()

    def test_context_bound_and_released(self):
        with LogContext(session_id="s-1", unit_id="u-1"):
            bound = structlog.contextvars.get_contextvars()
            assert bound["session_id"] == "s-1"
            assert bound["unit_id"] == "u-1"

        assert "session_id" not in structlog.contextvars.get_contextvars()

    @pytest.mark.asyncio
    async def test_async_form(self):
        bind_context(user_id="user-1")
        async with LogContext(session_id="s-2"):
            bound = structlog.contextvars.get_contextvars()
            assert bound == {"user_id": "user-1", "session_id": "s-2"}

        assert structlog.contextvars.get_contextvars() == {"user_id": "user-1"}
