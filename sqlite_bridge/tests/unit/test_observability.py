"""Unit tests for metrics, logging and tracing helpers."""

from __future__ import annotations

import pytest
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from prometheus_client import CollectorRegistry

from sqlite_bridge.domain.errors import BackupError, EngineError
from sqlite_bridge.infrastructure import tracing
from sqlite_bridge.infrastructure.logging import add_engine_error_codes, get_logger, setup_logging
from sqlite_bridge.infrastructure.metrics import MetricsRegistry, track_execution
from sqlite_bridge.infrastructure.tracing import get_tracer, trace_span


@pytest.mark.unit
class TestTrackExecution:
    """Tests for track_execution."""

    def test_success(self, metrics_registry: MetricsRegistry, collector_registry: CollectorRegistry) -> None:
        with track_execution(metrics_registry, "run"):
            pass

        assert collector_registry.get_sample_value(
            "sqlite_bridge_statement_executions_total", {"operation": "run", "status": "success"}
        ) == 1
        assert collector_registry.get_sample_value(
            "sqlite_bridge_statement_latency_seconds_count", {"operation": "run"}
        ) == 1

    def test_failure_is_counted_and_propagates(
        self, metrics_registry: MetricsRegistry, collector_registry: CollectorRegistry
    ) -> None:
        with pytest.raises(KeyError):
            with track_execution(metrics_registry, "get"):
                raise KeyError("boom")

        assert collector_registry.get_sample_value(
            "sqlite_bridge_statement_executions_total", {"operation": "get", "status": "error"}
        ) == 1


@pytest.mark.unit
class TestLoggingAndTracing:
    """Tests for the logging and tracing helpers."""

    def test_get_logger_binds_context(self) -> None:
        setup_logging("DEBUG", "console")
        logger = get_logger(__name__, component="tests")

        logger.debug("bound_logger_works")

    def test_engine_error_expanded_into_codes(self) -> None:
        error = BackupError("database is locked", 5, extended_code=261)

        event = add_engine_error_codes(None, "warning", {"event": "backup_failed", "error": error})

        assert event == {
            "event": "backup_failed",
            "error": "database is locked",
            "errcode": 5,
            "extended_code": 261,
        }

    def test_other_errors_rendered_as_text(self) -> None:
        event = add_engine_error_codes(None, "warning", {"event": "x", "error": ValueError("bad")})

        assert event == {"event": "x", "error": "bad"}

    def test_plain_error_strings_untouched(self) -> None:
        event = {"event": "callback_failed", "error": "kaput"}

        assert add_engine_error_codes(None, "debug", dict(event)) == event

    def test_get_tracer_is_cached(self) -> None:
        assert get_tracer() is get_tracer()

    def test_trace_span_tags_engine_errors(self, monkeypatch: pytest.MonkeyPatch) -> None:
        exporter = InMemorySpanExporter()
        provider = TracerProvider()
        provider.add_span_processor(SimpleSpanProcessor(exporter))
        monkeypatch.setattr(tracing, "_tracer", provider.get_tracer("tests"))

        with pytest.raises(EngineError):
            with trace_span("sqlite_bridge.test", {"rows": 3}):
                raise EngineError("disk I/O error", 10, extended_code=266)

        (span,) = exporter.get_finished_spans()
        assert span.name == "sqlite_bridge.test"
        assert span.attributes["rows"] == 3
        assert span.attributes["sqlite.errcode"] == 10
        assert span.attributes["sqlite.extended_code"] == 266
