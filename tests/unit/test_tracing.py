"""Tests for span helpers."""

from __future__ import annotations

import pytest
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode

from secretsbeam_operator import tracing
from secretsbeam_operator.utils.context import with_correlation_id


@pytest.fixture
def exporter(monkeypatch):
    exporter = InMemorySpanExporter()
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    monkeypatch.setattr(tracing, "_tracer", provider.get_tracer("test"))
    return exporter


class TestTraceSpan:
    """Test cases for trace_span."""

    def test_noop_without_tracer(self, monkeypatch):
        monkeypatch.setattr(tracing, "_tracer", None)

        with tracing.trace_span("reconcile_secret") as span:
            assert span is None

    def test_attributes_and_correlation_id(self, exporter):
        with with_correlation_id("corr-7"), tracing.trace_span(
            "reconcile_secret", kind="ExternalSecret", attributes={"name": "db", "namespace": None}
        ):
            pass

        (span,) = exporter.get_finished_spans()
        assert span.name == "reconcile_secret"
        assert span.attributes["resource.kind"] == "ExternalSecret"
        assert span.attributes["correlation.id"] == "corr-7"
        assert span.attributes["name"] == "db"
        assert "namespace" not in span.attributes

    def test_error_recorded_and_reraised(self, exporter):
        with pytest.raises(RuntimeError):
            with tracing.trace_span("reconcile_access"):
                raise RuntimeError("boom")

        (span,) = exporter.get_finished_spans()
        assert span.status.status_code == StatusCode.ERROR
        assert span.events[0].name == "exception"


class TestSetup:
    """Test cases for tracer setup and teardown."""

    def test_disabled_by_env(self, monkeypatch):
        monkeypatch.setenv("OTEL_TRACES_ENABLED", "false")

        assert tracing.initialize_tracing() is False

    def test_shutdown_clears_tracer(self, exporter):
        tracing.shutdown_tracing()

        assert tracing.get_tracer() is None
