"""OpenTelemetry tracing for reconciliations and backend calls."""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from typing import Any, Iterator

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Span, Tracer

from . import __version__
from .utils.context import get_correlation_id

logger = logging.getLogger(__name__)

_tracer: Tracer | None = None
_provider: TracerProvider | None = None


def initialize_tracing(service_name: str = "secretsbeam-operator") -> bool:
    """Install an OTLP-exporting tracer provider.

    Honours OTEL_TRACES_ENABLED ("false" disables tracing), OTEL_SERVICE_NAME,
    OTEL_SERVICE_VERSION and OTEL_EXPORTER_OTLP_ENDPOINT.

    Returns:
        Whether spans will be exported
    """
    global _tracer, _provider

    if os.getenv("OTEL_TRACES_ENABLED", "true").lower() == "false":
        logger.info("Tracing disabled")
        return False

    name = os.getenv("OTEL_SERVICE_NAME", service_name)
    try:
        provider = TracerProvider(
            resource=Resource.create({
                "service.name": name,
                "service.version": os.getenv("OTEL_SERVICE_VERSION", __version__),
            })
        )
        exporter = OTLPSpanExporter(endpoint=os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4317"))
        provider.add_span_processor(BatchSpanProcessor(exporter))
    except (ValueError, OSError) as e:
        logger.warning(f"Tracing not initialized: {e}")
        return False

    trace.set_tracer_provider(provider)
    _provider = provider
    _tracer = trace.get_tracer(name)
    return True


def shutdown_tracing() -> None:
    """Flush pending spans on operator exit."""
    global _tracer, _provider

    if _provider is not None:
        _provider.shutdown()
    _provider = None
    _tracer = None


def get_tracer() -> Tracer | None:
    return _tracer


@contextmanager
def trace_span(
    name: str,
    kind: str | None = None,
    attributes: dict[str, Any] | None = None,
) -> Iterator[Span | None]:
    """Open a span tagged with the resource kind and correlation id.

    Yields None when tracing is off. Exceptions are recorded on the span
    and re-raised.
    """
    if _tracer is None:
        yield None
        return

    attrs = {key: value for key, value in (attributes or {}).items() if value is not None}
    if kind:
        attrs["resource.kind"] = kind
    corr_id = get_correlation_id()
    if corr_id:
        attrs["correlation.id"] = corr_id

    with _tracer.start_as_current_span(name, attributes=attrs, record_exception=False) as span:
        try:
            yield span
        except Exception as e:
            span.record_exception(e)
            span.set_status(trace.Status(trace.StatusCode.ERROR, type(e).__name__))
            raise
