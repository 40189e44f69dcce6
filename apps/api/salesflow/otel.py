from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter, SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from salesflow.context import get_correlation_id
from salesflow.core.config import Settings


PIPELINE_TRACER = "salesflow.pipeline"

_provider: TracerProvider | None = None
_exporters_attached = False


def tracer_provider(service_name: str) -> TracerProvider:
    """The process-wide SDK provider; the global provider can only be installed once."""

    global _provider
    if _provider is None:
        _provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
        trace.set_tracer_provider(_provider)
    return _provider


def setup_otel(settings: Settings) -> TracerProvider | None:
    global _exporters_attached

    if not settings.otel_enabled:
        return None

    provider = tracer_provider(settings.otel_service_name)
    if not _exporters_attached:
        if settings.otel_exporter_otlp_endpoint:
            provider.add_span_processor(
                BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otel_exporter_otlp_endpoint))
            )
        if settings.otel_console_exporter:
            provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
        _exporters_attached = True
    return provider


def setup_inmemory_otel(service_name: str = "api") -> InMemorySpanExporter:
    exporter = InMemorySpanExporter()
    tracer_provider(service_name).add_span_processor(SimpleSpanProcessor(exporter))
    return exporter


def correlation_request_hook(span: Any, scope: dict[str, Any]) -> None:
    """Server request hook: copy the inbound correlation header onto the request span."""

    if span is None or not span.is_recording():
        return
    for name, value in scope.get("headers", []):
        if name == b"x-correlation-id" and value:
            span.set_attribute("correlation_id", value.decode("latin-1"))
            return


@contextmanager
def pipeline_span(name: str, **attributes: str | int | None) -> Iterator[Any]:
    """Open a span for a pipeline operation, tagged with the request correlation id."""

    tracer = trace.get_tracer(PIPELINE_TRACER)
    with tracer.start_as_current_span(name) as span:
        for key, value in attributes.items():
            if value is not None:
                span.set_attribute(key, value)
        correlation_id = get_correlation_id()
        if correlation_id:
            span.set_attribute("correlation_id", correlation_id)
        yield span
