from __future__ import annotations

import os
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter, SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from boaz.core.config import Settings


_provider: TracerProvider | None = None
_exporters_installed = False


def _tracer_provider(service_name: str) -> TracerProvider:
    """The global provider can only be set once per process, so it is created lazily and reused."""
    global _provider
    if _provider is None:
        resource = Resource.create({"service.name": service_name, "service.version": os.getenv("APP_VERSION", "0.1.0")})
        _provider = TracerProvider(resource=resource)
        trace.set_tracer_provider(_provider)
    return _provider


def setup_otel(settings: Settings) -> TracerProvider | None:
    global _exporters_installed
    if not settings.otel_enabled:
        return None

    provider = _tracer_provider(settings.otel_service_name)
    if not _exporters_installed:
        if settings.otel_exporter_otlp_endpoint:
            provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otel_exporter_otlp_endpoint)))
        if settings.otel_console_exporter:
            provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
        _exporters_installed = True
    return provider


def setup_inmemory_otel(service_name: str = "boaz-api") -> InMemorySpanExporter:
    exporter = InMemorySpanExporter()
    _tracer_provider(service_name).add_span_processor(SimpleSpanProcessor(exporter))
    return exporter


_SPAN_HEADERS = {b"x-correlation-id": "correlation_id", b"x-tenant-id": "tenant_id"}


def get_fastapi_server_request_hook():
    def server_request_hook(span, scope: dict[str, Any]) -> None:  # type: ignore[no-untyped-def]
        if span is None or not span.is_recording():
            return
        for name, value in scope.get("headers", []):
            attribute = _SPAN_HEADERS.get(name.lower())
            if attribute:
                span.set_attribute(attribute, value.decode("latin-1"))

    return server_request_hook
