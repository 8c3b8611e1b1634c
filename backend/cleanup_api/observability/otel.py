"""
Optional OpenTelemetry tracing.

Everything here is a no-op unless OTEL_ENABLED is set. The SDK and
instrumentations ship in the `otel` extra; when they are not installed a
warning is logged and the service runs untraced.
"""

from __future__ import annotations

import os

from fastapi import FastAPI

from ..settings import Settings
from .logging import get_logger

_TRUTHY = ("1", "true", "yes", "y", "on")


def _enabled(settings: Settings) -> bool:
    if settings.otel_enabled:
        return True
    return str(os.environ.get("OTEL_ENABLED") or "").strip().lower() in _TRUTHY


def _first(*values: str | None, default: str = "") -> str:
    for v in values:
        if v and str(v).strip():
            return str(v).strip()
    return default


def configure_otel(settings: Settings) -> None:
    if not _enabled(settings):
        return

    log = get_logger("otel")
    try:
        from opentelemetry import trace
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
    except ImportError:
        log.warning("otel_disabled_missing_deps")
        return

    service_name = _first(settings.otel_service_name, os.environ.get("OTEL_SERVICE_NAME"), default="cleanup-api")
    endpoint = _first(settings.otel_exporter_otlp_endpoint, os.environ.get("OTEL_EXPORTER_OTLP_ENDPOINT"))

    provider = TracerProvider(
        resource=Resource.create(
            {"service.name": service_name, "deployment.environment": settings.normalized_environment}
        )
    )
    # Without a collector endpoint, spans go to stdout (local dev).
    exporter = OTLPSpanExporter(endpoint=endpoint) if endpoint else ConsoleSpanExporter()
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)
    log.info("otel_configured", exporter="otlp_http" if endpoint else "console", endpoint=endpoint or None)


def instrument_app(app: FastAPI, settings: Settings) -> None:
    """Trace inbound requests and outbound httpx calls (payment gateway, JWKS)."""
    if not _enabled(settings):
        return

    log = get_logger("otel")
    try:
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
        from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
    except ImportError:
        log.warning("otel_instrumentation_missing_deps")
        return

    FastAPIInstrumentor.instrument_app(app, excluded_urls="^/$")
    HTTPXClientInstrumentor().instrument()
    log.info("otel_instrumented", targets=["fastapi", "httpx"])
