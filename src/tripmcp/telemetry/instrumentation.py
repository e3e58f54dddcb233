"""OpenTelemetry tracing for upstream calls made by the proxy."""

import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Optional

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.trace import Span, Status, StatusCode

logger = logging.getLogger(__name__)

TRACER_NAME = "tripmcp"

_provider: Optional[TracerProvider] = None


def init_telemetry(service_name: str = "tripmcp") -> Optional[TracerProvider]:
    """Initialize OpenTelemetry with environment-based configuration.

    Returns None if the OTLP exporter is selected without an endpoint.
    """
    global _provider

    exporter_type = os.environ.get("OTEL_TRACES_EXPORTER", "console").lower()

    if exporter_type == "otlp_http":
        endpoint = os.environ.get("OTEL_EXPORTER_OTLP_ENDPOINT")
        if not endpoint:
            logger.warning("OpenTelemetry tracing is disabled: OTEL_EXPORTER_OTLP_ENDPOINT is not set")
            return None

        header_dict = {}
        for header in os.environ.get("OTEL_EXPORTER_OTLP_HEADERS", "").split(","):
            if "=" in header:
                key, value = header.split("=", 1)
                header_dict[key.strip()] = value.strip()
        exporter = OTLPSpanExporter(endpoint=endpoint, headers=header_dict or None)
    else:
        exporter = ConsoleSpanExporter(out=sys.stderr)

    resource = Resource.create(
        {
            "service.name": os.environ.get("OTEL_SERVICE_NAME", service_name),
            "service.version": os.environ.get("SERVICE_VERSION", "0.1.0"),
        }
    )
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(BatchSpanProcessor(exporter, schedule_delay_millis=1000, export_timeout_millis=5000))

    # Only replace the default proxy provider
    existing_provider = trace.get_tracer_provider()
    if type(existing_provider).__name__ == "ProxyTracerProvider":
        trace.set_tracer_provider(provider)
    _provider = provider

    logger.info(f"OpenTelemetry tracing enabled ({exporter_type} exporter)")
    return provider


def shutdown_telemetry() -> None:
    global _provider
    if _provider is None:
        return
    try:
        _provider.force_flush()
        _provider.shutdown()
    except Exception as e:
        logger.warning(f"Telemetry shutdown error: {e}")
    _provider = None


def get_tracer() -> trace.Tracer:
    """Tracer for proxy spans. A no-op tracer until ``init_telemetry`` runs."""
    return trace.get_tracer(TRACER_NAME, "0.1.0")


def record_http_status(span: Span, status_code: int) -> None:
    """Attach an HTTP status to ``span``, marking 4xx/5xx as errors."""
    if not span.is_recording():
        return
    span.set_attribute("http.response.status_code", status_code)
    if status_code >= 400:
        span.set_status(Status(StatusCode.ERROR, f"HTTP {status_code}"))


@contextmanager
def upstream_span(operation: str, **attributes: str) -> Iterator[Span]:
    """Span around a call to an external service."""
    with get_tracer().start_as_current_span(f"upstream.{operation}") as span:
        span.set_attribute("upstream.operation", operation)
        for key, value in attributes.items():
            if value is not None:
                span.set_attribute(f"upstream.{key}", value)
        yield span
