"""Tracing support."""

from .instrumentation import get_tracer, init_telemetry, record_http_status, shutdown_telemetry, upstream_span

__all__ = ["get_tracer", "init_telemetry", "record_http_status", "shutdown_telemetry", "upstream_span"]
