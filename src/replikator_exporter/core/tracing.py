from __future__ import annotations

"""
replikator_exporter.core.tracing
================================

OpenTelemetry instrumentation bootstrap.

- `setup_tracing()` installs a service-wide tracer provider; the OTLP gRPC
  exporter is imported only when an endpoint is configured.
- `trace()` wraps a function in a span. Until a provider is installed the
  OpenTelemetry API hands out non-recording spans, so this is cheap.

Usage:
    setup_tracing(service_name="replikator-exporter", otlp_endpoint="http://otelcol:4317")

    @trace("replikator.collect")
    def collect(): ...
"""

import functools
from typing import Any, Callable, TypeVar, cast

from opentelemetry import trace as otel_trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from .logging import get_logger

__all__ = ["setup_tracing", "trace"]

_log = get_logger("tracing")
_F = TypeVar("_F", bound=Callable[..., Any])

TRACER_NAME = "replikator_exporter"


def setup_tracing(*, service_name: str, otlp_endpoint: str | None = None) -> TracerProvider:
    """
    Configure the global tracer provider.

    Args:
        service_name: `service.name` resource attribute.
        otlp_endpoint: OTLP gRPC endpoint (e.g. "http://otelcol:4317"); if None,
                       spans are recorded but not exported anywhere.
    """
    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
    if otlp_endpoint:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint, insecure=True)))
        _log.info("otel tracing configured (otlp)", endpoint=otlp_endpoint)
    otel_trace.set_tracer_provider(provider)
    return provider


def trace(name: str) -> Callable[[_F], _F]:
    """Decorator: run the wrapped callable inside a span named `name`."""

    def _decorator(func: _F) -> _F:
        @functools.wraps(func)
        def _wrapped(*args: Any, **kwargs: Any):
            tracer = otel_trace.get_tracer(TRACER_NAME)
            with tracer.start_as_current_span(name):
                return func(*args, **kwargs)

        return cast(_F, _wrapped)

    return _decorator
