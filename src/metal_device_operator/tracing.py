"""OpenTelemetry tracing for reconciler operations and handler passes."""

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

from .utils.errors import ReconcileError, sanitize_exception

logger = logging.getLogger(__name__)

_tracer: Tracer | None = None


def initialize_tracing(service_name: str = "metal-device-operator") -> None:
    """Install an OTLP exporting tracer provider.

    Environment Variables:
        OTEL_TRACES_ENABLED: "false" disables tracing (default: true)
        OTEL_EXPORTER_OTLP_ENDPOINT: OTLP gRPC endpoint (default: http://localhost:4317)
        OTEL_SERVICE_NAME: overrides service_name
        OTEL_SERVICE_VERSION: reported service version
    """
    global _tracer

    if os.getenv("OTEL_TRACES_ENABLED", "true").lower() == "false":
        logger.info("Tracing disabled")
        return

    service_name = os.getenv("OTEL_SERVICE_NAME", service_name)
    endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4317")
    try:
        provider = TracerProvider(
            resource=Resource.create({
                "service.name": service_name,
                "service.version": os.getenv("OTEL_SERVICE_VERSION", "unknown"),
            })
        )
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
        trace.set_tracer_provider(provider)
        _tracer = trace.get_tracer(service_name)
    except Exception as e:
        # The operator runs without tracing rather than not at all
        logger.warning(f"Failed to initialize tracing: {e}")


def get_tracer() -> Tracer | None:
    """Return the tracer, or None until initialize_tracing succeeded."""
    return _tracer


@contextmanager
def trace_span(
    name: str,
    kind: str | None = None,
    attributes: dict[str, Any] | None = None,
) -> Iterator[Span | None]:
    """Run a block inside a span.

    A ReconcileError escaping the block marks the span failed and records
    its kind and the kinds it wraps.

    Args:
        name: Name of the span
        kind: Resource kind (e.g., "Device", "ProviderConfig")
        attributes: Additional span attributes

    Yields:
        The span, or None if tracing is not initialized
    """
    tracer = get_tracer()
    if tracer is None:
        yield None
        return

    attrs = {key: value for key, value in (attributes or {}).items() if value is not None}
    if kind:
        attrs["resource.kind"] = kind

    with tracer.start_as_current_span(name, attributes=attrs, record_exception=False, set_status_on_exception=False) as span:
        try:
            yield span
        except Exception as e:
            if span.is_recording():
                if isinstance(e, ReconcileError):
                    span.set_attribute("error.kind", e.kind.name)
                    span.set_attribute("error.chain", [k.name for k in e.kinds()])
                span.set_attribute("error.message", sanitize_exception(e))
                span.set_status(trace.Status(trace.StatusCode.ERROR, type(e).__name__))
            raise


def add_span_attribute(key: str, value: Any) -> None:
    """Set an attribute on the current span, if one is recording."""
    span = trace.get_current_span()
    if span.is_recording():
        span.set_attribute(key, value)
