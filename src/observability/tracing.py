"""
OpenTelemetry tracing for auctions.

An auction is one span, with child spans for offer collection. Over NATS the
trace context rides in message headers, so worker-side spans join the
auctioneer's trace.
"""

import os
import logging
from typing import Any, Dict, Iterator, Mapping, Optional
from contextlib import contextmanager

from opentelemetry import trace
from opentelemetry.context import Context
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.sdk.resources import Resource, SERVICE_NAME
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.trace import Span, Status, StatusCode
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

logger = logging.getLogger(__name__)

_provider: Optional[TracerProvider] = None
_propagator = TraceContextTextMapPropagator()


def setup_tracing(
    service_name: str, otlp_endpoint: Optional[str] = None, console_export: bool = False
) -> trace.Tracer:
    """
    Install a tracer provider for this process.

    Args:
        service_name: Reported service name (e.g. "auctioneer", "worker-3")
        otlp_endpoint: OTLP gRPC collector, e.g. "http://localhost:4317"
        console_export: Also print finished spans, for local debugging

    Returns:
        Tracer bound to the new provider
    """
    global _provider

    _provider = TracerProvider(resource=Resource(attributes={SERVICE_NAME: service_name}))
    if otlp_endpoint:
        _provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint, insecure=True)))
        logger.info(f"Exporting spans to {otlp_endpoint}")
    if console_export:
        _provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(_provider)
    logger.info(f"Tracing enabled for {service_name}")
    return get_tracer()


def setup_tracing_from_env(service_name: str) -> Optional[trace.Tracer]:
    """
    Enable tracing when OTEL_EXPORTER_OTLP_ENDPOINT or TRACING_CONSOLE is set.

    Returns:
        Tracer, or None when neither variable is set
    """
    endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    console = os.getenv("TRACING_CONSOLE", "false").lower() == "true"
    if not endpoint and not console:
        return None
    return setup_tracing(service_name, otlp_endpoint=endpoint, console_export=console)


def get_tracer() -> trace.Tracer:
    # Falls back to OpenTelemetry's proxy tracer, which is a no-op until a
    # provider is installed
    return trace.get_tracer("placement")


@contextmanager
def create_span(
    name: str,
    attributes: Optional[Dict[str, Any]] = None,
    kind: trace.SpanKind = trace.SpanKind.INTERNAL,
    context: Optional[Context] = None,
) -> Iterator[Span]:
    """
    Run a block inside a span.

    Usage:
        with create_span("auction", {"placement_id": request.placement_id}) as span:
            ...

    Args:
        name: Span name
        attributes: Attributes to set; None values are skipped
        kind: Span kind
        context: Parent context, e.g. one extracted from message headers

    Yields:
        The active span. Exceptions are recorded on it and re-raised.
    """
    with get_tracer().start_as_current_span(name, context=context, kind=kind) as span:
        for key, value in (attributes or {}).items():
            if value is not None:
                span.set_attribute(key, str(value))
        try:
            yield span
        except Exception as e:
            span.record_exception(e)
            span.set_status(Status(StatusCode.ERROR, str(e)))
            raise


def inject_headers(headers: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """Add the current trace context to outgoing message headers"""
    carrier = dict(headers or {})
    _propagator.inject(carrier)
    return carrier


def extract_context(headers: Optional[Mapping[str, str]]) -> Context:
    """Parent context carried by incoming message headers"""
    return _propagator.extract(carrier=dict(headers or {}))


def shutdown_tracing() -> None:
    """Flush pending spans"""
    global _provider

    if _provider is not None:
        _provider.shutdown()
        logger.info("Tracing shut down")
    _provider = None
