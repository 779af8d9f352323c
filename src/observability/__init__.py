"""
Observability module: Prometheus metrics and OpenTelemetry tracing.
"""

from .tracing import (
    setup_tracing,
    setup_tracing_from_env,
    create_span,
    get_tracer,
    inject_headers,
    extract_context,
    shutdown_tracing,
)
from .metrics import MetricsCollector, metrics_collector

__all__ = [
    'setup_tracing',
    'setup_tracing_from_env',
    'create_span',
    'get_tracer',
    'inject_headers',
    'extract_context',
    'shutdown_tracing',
    'MetricsCollector',
    'metrics_collector',
]
