"""
OpenTelemetry instrumentation core.

Components:
- MetricRegistry: named counters, histograms and gauges
- SpanTracer: scoped spans that always end
- OperationInstrumentation: span + duration + domain counters per use-case call
- RequestTelemetryInterceptor: ASGI middleware capturing request metrics and payloads
- Telemetry: the process-wide context that ties them together
"""
from .instrumentation import Telemetry, build_telemetry, create_resource, initialize_telemetry
from .logging_config import get_logger, setup_logging
from .middleware import RequestTelemetryInterceptor
from .operations import DomainMetric, OperationInstrumentation
from .registry import InstrumentKind, MetricRegistry, register_standard_instruments
from .tracing import SpanTracer, set_attributes

__all__ = [
    "DomainMetric",
    "InstrumentKind",
    "MetricRegistry",
    "OperationInstrumentation",
    "RequestTelemetryInterceptor",
    "SpanTracer",
    "Telemetry",
    "build_telemetry",
    "create_resource",
    "get_logger",
    "initialize_telemetry",
    "register_standard_instruments",
    "set_attributes",
    "setup_logging",
]
