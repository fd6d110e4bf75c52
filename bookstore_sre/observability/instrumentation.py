"""
OpenTelemetry setup.

Builds the single ``Telemetry`` context of the process: tracer and meter
providers with their OTLP/HTTP exporters, the instrument registry and the
span helpers. The context is created once at startup and handed to every
component that records telemetry; nothing in this package reads a
module-level provider.

Export never runs on the request path. Spans go through a BatchSpanProcessor
whose queue is bounded (when it is full new spans are dropped, the caller is
not blocked) and metrics are pushed by a PeriodicExportingMetricReader every
60 seconds from its own thread.
"""
from dataclasses import dataclass
from typing import Iterable, Optional

import structlog
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import MetricReader, PeriodicExportingMetricReader
from opentelemetry.sdk.resources import (
    DEPLOYMENT_ENVIRONMENT,
    SERVICE_NAME,
    SERVICE_VERSION,
    Resource,
)
from opentelemetry.sdk.trace import SpanProcessor, TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Span

from ..config import Settings
from .operations import OperationInstrumentation
from .registry import MetricRegistry, register_standard_instruments
from .tracing import SpanTracer

logger = structlog.get_logger(__name__)

INSTRUMENTATION_NAME = "bookstore_sre"


@dataclass
class Telemetry:
    """Telemetry context shared by the whole process."""

    service_name: str
    tracer_provider: TracerProvider
    meter_provider: MeterProvider
    registry: MetricRegistry
    tracer: SpanTracer
    operations: OperationInstrumentation

    @staticmethod
    def current_span() -> Span:
        """Span active in the current request/task context."""
        return trace.get_current_span()

    def force_flush(self) -> None:
        self.tracer_provider.force_flush()
        self.meter_provider.force_flush()

    def shutdown(self) -> None:
        """Flush pending spans and metrics, then stop the exporters."""
        try:
            self.tracer_provider.shutdown()
            self.meter_provider.shutdown()
            logger.info("telemetry_shutdown", service=self.service_name)
        except Exception as e:
            logger.error("telemetry_shutdown_failed", error=str(e))


def create_resource(
    service_name: str,
    service_version: str = "1.0.0",
    environment: str = "development",
) -> Resource:
    """
    Resource attributes attached to every span and metric of this service.

    Args:
        service_name: service.name, how the collector backend groups our telemetry
        service_version: service.version
        environment: deployment.environment ("development", "production", ...)
    """
    return Resource(
        attributes={
            SERVICE_NAME: service_name,
            SERVICE_VERSION: service_version,
            DEPLOYMENT_ENVIRONMENT: environment,
        }
    )


def build_telemetry(
    service_name: str,
    *,
    resource: Optional[Resource] = None,
    span_processors: Iterable[SpanProcessor] = (),
    metric_readers: Iterable[MetricReader] = (),
) -> Telemetry:
    """
    Assemble a Telemetry context from explicit processors and readers.

    Used by ``initialize_telemetry`` with OTLP exporters and by the tests with
    in-memory ones.
    """
    resource = resource or create_resource(service_name)

    tracer_provider = TracerProvider(resource=resource)
    for processor in span_processors:
        tracer_provider.add_span_processor(processor)

    meter_provider = MeterProvider(resource=resource, metric_readers=list(metric_readers))

    registry = MetricRegistry(meter_provider.get_meter(INSTRUMENTATION_NAME))
    register_standard_instruments(registry)

    span_tracer = SpanTracer(tracer_provider.get_tracer(INSTRUMENTATION_NAME))

    return Telemetry(
        service_name=service_name,
        tracer_provider=tracer_provider,
        meter_provider=meter_provider,
        registry=registry,
        tracer=span_tracer,
        operations=OperationInstrumentation(registry, span_tracer),
    )


def initialize_telemetry(settings: Settings) -> Telemetry:
    """
    Create the process Telemetry context exporting over OTLP/HTTP.

    If an exporter cannot be constructed the application still starts; that
    signal is simply not exported.
    """
    resource = create_resource(
        settings.otel_service_name,
        settings.otel_service_version,
        settings.app_env,
    )

    span_processors = []
    try:
        span_exporter = OTLPSpanExporter(endpoint=settings.otel_exporter_otlp_endpoint)
        span_processors.append(
            BatchSpanProcessor(
                span_exporter,
                max_queue_size=settings.otel_span_queue_size,
                max_export_batch_size=settings.otel_span_batch_size,
            )
        )
        logger.info("tracing_initialized", endpoint=settings.otel_exporter_otlp_endpoint)
    except Exception as e:
        logger.warning("tracing_exporter_unavailable", error=str(e))

    metric_readers = []
    try:
        metric_exporter = OTLPMetricExporter(endpoint=settings.otel_exporter_otlp_metrics_endpoint)
        metric_readers.append(
            PeriodicExportingMetricReader(
                metric_exporter,
                export_interval_millis=settings.otel_metrics_export_interval_ms,
            )
        )
        logger.info("metrics_initialized", endpoint=settings.otel_exporter_otlp_metrics_endpoint)
    except Exception as e:
        logger.warning("metrics_exporter_unavailable", error=str(e))

    telemetry = build_telemetry(
        settings.otel_service_name,
        resource=resource,
        span_processors=span_processors,
        metric_readers=metric_readers,
    )
    logger.info("telemetry_initialized", service=settings.otel_service_name)
    return telemetry
