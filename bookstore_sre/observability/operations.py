"""
Instrumentation of business use-case operations.

Every repository call made by a use case runs through
``OperationInstrumentation.instrument``: one span, one duration sample and,
on success, one domain counter increment.
"""
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping, Optional, TypeVar

import structlog

from .registry import (
    DATABASE_QUERY_DURATION,
    ORDERS_CREATED_TOTAL,
    ORDERS_STATUS_CHANGED_TOTAL,
    ORDERS_UPDATED_TOTAL,
    PRODUCTS_CREATED_TOTAL,
    PRODUCTS_DELETED_TOTAL,
    PRODUCTS_UPDATED_TOTAL,
    InstrumentKind,
    MetricRegistry,
)
from .tracing import Attributes, SpanTracer

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class DomainMetric(str, Enum):
    """Closed set of business metrics use cases may record."""

    PRODUCTS_CREATED = "products_created"
    PRODUCTS_UPDATED = "products_updated"
    PRODUCTS_DELETED = "products_deleted"
    ORDERS_CREATED = "orders_created"
    ORDERS_UPDATED = "orders_updated"
    ORDERS_STATUS_CHANGED = "orders_status_changed"
    DATABASE_QUERY_DURATION = "database_query_duration"
    UNRECOGNIZED = "unrecognized"

    @classmethod
    def parse(cls, name: str) -> "DomainMetric":
        """Map a metric name to a member; unknown names map to UNRECOGNIZED."""
        try:
            member = cls(name)
        except ValueError:
            return cls.UNRECOGNIZED
        return member


# member -> (instrument kind, instrument name)
_INSTRUMENTS = {
    DomainMetric.PRODUCTS_CREATED: (InstrumentKind.COUNTER, PRODUCTS_CREATED_TOTAL),
    DomainMetric.PRODUCTS_UPDATED: (InstrumentKind.COUNTER, PRODUCTS_UPDATED_TOTAL),
    DomainMetric.PRODUCTS_DELETED: (InstrumentKind.COUNTER, PRODUCTS_DELETED_TOTAL),
    DomainMetric.ORDERS_CREATED: (InstrumentKind.COUNTER, ORDERS_CREATED_TOTAL),
    DomainMetric.ORDERS_UPDATED: (InstrumentKind.COUNTER, ORDERS_UPDATED_TOTAL),
    DomainMetric.ORDERS_STATUS_CHANGED: (InstrumentKind.COUNTER, ORDERS_STATUS_CHANGED_TOTAL),
    DomainMetric.DATABASE_QUERY_DURATION: (InstrumentKind.HISTOGRAM, DATABASE_QUERY_DURATION),
}


def _labels(attributes: Optional[Mapping[str, Any]]) -> dict:
    # metric labels are strings; None values are dropped
    if not attributes:
        return {}
    return {key: str(value) for key, value in attributes.items() if value is not None}


class OperationInstrumentation:
    """Span + duration histogram + domain counters around a use-case call."""

    def __init__(self, registry: MetricRegistry, tracer: SpanTracer) -> None:
        self.registry = registry
        self.tracer = tracer

    def record(
        self,
        metric: DomainMetric,
        value: float = 1,
        attributes: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """
        Record a business metric. Never raises.

        Counters are incremented by ``value``; the duration histogram records
        it. UNRECOGNIZED is logged and dropped.
        """
        if metric is DomainMetric.UNRECOGNIZED:
            logger.warning("unknown_domain_metric", metric=metric.value)
            return

        kind, name = _INSTRUMENTS[metric]
        try:
            instrument = self.registry.get_or_create(kind, name)
            labels = _labels(attributes)
            if kind is InstrumentKind.HISTOGRAM:
                instrument.record(value, labels)
            else:
                instrument.add(value, labels)
            logger.debug("domain_metric_recorded", metric=metric.value, value=value)
        except Exception as e:
            logger.error("domain_metric_error", metric=metric.value, error=str(e))

    def record_named(
        self,
        metric_name: str,
        value: float = 1,
        attributes: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """Record a metric given by name, e.g. from a handler or a plugin."""
        metric = DomainMetric.parse(metric_name)
        if metric is DomainMetric.UNRECOGNIZED:
            logger.warning("unknown_domain_metric", metric=metric_name)
            return
        self.record(metric, value, attributes)

    async def instrument(
        self,
        operation: str,
        body: Callable[[], Awaitable[T]],
        *,
        entity: str,
        query: str,
        attributes: Optional[Attributes] = None,
        result_attributes: Optional[Callable[[T], Optional[Attributes]]] = None,
        domain_metric: Optional[DomainMetric] = None,
        metric_attributes: Optional[Callable[[T], Optional[Mapping[str, Any]]]] = None,
    ) -> T:
        """
        Run a use-case operation inside a span and record its metrics.

        Args:
            operation: Span name, e.g. "create_order"
            body: Zero-argument coroutine function performing the repository call
            entity: Entity label for the duration histogram ("products", "orders")
            query: Operation label for the duration histogram ("find_all", "create", ...)
            attributes: Span attributes set before ``body`` runs
            result_attributes: Span attributes derived from the result
            domain_metric: Counter incremented once on success
            metric_attributes: Counter labels derived from the result; returning
                None skips the increment

        Returns:
            The result of ``body``; exceptions from ``body`` propagate unchanged
        """
        start_time = time.perf_counter()
        try:
            result = await self.tracer.with_span(
                operation,
                body,
                attributes=attributes,
                result_attributes=result_attributes,
            )
        finally:
            self.record(
                DomainMetric.DATABASE_QUERY_DURATION,
                time.perf_counter() - start_time,
                {"operation": query, "entity": entity},
            )

        if domain_metric is not None:
            labels: Optional[Mapping[str, Any]] = {}
            if metric_attributes is not None:
                try:
                    labels = metric_attributes(result)
                except Exception as e:
                    logger.error("domain_metric_labels_error", operation=operation, error=str(e))
                    labels = None
            if labels is not None:
                self.record(domain_metric, 1, labels)

        return result
