"""Metrics aggregation, alerting, trace lookup and health checks."""
from .aggregator import MetricsAggregator, MetricsSnapshot
from .alerts import DEFAULT_RULES, Alert, AlertEvaluator, AlertLevel, AlertRule, evaluate_snapshot
from .health import HealthCheck, HealthCheckError
from .sources import (
    BusinessStatsSource,
    DatabaseStatsSource,
    PerformanceStatsSource,
    SystemStatsSource,
)
from .traces import TraceQueryClient

__all__ = [
    "Alert",
    "AlertEvaluator",
    "AlertLevel",
    "AlertRule",
    "BusinessStatsSource",
    "DEFAULT_RULES",
    "DatabaseStatsSource",
    "HealthCheck",
    "HealthCheckError",
    "MetricsAggregator",
    "MetricsSnapshot",
    "PerformanceStatsSource",
    "SystemStatsSource",
    "TraceQueryClient",
    "evaluate_snapshot",
]
