"""Threshold alerts over a metrics snapshot."""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Sequence

import structlog

from .aggregator import MetricsAggregator, MetricsSnapshot

logger = structlog.get_logger(__name__)


class AlertLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"


@dataclass(frozen=True)
class Alert:
    level: AlertLevel
    message: str
    metric: str
    value: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level": self.level.value,
            "message": self.message,
            "metric": self.metric,
            "value": self.value,
        }


@dataclass(frozen=True)
class AlertRule:
    """
    Fires when ``extract(snapshot)`` is strictly greater than ``threshold``.

    ``extract`` may raise KeyError/TypeError on a defaulted section; that
    reads as 0.
    """

    metric: str
    level: AlertLevel
    message: str
    threshold: float
    extract: Callable[[MetricsSnapshot], Any]

    def value_of(self, snapshot: MetricsSnapshot) -> float:
        try:
            value = self.extract(snapshot)
        except (KeyError, TypeError, AttributeError):
            return 0.0
        try:
            return float(value or 0)
        except (TypeError, ValueError):
            return 0.0


DEFAULT_RULES: Sequence[AlertRule] = (
    AlertRule(
        metric="memory_usage",
        level=AlertLevel.WARNING,
        message="High memory usage",
        threshold=80,
        extract=lambda snapshot: snapshot.system["memory_usage_percent"],
    ),
    AlertRule(
        metric="db_connections",
        level=AlertLevel.WARNING,
        message="Too many active database connections",
        threshold=10,
        extract=lambda snapshot: snapshot.database["active_connections"],
    ),
    AlertRule(
        metric="out_of_stock_products",
        level=AlertLevel.INFO,
        message="Products out of stock",
        threshold=5,
        extract=lambda snapshot: snapshot.business["products"]["out_of_stock"],
    ),
)


def evaluate_snapshot(
    snapshot: MetricsSnapshot, rules: Sequence[AlertRule] = DEFAULT_RULES
) -> List[Alert]:
    """Alerts raised by ``rules`` in rule order."""
    alerts = []
    for rule in rules:
        value = rule.value_of(snapshot)
        if value > rule.threshold:
            alerts.append(Alert(rule.level, rule.message, rule.metric, value))
    return alerts


class AlertEvaluator:
    """Evaluates the alert rules against a fresh snapshot."""

    def __init__(
        self, aggregator: MetricsAggregator, rules: Sequence[AlertRule] = DEFAULT_RULES
    ) -> None:
        self.aggregator = aggregator
        self.rules = list(rules)

    def add_rule(self, rule: AlertRule) -> None:
        self.rules.append(rule)

    async def evaluate(self) -> List[Alert]:
        snapshot = await self.aggregator.snapshot()
        alerts = evaluate_snapshot(snapshot, self.rules)
        if alerts:
            logger.info("alerts_raised", metrics=[alert.metric for alert in alerts])
        return alerts
