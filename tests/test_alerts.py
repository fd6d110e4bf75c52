"""
Unit tests for alert evaluation.
"""
from typing import Any, Dict
from unittest.mock import AsyncMock

import pytest

from bookstore_sre.monitoring.aggregator import MetricsSnapshot
from bookstore_sre.monitoring.alerts import (
    DEFAULT_RULES,
    AlertEvaluator,
    AlertLevel,
    AlertRule,
    evaluate_snapshot,
)


def make_snapshot(
    memory_percent: float = 0.0,
    active_connections: int = 0,
    out_of_stock: int = 0,
    **overrides: Dict[str, Any],
) -> MetricsSnapshot:
    sections = {
        "system": {"memory_usage_percent": memory_percent},
        "database": {"active_connections": active_connections},
        "business": {"products": {"out_of_stock": out_of_stock}},
        "performance": {},
    }
    sections.update(overrides)
    return MetricsSnapshot(timestamp="2026-01-01T00:00:00+00:00", **sections)


class TestEvaluateSnapshot:
    """Test suite for evaluate_snapshot."""

    @pytest.mark.unit
    def test_high_memory_only(self) -> None:
        alerts = evaluate_snapshot(make_snapshot(memory_percent=85, active_connections=0, out_of_stock=0))

        assert len(alerts) == 1
        assert alerts[0].level is AlertLevel.WARNING
        assert alerts[0].metric == "memory_usage"
        assert alerts[0].value == 85

    @pytest.mark.unit
    def test_connections_and_out_of_stock(self) -> None:
        alerts = evaluate_snapshot(make_snapshot(memory_percent=50, active_connections=15, out_of_stock=6))

        assert [(a.metric, a.level) for a in alerts] == [
            ("db_connections", AlertLevel.WARNING),
            ("out_of_stock_products", AlertLevel.INFO),
        ]
        assert [a.value for a in alerts] == [15, 6]

    @pytest.mark.unit
    def test_thresholds_are_strict(self) -> None:
        assert evaluate_snapshot(make_snapshot(memory_percent=80, active_connections=10, out_of_stock=5)) == []

    @pytest.mark.unit
    def test_missing_values_never_trigger(self) -> None:
        snapshot = make_snapshot(system={}, database={"connection_status": "error"}, business={})

        assert evaluate_snapshot(snapshot) == []

    @pytest.mark.unit
    def test_custom_rule(self) -> None:
        rule = AlertRule(
            metric="slow_queries",
            level=AlertLevel.WARNING,
            message="Slow queries detected",
            threshold=0,
            extract=lambda snapshot: len(snapshot.performance["slow_queries"]),
        )
        snapshot = make_snapshot(performance={"slow_queries": [{"query": "SELECT 1"}]})

        alerts = evaluate_snapshot(snapshot, [*DEFAULT_RULES, rule])

        assert [a.metric for a in alerts] == ["slow_queries"]

    @pytest.mark.unit
    def test_alert_serialization(self) -> None:
        (alert,) = evaluate_snapshot(make_snapshot(out_of_stock=9))

        assert alert.to_dict() == {
            "level": "info",
            "message": "Products out of stock",
            "metric": "out_of_stock_products",
            "value": 9,
        }


class TestAlertEvaluator:
    """Test suite for AlertEvaluator."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_evaluates_fresh_snapshot(self) -> None:
        aggregator = AsyncMock()
        aggregator.snapshot.return_value = make_snapshot(memory_percent=90)

        alerts = await AlertEvaluator(aggregator).evaluate()

        aggregator.snapshot.assert_awaited_once()
        assert [a.metric for a in alerts] == ["memory_usage"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_added_rule_does_not_touch_defaults(self) -> None:
        aggregator = AsyncMock()
        aggregator.snapshot.return_value = make_snapshot(performance={"cache_hit_ratio": 0.4})
        evaluator = AlertEvaluator(aggregator)

        evaluator.add_rule(
            AlertRule(
                metric="cache_miss_ratio",
                level=AlertLevel.INFO,
                message="Low cache hit ratio",
                threshold=0.5,
                extract=lambda snapshot: 1 - snapshot.performance["cache_hit_ratio"],
            )
        )
        alerts = await evaluator.evaluate()

        assert [a.metric for a in alerts] == ["cache_miss_ratio"]
        assert len(DEFAULT_RULES) == 3
