"""
Tests for the metrics sources and snapshot aggregation.
"""
import asyncio
from typing import Any, Dict
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bookstore_sre.database.models import Order, Product
from bookstore_sre.monitoring.aggregator import MetricsAggregator
from bookstore_sre.monitoring.sources import (
    BusinessStatsSource,
    DatabaseStatsSource,
    PerformanceStatsSource,
    SystemStatsSource,
)
from bookstore_sre.observability.instrumentation import Telemetry
from bookstore_sre.observability.registry import MEMORY_USAGE_BYTES


def failing(source: Any, error: Exception) -> Any:
    source.fetch = AsyncMock(side_effect=error)
    return source


def fixed(source: Any, data: Dict[str, Any]) -> Any:
    source.fetch = AsyncMock(return_value=data)
    return source


@pytest.fixture
def sources(session_factory: async_sessionmaker[AsyncSession], telemetry: Telemetry) -> Dict[str, Any]:
    return {
        "system": SystemStatsSource(telemetry.registry),
        "database": DatabaseStatsSource(session_factory),
        "business": BusinessStatsSource(session_factory),
        "performance": PerformanceStatsSource(session_factory),
    }


class TestMetricsAggregator:
    """Test suite for MetricsAggregator.snapshot."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_database_failure_falls_back_to_default(self, sources: Dict[str, Any]) -> None:
        failing(sources["database"], ConnectionError("connection refused"))
        fixed(sources["performance"], {"slow_queries": [], "table_stats": [], "index_usage": []})
        aggregator = MetricsAggregator(**sources)

        snapshot = await aggregator.snapshot()

        assert snapshot.database == {
            "active_connections": 0,
            "performance": [],
            "table_sizes": [],
            "connection_status": "error",
            "error": "connection refused",
        }
        assert snapshot.failed_sections == ["database"]
        assert not snapshot.all_failed
        assert snapshot.system["pid"] > 0
        assert snapshot.business["products"]["total"] == 0
        assert snapshot.performance == {"slow_queries": [], "table_stats": [], "index_usage": []}

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_all_sources_failing(self, sources: Dict[str, Any]) -> None:
        for source in sources.values():
            failing(source, RuntimeError("down"))
        aggregator = MetricsAggregator(**sources)

        snapshot = await aggregator.snapshot()

        assert snapshot.all_failed
        assert snapshot.failed_sections == ["system", "database", "business", "performance"]
        assert snapshot.business["orders"]["recent"] == []
        assert "error" not in snapshot.business
        assert snapshot.performance["error"] == "down"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_postgres_views_unavailable_on_sqlite(self, sources: Dict[str, Any]) -> None:
        """Catalogue views that only PostgreSQL has degrade to defaults without breaking the rest."""
        aggregator = MetricsAggregator(**sources)

        snapshot = await aggregator.snapshot()

        assert set(snapshot.failed_sections) == {"database", "performance"}
        assert snapshot.database["connection_status"] == "error"
        assert "error" in snapshot.performance
        assert snapshot.system["memory_usage_percent"] > 0
        assert snapshot.to_dict().keys() == {"system", "database", "business", "performance", "timestamp"}

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_section_lookup(self, sources: Dict[str, Any]) -> None:
        snapshot = await MetricsAggregator(**sources).snapshot()

        assert snapshot.section("business") is snapshot.business
        with pytest.raises(KeyError):
            snapshot.section("timestamp")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_sources_are_fetched_concurrently(self, sources: Dict[str, Any]) -> None:
        """Each of two sources waits for the other; sequential fetches would never finish."""
        database_started = asyncio.Event()
        business_started = asyncio.Event()

        async def fetch_database() -> Dict[str, Any]:
            database_started.set()
            await business_started.wait()
            return {"active_connections": 2}

        async def fetch_business() -> Dict[str, Any]:
            business_started.set()
            await database_started.wait()
            return {"products": {"out_of_stock": 1}}

        sources["database"].fetch = fetch_database
        sources["business"].fetch = fetch_business
        fixed(sources["performance"], {})

        snapshot = await asyncio.wait_for(MetricsAggregator(**sources).snapshot(), timeout=5)

        assert snapshot.database == {"active_connections": 2}
        assert snapshot.business == {"products": {"out_of_stock": 1}}
        assert snapshot.failed_sections == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_single_section_fetches_one_source(self, sources: Dict[str, Any]) -> None:
        fixed(sources["business"], {"products": {"total": 4}})
        for name in ("system", "database", "performance"):
            fixed(sources[name], {})
        aggregator = MetricsAggregator(**sources)

        data = await aggregator.section("business")

        assert data == {"products": {"total": 4}}
        for name in ("system", "database", "performance"):
            sources[name].fetch.assert_not_awaited()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_single_section_failure_yields_default(self, sources: Dict[str, Any]) -> None:
        failing(sources["performance"], RuntimeError("pg_stat_statements missing"))
        aggregator = MetricsAggregator(**sources)

        data = await aggregator.section("performance")

        assert data["error"] == "pg_stat_statements missing"
        assert data["slow_queries"] == []
        with pytest.raises(KeyError):
            await aggregator.section("alerts")


class TestBusinessStatsSource:
    """Test suite for BusinessStatsSource."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_counts_products_and_orders(
        self, session_factory: async_sessionmaker[AsyncSession], test_db: AsyncSession
    ) -> None:
        test_db.add_all(
            [
                Product(name="A", price=10.0, stock=0, category="fiction"),
                Product(name="B", price=30.0, stock=5, category="fiction"),
                Product(name="C", price=20.0, stock=50, category="technology"),
                Order(customer_name="Ana", customer_email="ana@example.com", items=[], total_amount=100.0),
                Order(
                    customer_name="Ana",
                    customer_email="ana@example.com",
                    items=[],
                    total_amount=50.0,
                    status="shipped",
                ),
                Order(customer_name="Bruno", customer_email="bruno@example.com", items=[], total_amount=30.0),
            ]
        )
        await test_db.commit()

        data = await BusinessStatsSource(session_factory).fetch()

        products = data["products"]
        assert products["total"] == 3
        assert products["in_stock"] == 2
        assert products["out_of_stock"] == 1
        assert products["avg_price"] == 20.0
        assert products["total_stock"] == 55
        assert [item["name"] for item in products["low_stock"]] == ["A", "B"]
        assert products["by_category"] == [
            {"category": "fiction", "count": 2},
            {"category": "technology", "count": 1},
        ]

        orders = data["orders"]
        assert orders["total"] == 3
        assert orders["by_status"]["pending"] == 2
        assert orders["by_status"]["shipped"] == 1
        assert orders["by_status"]["cancelled"] == 0
        assert orders["total_revenue"] == 180.0
        assert orders["avg_order_value"] == 60.0
        assert orders["total_customers"] == 2
        assert len(orders["recent"]) == 3

    @pytest.mark.unit
    def test_default_is_zeroed(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        default = BusinessStatsSource(session_factory).default(RuntimeError("x"))

        assert default["products"]["out_of_stock"] == 0
        assert default["orders"]["total_revenue"] == 0.0
        assert "error" not in default


class TestSystemStatsSource:
    """Test suite for SystemStatsSource."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_reports_process_and_updates_memory_gauge(
        self, telemetry: Telemetry, metric_total: Any
    ) -> None:
        source = SystemStatsSource(telemetry.registry)

        data = await source.fetch()

        assert data["memory"]["rss"] > 0
        assert 0 < data["memory_usage_percent"] <= 100
        assert data["memory_usage_percent"] == data["memory"]["percent"]
        assert data["memory"]["system_percent"] > 0
        assert data["uptime"] >= 0
        assert metric_total(MEMORY_USAGE_BYTES) == data["memory"]["rss"]
