"""
Raw data sources behind the metrics snapshot.

Each source knows how to fetch its section and what to report when that
fetch fails. Sources raise freely; isolation is the aggregator's job.
"""
import os
import platform
import sys
import threading
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

import psutil
from sqlalchemy import case, func, select, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..database.models import Order, OrderStatus, Product
from ..observability.registry import MEMORY_USAGE_BYTES, MetricRegistry

LOW_STOCK_THRESHOLD = 10
RECENT_ORDERS_LIMIT = 10


def _number(value: Any) -> float:
    """Aggregates come back as None, Decimal or float depending on the driver."""
    if value is None:
        return 0.0
    return float(value)


def _rows(result: Any) -> List[Dict[str, Any]]:
    rows = []
    for row in result:
        rows.append(
            {
                key: float(value) if isinstance(value, Decimal) else value
                for key, value in row._mapping.items()
            }
        )
    return rows


class StatsSource(ABC):
    """One section of the metrics snapshot."""

    name: str = ""
    # sections whose default carries the failure message
    report_errors: bool = False

    @abstractmethod
    async def fetch(self) -> Dict[str, Any]:
        """Collect the section. May raise."""

    @abstractmethod
    def empty(self) -> Dict[str, Any]:
        """Section contents when nothing could be collected."""

    def default(self, error: Optional[BaseException] = None) -> Dict[str, Any]:
        data = self.empty()
        if error is not None and self.report_errors:
            data["error"] = str(error)
        return data


class SystemStatsSource(StatsSource):
    """
    Process and host statistics from psutil.

    Each sample also moves the ``memory_usage_bytes`` gauge by the change in
    resident memory since the previous sample.
    """

    name = "system"

    def __init__(self, registry: Optional[MetricRegistry] = None) -> None:
        self.registry = registry
        self.process = psutil.Process(os.getpid())
        self._last_rss = 0
        self._lock = threading.Lock()

    async def fetch(self) -> Dict[str, Any]:
        process_memory = self.process.memory_info()
        memory_percent = self.process.memory_percent()
        system_memory = psutil.virtual_memory()
        cpu_times = self.process.cpu_times()

        self._track_memory(process_memory.rss)

        return {
            "memory": {
                "rss": process_memory.rss,
                "vms": process_memory.vms,
                "percent": memory_percent,
                "system_total": system_memory.total,
                "system_available": system_memory.available,
                "system_used": system_memory.used,
                "system_percent": system_memory.percent,
            },
            "memory_usage_percent": memory_percent,
            "cpu": {
                "user": cpu_times.user,
                "system": cpu_times.system,
                "percent": self.process.cpu_percent(interval=None),
            },
            "uptime": round(time.time() - self.process.create_time(), 3),
            "pid": self.process.pid,
            "version": platform.python_version(),
            "platform": sys.platform,
            "arch": platform.machine(),
        }

    def _track_memory(self, rss: int) -> None:
        if self.registry is None:
            return
        with self._lock:
            delta = rss - self._last_rss
            self._last_rss = rss
        if delta:
            self.registry.up_down_counter(MEMORY_USAGE_BYTES).add(delta)

    def empty(self) -> Dict[str, Any]:
        return {
            "memory": {},
            "memory_usage_percent": 0.0,
            "cpu": {},
            "uptime": 0.0,
            "pid": os.getpid(),
            "version": platform.python_version(),
            "platform": sys.platform,
            "arch": platform.machine(),
        }


class DatabaseStatsSource(StatsSource):
    """PostgreSQL connection, activity and table size statistics."""

    name = "database"
    report_errors = True

    ACTIVE_CONNECTIONS_SQL = text(
        "SELECT COUNT(*) AS active_connections FROM pg_stat_activity "
        "WHERE state = 'active' AND datname = current_database()"
    )
    DATABASE_STATS_SQL = text(
        "SELECT numbackends, xact_commit, xact_rollback, blks_read, blks_hit, "
        "tup_returned, tup_fetched, tup_inserted, tup_updated, tup_deleted, deadlocks "
        "FROM pg_stat_database WHERE datname = current_database()"
    )
    TABLE_SIZES_SQL = text(
        "SELECT relname AS table_name, "
        "ROUND(pg_total_relation_size(relid) / 1024.0 / 1024.0, 2) AS size_mb "
        "FROM pg_catalog.pg_statio_user_tables "
        "ORDER BY pg_total_relation_size(relid) DESC"
    )

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def fetch(self) -> Dict[str, Any]:
        async with self.session_factory() as session:
            active = (await session.execute(self.ACTIVE_CONNECTIONS_SQL)).scalar_one()
            performance = _rows(await session.execute(self.DATABASE_STATS_SQL))
            table_sizes = _rows(await session.execute(self.TABLE_SIZES_SQL))

        return {
            "active_connections": int(active or 0),
            "performance": performance,
            "table_sizes": table_sizes,
            "connection_status": "connected",
        }

    def empty(self) -> Dict[str, Any]:
        return {
            "active_connections": 0,
            "performance": [],
            "table_sizes": [],
            "connection_status": "error",
        }


class BusinessStatsSource(StatsSource):
    """Catalogue and order book figures computed with portable ORM queries."""

    name = "business"

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def fetch(self) -> Dict[str, Any]:
        async with self.session_factory() as session:
            products = await self._product_stats(session)
            orders = await self._order_stats(session)
        return {"products": products, "orders": orders}

    async def _product_stats(self, session: AsyncSession) -> Dict[str, Any]:
        totals = (
            await session.execute(
                select(
                    func.count(Product.id),
                    func.sum(case((Product.stock > 0, 1), else_=0)),
                    func.sum(case((Product.stock == 0, 1), else_=0)),
                    func.avg(Product.price),
                    func.sum(Product.stock),
                )
            )
        ).one()

        low_stock = await session.execute(
            select(Product.id, Product.name, Product.stock)
            .where(Product.stock <= LOW_STOCK_THRESHOLD)
            .order_by(Product.stock.asc(), Product.id)
        )
        by_category = await session.execute(
            select(Product.category, func.count(Product.id))
            .group_by(Product.category)
            .order_by(Product.category)
        )

        return {
            "total": int(totals[0] or 0),
            "in_stock": int(totals[1] or 0),
            "out_of_stock": int(totals[2] or 0),
            "avg_price": round(_number(totals[3]), 2),
            "total_stock": int(totals[4] or 0),
            "low_stock": [
                {"id": row.id, "name": row.name, "stock": row.stock} for row in low_stock
            ],
            "by_category": [
                {"category": category, "count": count} for category, count in by_category
            ],
        }

    async def _order_stats(self, session: AsyncSession) -> Dict[str, Any]:
        today = datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)

        totals = (
            await session.execute(
                select(
                    func.count(Order.id),
                    func.avg(Order.total_amount),
                    func.sum(Order.total_amount),
                    func.count(func.distinct(Order.customer_email)),
                )
            )
        ).one()
        today_totals = (
            await session.execute(
                select(func.count(Order.id), func.sum(Order.total_amount)).where(
                    Order.created_at >= today
                )
            )
        ).one()
        by_status = await session.execute(
            select(Order.status, func.count(Order.id)).group_by(Order.status)
        )
        recent = await session.execute(
            select(Order)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .limit(RECENT_ORDERS_LIMIT)
        )

        status_counts = {status: 0 for status in OrderStatus.values()}
        for status, count in by_status:
            status_counts[status] = count

        return {
            "total": int(totals[0] or 0),
            "by_status": status_counts,
            "avg_order_value": round(_number(totals[1]), 2),
            "total_revenue": round(_number(totals[2]), 2),
            "total_customers": int(totals[3] or 0),
            "orders_today": int(today_totals[0] or 0),
            "revenue_today": round(_number(today_totals[1]), 2),
            "recent": [
                {
                    "id": order.id,
                    "customer_name": order.customer_name,
                    "total": order.total_amount,
                    "status": order.status,
                    "date": order.created_at.isoformat() if order.created_at else None,
                }
                for order in recent.scalars()
            ],
        }

    def empty(self) -> Dict[str, Any]:
        return {
            "products": {
                "total": 0,
                "in_stock": 0,
                "out_of_stock": 0,
                "avg_price": 0.0,
                "total_stock": 0,
                "low_stock": [],
                "by_category": [],
            },
            "orders": {
                "total": 0,
                "by_status": {status: 0 for status in OrderStatus.values()},
                "avg_order_value": 0.0,
                "total_revenue": 0.0,
                "total_customers": 0,
                "orders_today": 0,
                "revenue_today": 0.0,
                "recent": [],
            },
        }


class PerformanceStatsSource(StatsSource):
    """Slow statements, table and index usage from the PostgreSQL statistics views."""

    name = "performance"
    report_errors = True

    SLOW_QUERIES_SQL = text(
        "SELECT query, calls, ROUND(mean_exec_time::numeric, 2) AS avg_time_ms "
        "FROM pg_stat_statements WHERE mean_exec_time > :threshold_ms "
        "ORDER BY mean_exec_time DESC LIMIT 10"
    )
    TABLE_STATS_SQL = text(
        "SELECT relname AS table_name, n_live_tup AS row_count, seq_scan, idx_scan, "
        "ROUND(pg_total_relation_size(relid) / 1024.0 / 1024.0, 2) AS size_mb "
        "FROM pg_stat_user_tables ORDER BY pg_total_relation_size(relid) DESC LIMIT 10"
    )
    INDEX_USAGE_SQL = text(
        "SELECT relname AS table_name, indexrelname AS index_name, idx_scan, idx_tup_read "
        "FROM pg_stat_user_indexes ORDER BY idx_scan DESC LIMIT 10"
    )

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        slow_query_threshold_ms: float = 1000.0,
    ) -> None:
        self.session_factory = session_factory
        self.slow_query_threshold_ms = slow_query_threshold_ms

    async def fetch(self) -> Dict[str, Any]:
        async with self.session_factory() as session:
            slow_queries = _rows(
                await session.execute(
                    self.SLOW_QUERIES_SQL, {"threshold_ms": self.slow_query_threshold_ms}
                )
            )
            table_stats = _rows(await session.execute(self.TABLE_STATS_SQL))
            index_usage = _rows(await session.execute(self.INDEX_USAGE_SQL))

        return {
            "slow_queries": slow_queries,
            "table_stats": table_stats,
            "index_usage": index_usage,
        }

    def empty(self) -> Dict[str, Any]:
        return {"slow_queries": [], "table_stats": [], "index_usage": []}
