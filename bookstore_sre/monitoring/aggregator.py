"""
Merges the system, database, business and performance sources into one
snapshot.

Sources are fetched concurrently and independently: a failing source is
logged and replaced by its default section, so ``snapshot()`` itself never
raises.
"""
import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Tuple

import structlog

from .sources import (
    BusinessStatsSource,
    DatabaseStatsSource,
    PerformanceStatsSource,
    StatsSource,
    SystemStatsSource,
)

logger = structlog.get_logger(__name__)


@dataclass
class MetricsSnapshot:
    """Point-in-time view of every section."""

    system: Dict[str, Any]
    database: Dict[str, Any]
    business: Dict[str, Any]
    performance: Dict[str, Any]
    timestamp: str
    failed_sections: List[str] = field(default_factory=list)

    SECTIONS = ("system", "database", "business", "performance")

    @property
    def all_failed(self) -> bool:
        return len(self.failed_sections) == len(self.SECTIONS)

    def section(self, name: str) -> Dict[str, Any]:
        if name not in self.SECTIONS:
            raise KeyError(name)
        return getattr(self, name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "system": self.system,
            "database": self.database,
            "business": self.business,
            "performance": self.performance,
            "timestamp": self.timestamp,
        }


class MetricsAggregator:
    """Builds MetricsSnapshot objects from the four sources."""

    def __init__(
        self,
        system: SystemStatsSource,
        database: DatabaseStatsSource,
        business: BusinessStatsSource,
        performance: PerformanceStatsSource,
    ) -> None:
        self.sources: Tuple[StatsSource, ...] = (system, database, business, performance)

    async def snapshot(self) -> MetricsSnapshot:
        results = await asyncio.gather(*(self._fetch(source) for source in self.sources))

        sections: Dict[str, Dict[str, Any]] = {}
        failed: List[str] = []
        for source, (data, ok) in zip(self.sources, results):
            sections[source.name] = data
            if not ok:
                failed.append(source.name)

        if failed:
            logger.warning("metrics_snapshot_degraded", failed_sections=failed)

        return MetricsSnapshot(
            system=sections["system"],
            database=sections["database"],
            business=sections["business"],
            performance=sections["performance"],
            timestamp=datetime.now(timezone.utc).isoformat(),
            failed_sections=failed,
        )

    async def section(self, name: str) -> Dict[str, Any]:
        """
        Fetch a single section without touching the other sources.

        A failing source yields its default, as in ``snapshot()``.

        Raises:
            KeyError: If ``name`` is not one of MetricsSnapshot.SECTIONS
        """
        for source in self.sources:
            if source.name == name:
                data, _ = await self._fetch(source)
                return data
        raise KeyError(name)

    async def _fetch(self, source: StatsSource) -> Tuple[Dict[str, Any], bool]:
        try:
            return await source.fetch(), True
        except Exception as e:
            logger.error(
                "metrics_source_failed",
                section=source.name,
                error=str(e),
                error_type=type(e).__name__,
            )
            return source.default(e), False
