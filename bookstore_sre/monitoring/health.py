"""
Health checks for load balancer and container probes.

Checks:
- Database connectivity
- Registered telemetry instruments
"""
import os
import platform
import time
from datetime import datetime, timezone
from typing import Any, Dict

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..observability.registry import MetricRegistry

logger = structlog.get_logger(__name__)


class HealthCheckError(Exception):
    """Raised when health check fails."""

    pass


class HealthCheck:
    """Health check service for the API and its database."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        registry: MetricRegistry,
        service_name: str,
        version: str = "1.0.0",
    ) -> None:
        self.session_factory = session_factory
        self.registry = registry
        self.service_name = service_name
        self.version = version
        self.started_at = time.time()

    async def check_database(self) -> Dict[str, Any]:
        """
        Check database connectivity.

        Raises:
            HealthCheckError: If the database cannot answer a trivial query
        """
        try:
            async with self.session_factory() as db:
                result = await db.execute(text("SELECT 1"))
                result.scalar()

            return {
                "status": "connected",
                "message": "Database connection successful",
            }

        except Exception as e:
            logger.error("database_health_check_failed", error=str(e))
            raise HealthCheckError(f"Database health check failed: {str(e)}")

    async def check_all(self) -> Dict[str, Any]:
        """
        Overall health.

        Returns:
            Dict[str, Any]: ``status`` is "healthy" only if the database answered
        """
        healthy = True
        try:
            database = await self.check_database()
        except HealthCheckError as e:
            database = {"status": "disconnected", "error": str(e)}
            healthy = False

        return {
            "status": "healthy" if healthy else "unhealthy",
            "service": self.service_name,
            "version": self.version,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime": round(time.time() - self.started_at, 3),
            "database": database,
        }

    def metrics_info(self) -> Dict[str, Any]:
        """Process information and the instruments this service records."""
        return {
            "service": self.service_name,
            "version": self.version,
            "pid": os.getpid(),
            "python_version": platform.python_version(),
            "uptime": round(time.time() - self.started_at, 3),
            "instruments": self.registry.describe(),
            "metric_names": self.registry.names(),
        }
