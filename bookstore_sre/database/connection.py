"""Database engine, session management and connection pool instrumentation."""
from collections.abc import AsyncGenerator
from typing import Any

import structlog
from fastapi import Request
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ..config import Settings
from ..observability.registry import ACTIVE_DATABASE_CONNECTIONS, MetricRegistry
from .models import Base

logger = structlog.get_logger(__name__)


def create_engine(settings: Settings, **overrides: Any) -> AsyncEngine:
    """
    Create the async engine described by the settings.

    Pool sizing only applies to pooled drivers; SQLite URLs get the
    dialect's default pool.
    """
    options: dict[str, Any] = {"echo": settings.database_echo}
    if not settings.database_url.startswith("sqlite"):
        options.update(
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_pre_ping=True,  # Verify connections before using
            pool_recycle=3600,  # Recycle connections after 1 hour
        )
    options.update(overrides)
    return create_async_engine(settings.database_url, **options)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory shared by request handlers and the metrics sources."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def instrument_pool(engine: AsyncEngine, registry: MetricRegistry) -> None:
    """
    Track checked-out connections in the ``active_database_connections`` gauge.

    Pool events fire on the sync engine underneath the async facade.
    """
    gauge = registry.up_down_counter(ACTIVE_DATABASE_CONNECTIONS)

    @event.listens_for(engine.sync_engine, "checkout")
    def _on_checkout(dbapi_connection: Any, connection_record: Any, connection_proxy: Any) -> None:
        try:
            gauge.add(1)
        except Exception as e:
            logger.error("pool_gauge_error", error=str(e))

    @event.listens_for(engine.sync_engine, "checkin")
    def _on_checkin(dbapi_connection: Any, connection_record: Any) -> None:
        try:
            gauge.add(-1)
        except Exception as e:
            logger.error("pool_gauge_error", error=str(e))


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, Any]:
    """
    Dependency for getting database sessions.

    Yields:
        AsyncSession: Session bound to the application's session factory

    Example:
        @router.get("/products")
        async def list_products(db: AsyncSession = Depends(get_db)):
            ...
    """
    session_factory: async_sessionmaker[AsyncSession] = request.app.state.session_factory
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db(engine: AsyncEngine) -> None:
    """Create all tables defined in models if they don't exist."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db(engine: AsyncEngine) -> None:
    """Close database connections and dispose of the engine."""
    await engine.dispose()
