"""
Pytest configuration and fixtures.
"""
from typing import Any, AsyncGenerator, Callable, Dict, List

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from opentelemetry.sdk.metrics.export import InMemoryMetricReader
from opentelemetry.sdk.trace import SpanProcessor
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from bookstore_sre.api.main import create_app
from bookstore_sre.config import Settings
from bookstore_sre.database.connection import create_engine, create_session_factory, init_db
from bookstore_sre.observability.instrumentation import Telemetry, build_telemetry


class CountingSpanProcessor(SpanProcessor):
    """Counts span starts and ends to check every span is closed exactly once."""

    def __init__(self) -> None:
        self.started = 0
        self.ended = 0

    def on_start(self, span: Any, parent_context: Any = None) -> None:
        self.started += 1

    def on_end(self, span: Any) -> None:
        self.ended += 1


@pytest.fixture
def test_settings(tmp_path: Any) -> Settings:
    """Create test settings."""
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'bookstore_test.db'}",
        app_name="bookstore-sre-test",
        app_env="test",
        log_level="DEBUG",
        debug=True,
        seed_sample_data=False,
        otel_service_name="bookstore-test",
        jaeger_query_url="http://jaeger.test:16686",
        payload_capture_limit=512,
    )


@pytest.fixture
def span_exporter() -> InMemorySpanExporter:
    return InMemorySpanExporter()


@pytest.fixture
def span_counter() -> CountingSpanProcessor:
    return CountingSpanProcessor()


@pytest.fixture
def metric_reader() -> InMemoryMetricReader:
    return InMemoryMetricReader()


@pytest.fixture
def telemetry(
    span_exporter: InMemorySpanExporter,
    span_counter: CountingSpanProcessor,
    metric_reader: InMemoryMetricReader,
) -> Telemetry:
    """Telemetry context exporting to memory."""
    telemetry = build_telemetry(
        "bookstore-test",
        span_processors=[SimpleSpanProcessor(span_exporter), span_counter],
        metric_readers=[metric_reader],
    )
    yield telemetry
    telemetry.shutdown()


@pytest.fixture
def metric_points(metric_reader: InMemoryMetricReader) -> Callable[[str], List[Any]]:
    """Return a function listing the collected data points of a metric by name."""

    def collect(name: str) -> List[Any]:
        data = metric_reader.get_metrics_data()
        points: List[Any] = []
        if data is None:
            return points
        for resource_metrics in data.resource_metrics:
            for scope_metrics in resource_metrics.scope_metrics:
                for metric in scope_metrics.metrics:
                    if metric.name == name:
                        points.extend(metric.data.data_points)
        return points

    return collect


@pytest.fixture
def metric_total(metric_points: Callable[[str], List[Any]]) -> Callable[..., float]:
    """Sum of a counter's values, optionally restricted to points carrying ``attributes``."""

    def total(name: str, **attributes: Any) -> float:
        value = 0.0
        for point in metric_points(name):
            if all(point.attributes.get(k) == v for k, v in attributes.items()):
                value += point.value
        return value

    return total


@pytest_asyncio.fixture
async def engine(test_settings: Settings) -> AsyncGenerator[AsyncEngine, Any]:
    """File-backed SQLite engine with all tables created."""
    engine = create_engine(test_settings, poolclass=NullPool)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest_asyncio.fixture
async def test_db(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, Any]:
    """Create test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def app(test_settings: Settings, telemetry: Telemetry, engine: AsyncEngine) -> Any:
    return create_app(test_settings, telemetry=telemetry, engine=engine)


@pytest_asyncio.fixture
async def client(app: Any) -> AsyncGenerator[AsyncClient, Any]:
    """Create test HTTP client."""
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def sample_product_data() -> Dict[str, Any]:
    """Sample product request data."""
    return {
        "name": "Site Reliability Engineering",
        "description": "How Google runs production systems.",
        "price": 189.9,
        "stock": 25,
        "category": "technology",
        "author": "Betsy Beyer",
        "isbn": "9781491929124",
        "pages": 552,
    }


@pytest.fixture
def sample_order_data() -> Dict[str, Any]:
    """Sample order request data."""
    return {
        "customer_name": "Ana Souza",
        "customer_email": "ana@example.com",
        "items": [{"product_id": 1, "quantity": 2, "price": 50.0, "name": "Accelerate"}],
        "total_amount": 100.0,
        "shipping_address": "Rua das Flores 100, Sao Paulo",
    }
