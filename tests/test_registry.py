"""
Unit tests for the instrument registry.
"""
import threading
from typing import Any

import pytest
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import InMemoryMetricReader

from bookstore_sre.observability.registry import (
    HTTP_REQUESTS_TOTAL,
    MEMORY_USAGE_BYTES,
    STANDARD_INSTRUMENTS,
    InstrumentKind,
    MetricRegistry,
    register_standard_instruments,
)


@pytest.fixture
def registry() -> MetricRegistry:
    provider = MeterProvider(metric_readers=[InMemoryMetricReader()])
    return MetricRegistry(provider.get_meter("test"))


class TestMetricRegistry:
    """Test suite for MetricRegistry."""

    @pytest.mark.unit
    def test_same_name_returns_same_instrument(self, registry: MetricRegistry) -> None:
        first = registry.counter("orders_total", "Orders")
        second = registry.counter("orders_total")
        assert first is second

    @pytest.mark.unit
    def test_name_is_the_only_identity(self, registry: MetricRegistry) -> None:
        """A later request for another kind still gets the first instrument."""
        counter = registry.get_or_create(InstrumentKind.COUNTER, "latency", "as counter")
        histogram = registry.get_or_create(InstrumentKind.HISTOGRAM, "latency", "as histogram", "s")

        assert histogram is counter
        info = registry.info("latency")
        assert info.kind is InstrumentKind.COUNTER
        assert info.description == "as counter"
        assert info.unit == ""

    @pytest.mark.unit
    def test_kinds_are_created(self, registry: MetricRegistry) -> None:
        registry.counter("c")
        registry.histogram("h", unit="s")
        registry.up_down_counter("g")

        kinds = {item["name"]: item["kind"] for item in registry.describe()}
        assert kinds == {"c": "counter", "h": "histogram", "g": "up_down_counter"}

    @pytest.mark.unit
    def test_unknown_name_is_none(self, registry: MetricRegistry) -> None:
        assert registry.get("missing") is None
        assert registry.info("missing") is None

    @pytest.mark.unit
    def test_standard_instruments(self, registry: MetricRegistry) -> None:
        register_standard_instruments(registry)

        names = registry.names()
        assert len(names) == len(STANDARD_INSTRUMENTS)
        assert HTTP_REQUESTS_TOTAL in names
        assert registry.info(MEMORY_USAGE_BYTES).kind is InstrumentKind.UP_DOWN_COUNTER
        assert registry.info(MEMORY_USAGE_BYTES).unit == "By"

    @pytest.mark.unit
    def test_concurrent_creation_yields_one_instrument(self, registry: MetricRegistry) -> None:
        results: list[Any] = []

        def create() -> None:
            results.append(registry.counter("shared_total"))

        threads = [threading.Thread(target=create) for _ in range(16)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len({id(instrument) for instrument in results}) == 1
        assert registry.names() == ["shared_total"]
