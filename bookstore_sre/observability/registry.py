"""
Process-wide table of named OpenTelemetry instruments.

The registry is created once with the application's Meter and shared by
every component that records metrics. Instrument creation is idempotent by
NAME ONLY: the first call for a name decides the instrument's kind,
description and unit, and later calls return that same object even if they
ask for a different kind. Callers that need a specific kind must use a name
nobody else uses.
"""
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Union

from opentelemetry.metrics import Counter, Histogram, Meter, UpDownCounter

Instrument = Union[Counter, Histogram, UpDownCounter]


class InstrumentKind(str, Enum):
    """Kinds of instrument the registry can create."""

    COUNTER = "counter"
    HISTOGRAM = "histogram"
    UP_DOWN_COUNTER = "up_down_counter"


@dataclass(frozen=True)
class InstrumentInfo:
    """Descriptor of a registered instrument."""

    name: str
    kind: InstrumentKind
    description: str
    unit: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "name": self.name,
            "kind": self.kind.value,
            "description": self.description,
            "unit": self.unit,
        }


class MetricRegistry:
    """Named instrument table backed by an OpenTelemetry Meter."""

    def __init__(self, meter: Meter) -> None:
        self.meter = meter
        self._instruments: Dict[str, Instrument] = {}
        self._info: Dict[str, InstrumentInfo] = {}
        self._lock = threading.Lock()

    def get_or_create(
        self,
        kind: InstrumentKind,
        name: str,
        description: str = "",
        unit: str = "",
    ) -> Instrument:
        """
        Return the instrument registered under ``name``, creating it on first use.

        Args:
            kind: Instrument kind used only when the name is new
            name: Unique instrument name
            description: Human readable description (first call wins)
            unit: UCUM unit, e.g. "s" or "By" (first call wins)

        Returns:
            The counter, histogram or up/down counter stored under ``name``
        """
        with self._lock:
            existing = self._instruments.get(name)
            if existing is not None:
                return existing

            if kind is InstrumentKind.COUNTER:
                instrument: Instrument = self.meter.create_counter(
                    name, unit=unit, description=description
                )
            elif kind is InstrumentKind.HISTOGRAM:
                instrument = self.meter.create_histogram(name, unit=unit, description=description)
            elif kind is InstrumentKind.UP_DOWN_COUNTER:
                instrument = self.meter.create_up_down_counter(
                    name, unit=unit, description=description
                )
            else:
                raise ValueError(f"Unsupported instrument kind: {kind!r}")

            self._instruments[name] = instrument
            self._info[name] = InstrumentInfo(name, kind, description, unit)
            return instrument

    def counter(self, name: str, description: str = "", unit: str = "") -> Instrument:
        return self.get_or_create(InstrumentKind.COUNTER, name, description, unit)

    def histogram(self, name: str, description: str = "", unit: str = "") -> Instrument:
        return self.get_or_create(InstrumentKind.HISTOGRAM, name, description, unit)

    def up_down_counter(self, name: str, description: str = "", unit: str = "") -> Instrument:
        return self.get_or_create(InstrumentKind.UP_DOWN_COUNTER, name, description, unit)

    def get(self, name: str) -> Optional[Instrument]:
        with self._lock:
            return self._instruments.get(name)

    def info(self, name: str) -> Optional[InstrumentInfo]:
        with self._lock:
            return self._info.get(name)

    def names(self) -> List[str]:
        with self._lock:
            return list(self._instruments)

    def describe(self) -> List[Dict[str, str]]:
        """Descriptors of every registered instrument, in registration order."""
        with self._lock:
            return [info.to_dict() for info in self._info.values()]


# Instruments the application records. Names are the public contract with
# dashboards, so they follow the Prometheus naming used by the collector.
HTTP_REQUESTS_TOTAL = "http_requests_total"
HTTP_ERRORS_TOTAL = "http_errors_total"
API_REQUEST_DURATION = "api_request_duration_seconds"
DATABASE_QUERY_DURATION = "database_query_duration_seconds"
PRODUCTS_CREATED_TOTAL = "products_created_total"
PRODUCTS_UPDATED_TOTAL = "products_updated_total"
PRODUCTS_DELETED_TOTAL = "products_deleted_total"
ORDERS_CREATED_TOTAL = "orders_created_total"
ORDERS_UPDATED_TOTAL = "orders_updated_total"
ORDERS_STATUS_CHANGED_TOTAL = "orders_status_changed_total"
ACTIVE_DATABASE_CONNECTIONS = "active_database_connections"
MEMORY_USAGE_BYTES = "memory_usage_bytes"

STANDARD_INSTRUMENTS = (
    (InstrumentKind.COUNTER, HTTP_REQUESTS_TOTAL, "Total HTTP requests", ""),
    (InstrumentKind.COUNTER, HTTP_ERRORS_TOTAL, "Total HTTP error responses", ""),
    (InstrumentKind.HISTOGRAM, API_REQUEST_DURATION, "API request duration", "s"),
    (InstrumentKind.HISTOGRAM, DATABASE_QUERY_DURATION, "Database operation duration", "s"),
    (InstrumentKind.COUNTER, PRODUCTS_CREATED_TOTAL, "Total products created", ""),
    (InstrumentKind.COUNTER, PRODUCTS_UPDATED_TOTAL, "Total products updated", ""),
    (InstrumentKind.COUNTER, PRODUCTS_DELETED_TOTAL, "Total products deleted", ""),
    (InstrumentKind.COUNTER, ORDERS_CREATED_TOTAL, "Total orders created", ""),
    (InstrumentKind.COUNTER, ORDERS_UPDATED_TOTAL, "Total orders updated", ""),
    (InstrumentKind.COUNTER, ORDERS_STATUS_CHANGED_TOTAL, "Total order status changes", ""),
    (InstrumentKind.UP_DOWN_COUNTER, ACTIVE_DATABASE_CONNECTIONS, "Checked-out database connections", ""),
    (InstrumentKind.UP_DOWN_COUNTER, MEMORY_USAGE_BYTES, "Resident memory of the process", "By"),
)


def register_standard_instruments(registry: MetricRegistry) -> None:
    """Create every instrument the application records."""
    for kind, name, description, unit in STANDARD_INSTRUMENTS:
        registry.get_or_create(kind, name, description, unit)
