"""
Unit tests for logging configuration and settings.
"""
import json
import logging

import pytest
from pydantic import ValidationError

from bookstore_sre.config import Settings
from bookstore_sre.observability.instrumentation import Telemetry
from bookstore_sre.observability.logging_config import CorrelationJsonFormatter


def make_record(**extra: object) -> logging.LogRecord:
    record = logging.LogRecord("bookstore_sre.test", logging.INFO, __file__, 1, "order_created", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestCorrelationJsonFormatter:
    """Test suite for CorrelationJsonFormatter."""

    @pytest.mark.unit
    def test_service_fields(self) -> None:
        formatter = CorrelationJsonFormatter(service_name="elven-api", app_env="production")

        line = json.loads(formatter.format(make_record(order_id=7)))

        assert line["message"] == "order_created"
        assert line["level"] == "INFO"
        assert line["logger"] == "bookstore_sre.test"
        assert line["service"] == "elven-api"
        assert line["app_env"] == "production"
        assert line["order_id"] == 7
        assert "trace_id" not in line

    @pytest.mark.unit
    def test_trace_correlation(self, telemetry: Telemetry) -> None:
        formatter = CorrelationJsonFormatter()
        tracer = telemetry.tracer_provider.get_tracer("test")

        with tracer.start_as_current_span("create_order") as span:
            line = json.loads(formatter.format(make_record()))
            context = span.get_span_context()

        assert line["trace_id"] == format(context.trace_id, "032x")
        assert line["span_id"] == format(context.span_id, "016x")

    @pytest.mark.unit
    def test_customer_email_is_masked(self) -> None:
        formatter = CorrelationJsonFormatter()

        line = json.loads(formatter.format(make_record(customer_email="ana@example.com")))

        assert line["customer_email"] == "***.com"


class TestSettings:
    """Test suite for Settings."""

    @pytest.mark.unit
    def test_defaults(self) -> None:
        settings = Settings(_env_file=None)

        assert settings.otel_service_name == "elven-api"
        assert settings.otel_exporter_otlp_endpoint == "http://collector:4318/v1/traces"
        assert settings.otel_metrics_export_interval_ms == 60000
        assert settings.jaeger_query_url == "http://localhost:16686"

    @pytest.mark.unit
    def test_environment_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("OTEL_SERVICE_NAME", "bookstore-staging")
        monkeypatch.setenv("APP_ENV", "production")

        settings = Settings(_env_file=None)

        assert settings.otel_service_name == "bookstore-staging"
        assert settings.is_production

    @pytest.mark.unit
    def test_invalid_log_level(self) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, log_level="LOUD")

    @pytest.mark.unit
    def test_allowed_origins_list(self) -> None:
        settings = Settings(_env_file=None, allowed_origins="http://a.test, http://b.test")

        assert settings.get_allowed_origins_list() == ["http://a.test", "http://b.test"]
