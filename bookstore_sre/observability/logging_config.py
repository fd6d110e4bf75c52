"""
Structured logging configuration.

structlog builds the event, python-json-logger renders it. Every log line
carries the trace_id/span_id of the active OpenTelemetry span, so a log
entry can be joined to its trace in the collector backend.
"""
import logging
import sys
from typing import Any, Dict

import structlog
from opentelemetry import trace
from pythonjsonlogger import jsonlogger

SENSITIVE_KEYS = ("password", "secret", "api_key", "authorization", "customer_email")


class CorrelationJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that injects trace correlation and service fields."""

    def __init__(self, *args: Any, service_name: str = "unknown", app_env: str = "development", **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.service_name = service_name
        self.app_env = app_env

    def add_fields(
        self,
        log_record: Dict[str, Any],
        record: logging.LogRecord,
        message_dict: Dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        ctx = trace.get_current_span().get_span_context()
        if ctx.is_valid:
            log_record["trace_id"] = format(ctx.trace_id, "032x")
            log_record["span_id"] = format(ctx.span_id, "016x")

        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["timestamp"] = self.formatTime(record, self.datefmt)
        log_record["service"] = self.service_name
        log_record["app_env"] = self.app_env

        self.scrub_sensitive_data(log_record)

    @staticmethod
    def scrub_sensitive_data(log_record: Dict[str, Any]) -> Dict[str, Any]:
        """Mask values of keys that may hold credentials or customer PII."""
        for key in SENSITIVE_KEYS:
            if key in log_record:
                value = log_record[key]
                if isinstance(value, str) and len(value) > 4:
                    log_record[key] = f"***{value[-4:]}"
                else:
                    log_record[key] = "***REDACTED***"
        return log_record


def setup_logging(
    level: str = "INFO",
    service_name: str = "unknown",
    app_env: str = "development",
) -> None:
    """
    Configure structured JSON logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        service_name: Service name included in every log line
        app_env: Deployment environment included in every log line
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.render_to_log_kwargs,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # stdout so the container runtime collects it
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        CorrelationJsonFormatter(
            "%(timestamp)s %(level)s %(logger)s %(message)s",
            service_name=service_name,
            app_env=app_env,
        )
    )
    root_logger.addHandler(handler)

    # Silence noisy libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    structlog.get_logger(__name__).info(
        "logging_configured", log_level=level.upper(), service=service_name
    )


def get_logger(name: str, **context: Any) -> Any:
    """Return a structlog logger, optionally with pre-bound context."""
    logger = structlog.get_logger(name)
    if context:
        return logger.bind(**context)
    return logger
