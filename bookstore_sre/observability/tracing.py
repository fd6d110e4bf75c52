"""Scoped span execution on top of an OpenTelemetry Tracer."""
from typing import Any, Awaitable, Callable, Mapping, Optional, TypeVar

import structlog
from opentelemetry import trace
from opentelemetry.trace import Span, Status, StatusCode, Tracer

logger = structlog.get_logger(__name__)

T = TypeVar("T")

Attributes = Mapping[str, Any]


def set_attributes(span: Span, attributes: Optional[Attributes]) -> None:
    """
    Copy attributes onto a span, skipping None values.

    Values OpenTelemetry cannot store (dicts, objects) are converted to str.
    Never raises: attribute errors are logged and swallowed.
    """
    if not attributes:
        return
    try:
        for key, value in attributes.items():
            if value is None:
                continue
            if not isinstance(value, (str, bool, int, float)):
                value = str(value)
            span.set_attribute(key, value)
    except Exception as e:
        logger.error("span_attribute_error", error=str(e), error_type=type(e).__name__)


class SpanTracer:
    """Runs async bodies inside a span that is always ended exactly once."""

    def __init__(self, tracer: Tracer) -> None:
        self.tracer = tracer

    async def with_span(
        self,
        name: str,
        body: Callable[[], Awaitable[T]],
        attributes: Optional[Attributes] = None,
        result_attributes: Optional[Callable[[T], Optional[Attributes]]] = None,
    ) -> T:
        """
        Execute ``body`` inside a new active span.

        Args:
            name: Span (operation) name
            body: Zero-argument coroutine function doing the work
            attributes: Attributes identifying the operation, set before ``body`` runs
            result_attributes: Maps the result to attributes set on success

        Returns:
            Whatever ``body`` returns

        Raises:
            Whatever ``body`` raises, unchanged, after the span is marked ERROR
        """
        with self.tracer.start_as_current_span(
            name, record_exception=False, set_status_on_exception=False
        ) as span:
            set_attributes(span, attributes)

            try:
                result = await body()
            except Exception as e:
                span.set_status(Status(StatusCode.ERROR, str(e)))
                span.record_exception(e)
                raise

            if result_attributes is not None:
                try:
                    extra = result_attributes(result)
                except Exception as e:
                    logger.error("span_result_attributes_error", span=name, error=str(e))
                    extra = None
                set_attributes(span, extra)

            span.set_status(Status(StatusCode.OK))
            return result

    @staticmethod
    def current_span() -> Span:
        """Span active in the current context (a non-recording span if none)."""
        return trace.get_current_span()
