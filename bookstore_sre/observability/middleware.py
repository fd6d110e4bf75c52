"""
Per-request telemetry as an ASGI middleware.

The interceptor wraps the ``send`` callable of the ASGI chain: response
messages pass through untouched while their status and body are observed.
When the last body chunk goes out, the payload, its size and the status code
are attached to the active span and the duration/error metrics recorded.

Instrumentation here is fail-open. Any error raised while observing or
recording is logged and the original message is still forwarded.
"""
import json
import time
from typing import Any, Dict, List, Optional

import structlog
from opentelemetry import trace
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from .registry import (
    API_REQUEST_DURATION,
    HTTP_ERRORS_TOTAL,
    HTTP_REQUESTS_TOTAL,
    MetricRegistry,
)

logger = structlog.get_logger(__name__)


def serialize_payload(body: bytes, limit: int) -> str:
    """
    Render a response body as JSON text for a span attribute.

    JSON bodies are re-serialized compactly; anything else is wrapped as
    {"content": <text>}. The result is cut at ``limit`` characters.
    """
    text = body.decode("utf-8", errors="replace")
    try:
        payload = json.dumps(json.loads(text), separators=(",", ":"), ensure_ascii=False)
    except ValueError:
        payload = json.dumps({"content": text}, ensure_ascii=False)
    return payload[:limit]


class _ResponseObserver:
    """Accumulates what is known about the response as messages go by."""

    def __init__(self, limit: int) -> None:
        self.limit = limit
        self.status_code: Optional[int] = None
        self.size = 0
        self.chunks: List[bytes] = []
        self.buffered = 0
        self.complete = False

    def observe(self, message: Message) -> None:
        if message["type"] == "http.response.start":
            self.status_code = message["status"]
        elif message["type"] == "http.response.body":
            chunk = message.get("body", b"")
            self.size += len(chunk)
            if self.buffered <= self.limit:
                self.chunks.append(chunk)
                self.buffered += len(chunk)
            if not message.get("more_body", False):
                self.complete = True

    @property
    def body(self) -> bytes:
        return b"".join(self.chunks)


class RequestTelemetryInterceptor:
    """Records request counters, latency and response payload for every HTTP request."""

    def __init__(self, app: ASGIApp, registry: MetricRegistry, payload_limit: int = 8192) -> None:
        self.app = app
        self.registry = registry
        self.payload_limit = payload_limit

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        method = scope.get("method", "")
        path = scope.get("path", "")
        start_time = time.perf_counter()
        observer = _ResponseObserver(self.payload_limit)
        finalized = False

        try:
            self.registry.counter(HTTP_REQUESTS_TOTAL).add(1, {"method": method, "path": path})
        except Exception as e:
            logger.error("request_counter_error", error=str(e))

        logger.debug("request_received", method=method, path=path)

        async def send_wrapper(message: Message) -> None:
            nonlocal finalized
            try:
                observer.observe(message)
                if observer.complete and not finalized:
                    finalized = True
                    self._on_response_complete(method, path, observer, start_time)
            except Exception as e:
                logger.error("response_capture_error", error=str(e), error_type=type(e).__name__)
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        except Exception as exc:
            self._on_request_failed(method, path, exc, observer, start_time, finalized)
            raise

    def _on_response_complete(
        self,
        method: str,
        path: str,
        observer: _ResponseObserver,
        start_time: float,
    ) -> None:
        status_code = observer.status_code or 200
        try:
            self._capture_payload(observer, status_code)
        except Exception as e:
            logger.error("payload_capture_error", error=str(e), error_type=type(e).__name__)

        duration = time.perf_counter() - start_time
        self._record_metrics(method, path, status_code, duration)

        logger.debug(
            "response_sent",
            method=method,
            path=path,
            status_code=status_code,
            duration_ms=round(duration * 1000, 2),
        )

    def _capture_payload(self, observer: _ResponseObserver, status_code: int) -> None:
        span = trace.get_current_span()
        if not span.is_recording():
            return

        if observer.size > 0:
            payload = serialize_payload(observer.body, self.payload_limit)
            span.set_attribute("http.response.payload", payload)
        span.set_attribute("http.status_code", status_code)
        span.set_attribute("http.response.size_bytes", observer.size)

    def _record_metrics(
        self,
        method: str,
        path: str,
        status_code: int,
        duration: float,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        labels = {"method": method, "path": path, "status_code": str(status_code)}
        try:
            self.registry.histogram(API_REQUEST_DURATION).record(duration, labels)
            if status_code >= 400:
                self.registry.counter(HTTP_ERRORS_TOTAL).add(1, {**labels, **(extra or {})})
        except Exception as e:
            logger.error("request_metrics_error", error=str(e))

    def _on_request_failed(
        self,
        method: str,
        path: str,
        exc: Exception,
        observer: _ResponseObserver,
        start_time: float,
        finalized: bool,
    ) -> None:
        try:
            span = trace.get_current_span()
            if span.is_recording():
                span.set_attribute("error", True)
                span.set_attribute("error.message", str(exc))
                span.set_attribute("http.status_code", 500)
                span.record_exception(exc)
        except Exception as e:
            logger.error("error_capture_failed", error=str(e))

        if not finalized:
            self._record_metrics(
                method,
                path,
                500,
                time.perf_counter() - start_time,
                extra={"error_type": type(exc).__name__},
            )

        logger.error(
            "request_failed",
            method=method,
            path=path,
            error=str(exc),
            error_type=type(exc).__name__,
        )
