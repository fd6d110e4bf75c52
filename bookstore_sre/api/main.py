"""
Main FastAPI application.

Bookstore API with:
- CORS configuration
- Error handling
- Request ID tracking
- Structured logging
- OpenTelemetry traces and metrics
"""
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from sqlalchemy.ext.asyncio import AsyncEngine

from .. import __version__
from ..config import Settings, get_settings
from ..core.exceptions import BookstoreError, NotFoundError, ValidationError
from ..database.connection import (
    close_db,
    create_engine,
    create_session_factory,
    init_db,
    instrument_pool,
)
from ..database.seed import seed_sample_data
from ..monitoring.aggregator import MetricsAggregator
from ..monitoring.alerts import AlertEvaluator
from ..monitoring.health import HealthCheck
from ..monitoring.sources import (
    BusinessStatsSource,
    DatabaseStatsSource,
    PerformanceStatsSource,
    SystemStatsSource,
)
from ..monitoring.traces import TraceQueryClient
from ..observability.instrumentation import Telemetry, initialize_telemetry
from ..observability.logging_config import setup_logging
from ..observability.middleware import RequestTelemetryInterceptor
from .routes import admin_router, health_router, metrics_router, order_router, product_router

logger = structlog.get_logger(__name__)

API_PREFIX = "/api"


def _error_body(error: str, message: str) -> dict[str, Any]:
    return {"success": False, "error": error, "message": message}


def create_app(
    settings: Optional[Settings] = None,
    telemetry: Optional[Telemetry] = None,
    engine: Optional[AsyncEngine] = None,
) -> FastAPI:
    """
    Build the application and everything it depends on.

    Args:
        settings: Defaults to ``get_settings()``
        telemetry: Telemetry context; created with OTLP exporters when omitted
            and then also shut down with the application
        engine: Database engine; created from the settings when omitted

    Returns:
        The FastAPI application. Tables are created and sample data seeded in
        the lifespan startup.
    """
    settings = settings or get_settings()
    owns_telemetry = telemetry is None
    if telemetry is None:
        setup_logging(settings.log_level, settings.otel_service_name, settings.app_env)
        telemetry = initialize_telemetry(settings)

    engine = engine or create_engine(settings)
    session_factory = create_session_factory(engine)
    instrument_pool(engine, telemetry.registry)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, Any]:
        """
        Application lifespan manager.

        Handles startup and shutdown events.
        """
        logger.info(
            "application_startup",
            app_name=settings.app_name,
            env=settings.app_env,
            service=settings.otel_service_name,
        )

        try:
            await init_db(engine)
            logger.info("database_initialized")
        except Exception as e:
            logger.error("database_initialization_failed", error=str(e))
            raise

        if settings.seed_sample_data and not settings.is_production:
            async with session_factory() as session:
                await seed_sample_data(session)

        yield

        logger.info("application_shutdown")
        try:
            await close_db(engine)
            logger.info("database_connections_closed")
        except Exception as e:
            logger.error("database_shutdown_error", error=str(e))

        if owns_telemetry:
            telemetry.shutdown()

    app = FastAPI(
        title="Bookstore API",
        description="Products and orders API with OpenTelemetry traces, metrics and SRE dashboards.",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    aggregator = MetricsAggregator(
        system=SystemStatsSource(telemetry.registry),
        database=DatabaseStatsSource(session_factory),
        business=BusinessStatsSource(session_factory),
        performance=PerformanceStatsSource(session_factory, settings.slow_query_threshold_ms),
    )
    app.state.settings = settings
    app.state.telemetry = telemetry
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.metrics_aggregator = aggregator
    app.state.alert_evaluator = AlertEvaluator(aggregator)
    app.state.trace_client = TraceQueryClient(
        settings.jaeger_query_url, settings.otel_service_name
    )
    app.state.health = HealthCheck(
        session_factory, telemetry.registry, settings.otel_service_name, __version__
    )

    # CORS configuration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_allowed_origins_list(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_request_id_middleware(request: Request, call_next: Any) -> Response:
        """
        Add request ID to all requests for tracing.

        Also adds timing information and structured logging context.
        """
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        start_time = time.time()

        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id

            logger.info(
                "request_completed",
                status_code=response.status_code,
                duration_seconds=round(time.time() - start_time, 6),
            )
            return response

        finally:
            structlog.contextvars.clear_contextvars()

    app.add_middleware(
        RequestTelemetryInterceptor,
        registry=telemetry.registry,
        payload_limit=settings.payload_capture_limit,
    )

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        logger.warning("resource_not_found", entity=exc.entity, entity_id=exc.entity_id)
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content=_error_body(f"{exc.entity} not found", str(exc)),
        )

    @app.exception_handler(ValidationError)
    async def validation_handler(request: Request, exc: ValidationError) -> JSONResponse:
        logger.warning("validation_failed", error=str(exc))
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=_error_body("Validation error", str(exc)),
        )

    @app.exception_handler(BookstoreError)
    async def bookstore_error_handler(request: Request, exc: BookstoreError) -> JSONResponse:
        logger.error("business_error", error=str(exc), error_type=type(exc).__name__)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_body("Internal server error", str(exc)),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Global exception handler for unhandled exceptions.
        """
        logger.error(
            "unhandled_exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=request.url.path,
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_body(
                "Internal server error",
                "An unexpected error occurred. Please try again later.",
            ),
        )

    # Include routers
    for router in (health_router, product_router, order_router, admin_router, metrics_router):
        app.include_router(router, prefix=API_PREFIX)

    @app.get("/", tags=["root"])
    async def root() -> dict[str, Any]:
        """Root endpoint with API information."""
        return {
            "service": settings.otel_service_name,
            "version": __version__,
            "status": "operational",
            "environment": settings.app_env,
            "docs": "/docs",
            "health": f"{API_PREFIX}/health",
            "metrics": f"{API_PREFIX}/metrics/dashboard",
        }

    if settings.otel_auto_instrument:
        FastAPIInstrumentor.instrument_app(
            app,
            tracer_provider=telemetry.tracer_provider,
            meter_provider=telemetry.meter_provider,
        )

    return app


def main() -> None:
    """Serve the API with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "bookstore_sre.api.main:create_app",
        factory=True,
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    main()
