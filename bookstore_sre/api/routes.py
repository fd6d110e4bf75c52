"""
API routes: health, products, orders, admin and SRE metrics.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.admin import AdminService
from ..core.exceptions import NotFoundError
from ..core.orders import OrderUseCase
from ..core.products import ProductUseCase
from ..database.connection import get_db
from ..monitoring.aggregator import MetricsAggregator, MetricsSnapshot
from ..monitoring.alerts import AlertEvaluator, evaluate_snapshot
from ..monitoring.health import HealthCheck
from ..monitoring.traces import TraceQueryClient
from ..observability.instrumentation import Telemetry
from .schemas import (
    OrderCreate,
    OrderStatusUpdate,
    OrderUpdate,
    ProductCreate,
    ProductUpdate,
)

logger = structlog.get_logger(__name__)

# Create routers
health_router = APIRouter(prefix="/health", tags=["health"])
product_router = APIRouter(prefix="/products", tags=["products"])
order_router = APIRouter(prefix="/orders", tags=["orders"])
admin_router = APIRouter(prefix="/admin", tags=["admin"])
metrics_router = APIRouter(prefix="/metrics", tags=["metrics"])


def get_telemetry(request: Request) -> Telemetry:
    return request.app.state.telemetry


def get_product_use_case(
    db: AsyncSession = Depends(get_db),
    telemetry: Telemetry = Depends(get_telemetry),
) -> ProductUseCase:
    return ProductUseCase(db, telemetry.operations)


def get_order_use_case(
    db: AsyncSession = Depends(get_db),
    telemetry: Telemetry = Depends(get_telemetry),
) -> OrderUseCase:
    return OrderUseCase(db, telemetry.operations)


def get_admin_service(
    db: AsyncSession = Depends(get_db),
    telemetry: Telemetry = Depends(get_telemetry),
) -> AdminService:
    return AdminService(db, telemetry.operations)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# Health


@health_router.get("", summary="Service and database health")
async def health(request: Request) -> JSONResponse:
    """503 when the database does not answer."""
    health_check: HealthCheck = request.app.state.health
    result = await health_check.check_all()
    code = status.HTTP_200_OK if result["status"] == "healthy" else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(status_code=code, content=result)


@health_router.get("/metrics", summary="Process information and registered instruments")
async def health_metrics(request: Request) -> Dict[str, Any]:
    health_check: HealthCheck = request.app.state.health
    return {"success": True, "data": health_check.metrics_info(), "timestamp": _now()}


# Products


@product_router.get("")
async def list_products(use_case: ProductUseCase = Depends(get_product_use_case)) -> Dict[str, Any]:
    products = await use_case.get_all()
    return {"success": True, "data": [p.to_dict() for p in products], "count": len(products)}


@product_router.get("/{product_id}")
async def get_product(
    product_id: int, use_case: ProductUseCase = Depends(get_product_use_case)
) -> Dict[str, Any]:
    product = await use_case.get_by_id(product_id)
    if product is None:
        raise NotFoundError("Product", product_id)
    return {"success": True, "data": product.to_dict()}


@product_router.post("", status_code=status.HTTP_201_CREATED)
async def create_product(
    payload: ProductCreate, use_case: ProductUseCase = Depends(get_product_use_case)
) -> Dict[str, Any]:
    product = await use_case.create(payload.model_dump())
    return {"success": True, "data": product.to_dict(), "message": "Product created"}


@product_router.put("/{product_id}")
async def update_product(
    product_id: int,
    payload: ProductUpdate,
    use_case: ProductUseCase = Depends(get_product_use_case),
) -> Dict[str, Any]:
    product = await use_case.update(product_id, payload.model_dump(exclude_unset=True))
    if product is None:
        raise NotFoundError("Product", product_id)
    return {"success": True, "data": product.to_dict(), "message": "Product updated"}


@product_router.delete("/{product_id}")
async def delete_product(
    product_id: int, use_case: ProductUseCase = Depends(get_product_use_case)
) -> Dict[str, Any]:
    if not await use_case.delete(product_id):
        raise NotFoundError("Product", product_id)
    return {"success": True, "message": "Product deleted"}


# Orders


@order_router.get("")
async def list_orders(use_case: OrderUseCase = Depends(get_order_use_case)) -> Dict[str, Any]:
    orders = await use_case.get_all()
    return {"success": True, "data": [o.to_dict() for o in orders], "count": len(orders)}


@order_router.get("/{order_id}")
async def get_order(
    order_id: int, use_case: OrderUseCase = Depends(get_order_use_case)
) -> Dict[str, Any]:
    order = await use_case.get_by_id(order_id)
    if order is None:
        raise NotFoundError("Order", order_id)
    return {"success": True, "data": order.to_dict()}


@order_router.post("", status_code=status.HTTP_201_CREATED)
async def create_order(
    payload: OrderCreate, use_case: OrderUseCase = Depends(get_order_use_case)
) -> Dict[str, Any]:
    order = await use_case.create(payload.model_dump())
    return {"success": True, "data": order.to_dict(), "message": "Order created"}


@order_router.put("/{order_id}")
async def update_order(
    order_id: int,
    payload: OrderUpdate,
    use_case: OrderUseCase = Depends(get_order_use_case),
) -> Dict[str, Any]:
    order = await use_case.update(order_id, payload.model_dump(exclude_unset=True))
    if order is None:
        raise NotFoundError("Order", order_id)
    return {"success": True, "data": order.to_dict(), "message": "Order updated"}


@order_router.patch("/{order_id}/status")
async def update_order_status(
    order_id: int,
    payload: OrderStatusUpdate,
    use_case: OrderUseCase = Depends(get_order_use_case),
) -> Dict[str, Any]:
    order = await use_case.update_status(order_id, payload.status)
    if order is None:
        raise NotFoundError("Order", order_id)
    return {"success": True, "data": order.to_dict(), "message": "Order status updated"}


@order_router.delete("/{order_id}")
async def delete_order(
    order_id: int, use_case: OrderUseCase = Depends(get_order_use_case)
) -> Dict[str, Any]:
    if not await use_case.delete(order_id):
        raise NotFoundError("Order", order_id)
    return {"success": True, "message": "Order deleted"}


# Admin


@admin_router.get("/orders")
async def admin_list_orders(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    order_status: Optional[str] = Query(default=None, alias="status"),
    service: AdminService = Depends(get_admin_service),
) -> Dict[str, Any]:
    result = await service.list_orders(page, limit, order_status)
    return {"success": True, "data": result}


@admin_router.get("/orders/search")
async def admin_search_orders(
    q: Optional[str] = Query(default=None, description="Customer name or email fragment"),
    order_status: Optional[str] = Query(default=None, alias="status"),
    start_date: Optional[datetime] = Query(default=None),
    end_date: Optional[datetime] = Query(default=None),
    service: AdminService = Depends(get_admin_service),
) -> Dict[str, Any]:
    orders = await service.search_orders(q, order_status, start_date, end_date)
    return {"success": True, "data": [o.to_dict() for o in orders], "count": len(orders)}


@admin_router.get("/orders/{order_id}")
async def admin_get_order(
    order_id: int, service: AdminService = Depends(get_admin_service)
) -> Dict[str, Any]:
    order = await service.get_order(order_id)
    if order is None:
        raise NotFoundError("Order", order_id)
    return {"success": True, "data": order.to_dict()}


@admin_router.put("/orders/{order_id}/status")
async def admin_update_order_status(
    order_id: int,
    payload: OrderStatusUpdate,
    service: AdminService = Depends(get_admin_service),
) -> Dict[str, Any]:
    order = await service.update_order_status(order_id, payload.status)
    if order is None:
        raise NotFoundError("Order", order_id)
    return {"success": True, "data": order.to_dict()}


# Metrics


def _metrics_ok(data: Any) -> Dict[str, Any]:
    return {"success": True, "data": data, "timestamp": _now()}


def _metrics_error(endpoint: str, exc: Exception) -> JSONResponse:
    logger.error("metrics_endpoint_failed", endpoint=endpoint, error=str(exc))
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "error": "Internal server error", "message": str(exc)},
    )


class MetricsUnavailableError(Exception):
    """Every section of the snapshot failed."""

    def __init__(self) -> None:
        super().__init__("No metrics source is available")


async def _snapshot(request: Request) -> MetricsSnapshot:
    aggregator: MetricsAggregator = request.app.state.metrics_aggregator
    snapshot = await aggregator.snapshot()
    if snapshot.all_failed:
        raise MetricsUnavailableError()
    return snapshot


@metrics_router.get("/dashboard", summary="Full snapshot plus active alerts")
async def metrics_dashboard(request: Request) -> Any:
    try:
        snapshot = await _snapshot(request)
        evaluator: AlertEvaluator = request.app.state.alert_evaluator
        alerts = evaluate_snapshot(snapshot, evaluator.rules)
        return _metrics_ok(
            {"system": snapshot.to_dict(), "alerts": [alert.to_dict() for alert in alerts]}
        )
    except Exception as e:
        return _metrics_error("dashboard", e)


async def _section(request: Request, name: str) -> Any:
    try:
        aggregator: MetricsAggregator = request.app.state.metrics_aggregator
        return _metrics_ok(await aggregator.section(name))
    except Exception as e:
        return _metrics_error(name, e)


@metrics_router.get("/system")
async def metrics_system(request: Request) -> Any:
    return await _section(request, "system")


@metrics_router.get("/database")
async def metrics_database(request: Request) -> Any:
    return await _section(request, "database")


@metrics_router.get("/business")
async def metrics_business(request: Request) -> Any:
    return await _section(request, "business")


@metrics_router.get("/performance")
async def metrics_performance(request: Request) -> Any:
    return await _section(request, "performance")


@metrics_router.get("/traces", summary="Recent traces of this service from Jaeger")
async def metrics_traces(request: Request) -> Any:
    try:
        client: TraceQueryClient = request.app.state.trace_client
        return _metrics_ok(await client.recent_traces())
    except Exception as e:
        return _metrics_error("traces", e)


@metrics_router.get("/alerts")
async def metrics_alerts(request: Request) -> Any:
    try:
        evaluator: AlertEvaluator = request.app.state.alert_evaluator
        alerts = await evaluator.evaluate()
        return _metrics_ok([alert.to_dict() for alert in alerts])
    except Exception as e:
        return _metrics_error("alerts", e)
