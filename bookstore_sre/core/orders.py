"""Order book use cases, instrumented the same way as the catalogue."""
from typing import Any, Dict, Optional, Sequence

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.models import Order, OrderStatus
from ..database.repositories import OrderRepository
from ..observability.operations import DomainMetric, OperationInstrumentation
from .exceptions import ValidationError, reject_null_fields

logger = structlog.get_logger(__name__)

ENTITY = "orders"
REPOSITORY = "OrderRepository"
REQUIRED_FIELDS = ("customer_name", "customer_email", "items", "total_amount", "status")


def validate_status(status: str) -> str:
    """Return ``status`` if it is a known order status, else raise ValidationError."""
    if status not in OrderStatus.values():
        raise ValidationError(
            f"Invalid status {status!r}; expected one of {', '.join(OrderStatus.values())}"
        )
    return status


def _status_label(order: Optional[Order]) -> Optional[Dict[str, Any]]:
    if order is None:
        return None
    return {"status": order.status}


class OrderUseCase:
    """Orders CRUD and status transitions through the instrumented repository."""

    def __init__(self, session: AsyncSession, operations: OperationInstrumentation) -> None:
        self.repository = OrderRepository(session)
        self.operations = operations

    async def get_all(self) -> Sequence[Order]:
        return await self.operations.instrument(
            "get_all_orders",
            self.repository.find_all,
            entity=ENTITY,
            query="find_all",
            attributes={"operation": "get_all_orders", "repository": REPOSITORY},
            result_attributes=lambda orders: {"orders.count": len(orders)},
        )

    async def get_by_id(self, order_id: int) -> Optional[Order]:
        return await self.operations.instrument(
            "get_order_by_id",
            lambda: self.repository.find_by_id(order_id),
            entity=ENTITY,
            query="find_by_id",
            attributes={
                "operation": "get_order_by_id",
                "repository": REPOSITORY,
                "order.id": order_id,
            },
            result_attributes=lambda order: {
                "order.found": order is not None,
                "order.status": order.status if order else None,
                "order.total_amount": order.total_amount if order else None,
            },
        )

    async def create(self, data: Dict[str, Any]) -> Order:
        """
        Place a new order.

        Orders start as ``pending`` unless a valid status is supplied.

        Raises:
            ValidationError: On an unknown status or a negative total
        """
        data = dict(data)
        data["status"] = validate_status(data.get("status") or OrderStatus.PENDING.value)
        if data.get("total_amount", 0) < 0:
            raise ValidationError("Total amount must not be negative")

        order = await self.operations.instrument(
            "create_order",
            lambda: self.repository.create(data),
            entity=ENTITY,
            query="create",
            attributes={
                "operation": "create_order",
                "repository": REPOSITORY,
                "order.total_amount": data.get("total_amount", 0),
                "order.status": data["status"],
                "order.items_count": len(data.get("items") or []),
            },
            result_attributes=lambda order: {
                "order.id": order.id,
                "order.created_at": order.created_at.isoformat(),
            },
            domain_metric=DomainMetric.ORDERS_CREATED,
            metric_attributes=_status_label,
        )
        logger.info("order_created", order_id=order.id, total_amount=order.total_amount)
        return order

    async def update(self, order_id: int, data: Dict[str, Any]) -> Optional[Order]:
        """Apply a partial update; returns None when the order does not exist."""
        reject_null_fields(data, REQUIRED_FIELDS)
        if data.get("status") is not None:
            validate_status(data["status"])
        if data.get("total_amount") is not None and data["total_amount"] < 0:
            raise ValidationError("Total amount must not be negative")

        order = await self.operations.instrument(
            "update_order",
            lambda: self.repository.update(order_id, data),
            entity=ENTITY,
            query="update",
            attributes={
                "operation": "update_order",
                "repository": REPOSITORY,
                "order.id": order_id,
                "order.fields": ",".join(sorted(data)),
            },
            result_attributes=lambda order: {
                "order.found": order is not None,
                "order.updated_at": order.updated_at.isoformat() if order else None,
            },
            domain_metric=DomainMetric.ORDERS_UPDATED,
            metric_attributes=_status_label,
        )
        if order is not None:
            logger.info("order_updated", order_id=order_id)
        return order

    async def update_status(self, order_id: int, status: str) -> Optional[Order]:
        """Move an order to ``status``; returns None when the order does not exist."""
        validate_status(status)
        previous: Dict[str, str] = {}

        async def change_status() -> Optional[Order]:
            current = await self.repository.find_by_id(order_id)
            if current is None:
                return None
            previous["status"] = current.status
            return await self.repository.update_status(order_id, status)

        order = await self.operations.instrument(
            "update_order_status",
            change_status,
            entity=ENTITY,
            query="update_status",
            attributes={
                "operation": "update_order_status",
                "repository": REPOSITORY,
                "order.id": order_id,
                "order.new_status": status,
            },
            result_attributes=lambda order: {
                "order.found": order is not None,
                "order.old_status": previous.get("status"),
            },
            domain_metric=DomainMetric.ORDERS_STATUS_CHANGED,
            metric_attributes=lambda order: None if order is None else {
                "status": order.status,
                "old_status": previous.get("status"),
                "new_status": status,
            },
        )
        if order is not None:
            logger.info(
                "order_status_changed",
                order_id=order_id,
                old_status=previous.get("status"),
                new_status=status,
            )
        return order

    async def delete(self, order_id: int) -> bool:
        return await self.operations.instrument(
            "delete_order",
            lambda: self.repository.delete(order_id),
            entity=ENTITY,
            query="delete",
            attributes={
                "operation": "delete_order",
                "repository": REPOSITORY,
                "order.id": order_id,
            },
            result_attributes=lambda deleted: {"order.deleted": deleted},
        )
