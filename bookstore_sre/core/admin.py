"""Back-office order management."""
import math
from datetime import datetime
from typing import Any, Dict, Optional, Sequence

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.models import Order
from ..database.repositories import OrderRepository
from ..observability.operations import OperationInstrumentation
from .exceptions import ValidationError
from .orders import OrderUseCase, validate_status

logger = structlog.get_logger(__name__)

MAX_PAGE_SIZE = 100


class AdminService:
    """
    Paginated listing, lookup, status changes and search over orders.

    Status changes go through ``OrderUseCase`` so they are counted like any
    other status transition.
    """

    def __init__(self, session: AsyncSession, operations: OperationInstrumentation) -> None:
        self.repository = OrderRepository(session)
        self.orders = OrderUseCase(session, operations)
        self.operations = operations

    async def list_orders(
        self, page: int = 1, limit: int = 10, status: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        One page of orders, newest first.

        Returns:
            {"orders": [...], "pagination": {page, limit, total, total_pages}}
        """
        if page < 1:
            raise ValidationError("Page must be at least 1")
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationError(f"Limit must be between 1 and {MAX_PAGE_SIZE}")
        if status:
            validate_status(status)

        orders, total = await self.operations.instrument(
            "admin_list_orders",
            lambda: self.repository.paginate(page, limit, status),
            entity="orders",
            query="paginate",
            attributes={"operation": "admin_list_orders", "page": page, "limit": limit, "status": status},
            result_attributes=lambda result: {"orders.total": result[1]},
        )
        return {
            "orders": [order.to_dict() for order in orders],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "total_pages": math.ceil(total / limit),
            },
        }

    async def get_order(self, order_id: int) -> Optional[Order]:
        return await self.orders.get_by_id(order_id)

    async def update_order_status(self, order_id: int, status: str) -> Optional[Order]:
        return await self.orders.update_status(order_id, status)

    async def search_orders(
        self,
        text: Optional[str] = None,
        status: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> Sequence[Order]:
        """Orders matching a customer name/email substring, status and creation date range."""
        if status:
            validate_status(status)
        if start_date and end_date and start_date > end_date:
            raise ValidationError("start_date must not be after end_date")

        return await self.operations.instrument(
            "admin_search_orders",
            lambda: self.repository.search(text, status, start_date, end_date),
            entity="orders",
            query="search",
            attributes={
                "operation": "admin_search_orders",
                "search.text": text,
                "search.status": status,
            },
            result_attributes=lambda orders: {"orders.count": len(orders)},
        )
