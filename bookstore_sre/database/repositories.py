"""Async repositories over the products and orders tables."""
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Order, Product


class ProductRepository:
    """Data access for the catalogue."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def find_all(self) -> Sequence[Product]:
        result = await self.session.execute(select(Product).order_by(Product.id))
        return result.scalars().all()

    async def find_by_id(self, product_id: int) -> Optional[Product]:
        return await self.session.get(Product, product_id)

    async def create(self, data: Dict[str, Any]) -> Product:
        product = Product(**data)
        self.session.add(product)
        await self.session.flush()
        await self.session.refresh(product)
        return product

    async def update(self, product_id: int, data: Dict[str, Any]) -> Optional[Product]:
        product = await self.find_by_id(product_id)
        if product is None:
            return None

        for key, value in data.items():
            setattr(product, key, value)
        await self.session.flush()
        await self.session.refresh(product)
        return product

    async def delete(self, product_id: int) -> bool:
        result = await self.session.execute(delete(Product).where(Product.id == product_id))
        return result.rowcount > 0


class OrderRepository:
    """Data access for the order book. Listings are newest first."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def find_all(self) -> Sequence[Order]:
        result = await self.session.execute(
            select(Order).order_by(Order.created_at.desc(), Order.id.desc())
        )
        return result.scalars().all()

    async def find_by_id(self, order_id: int) -> Optional[Order]:
        return await self.session.get(Order, order_id)

    async def create(self, data: Dict[str, Any]) -> Order:
        order = Order(**data)
        self.session.add(order)
        await self.session.flush()
        await self.session.refresh(order)
        return order

    async def update(self, order_id: int, data: Dict[str, Any]) -> Optional[Order]:
        order = await self.find_by_id(order_id)
        if order is None:
            return None

        for key, value in data.items():
            setattr(order, key, value)
        await self.session.flush()
        await self.session.refresh(order)
        return order

    async def update_status(self, order_id: int, status: str) -> Optional[Order]:
        return await self.update(order_id, {"status": status})

    async def delete(self, order_id: int) -> bool:
        result = await self.session.execute(delete(Order).where(Order.id == order_id))
        return result.rowcount > 0

    async def paginate(
        self, page: int, limit: int, status: Optional[str] = None
    ) -> Tuple[List[Order], int]:
        """
        One page of orders plus the total number of matching orders.

        Args:
            page: 1-based page number
            limit: Page size
            status: Only orders in this status when given
        """
        query = select(Order)
        count_query = select(func.count()).select_from(Order)
        if status:
            query = query.where(Order.status == status)
            count_query = count_query.where(Order.status == status)

        query = (
            query.order_by(Order.created_at.desc(), Order.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        orders = (await self.session.execute(query)).scalars().all()
        total = (await self.session.execute(count_query)).scalar_one()
        return list(orders), total

    async def search(
        self,
        text: Optional[str] = None,
        status: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> Sequence[Order]:
        """Orders whose customer name or email contains ``text``, filtered by status and date range."""
        query = select(Order).order_by(Order.created_at.desc(), Order.id.desc())
        if text:
            pattern = f"%{text}%"
            query = query.where(
                or_(Order.customer_name.ilike(pattern), Order.customer_email.ilike(pattern))
            )
        if status:
            query = query.where(Order.status == status)
        if start_date is not None:
            query = query.where(Order.created_at >= start_date)
        if end_date is not None:
            query = query.where(Order.created_at <= end_date)

        result = await self.session.execute(query)
        return result.scalars().all()
