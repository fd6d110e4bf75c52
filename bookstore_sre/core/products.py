"""
Catalogue use cases.

Every repository call runs inside a span and records its duration; writes
also bump the products counters labelled with the book category.
"""
from typing import Any, Dict, Optional, Sequence

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.models import Product
from ..database.repositories import ProductRepository
from ..observability.operations import DomainMetric, OperationInstrumentation
from .exceptions import ValidationError, reject_null_fields

logger = structlog.get_logger(__name__)

ENTITY = "products"
REPOSITORY = "ProductRepository"
REQUIRED_FIELDS = ("name", "description", "price", "stock", "category")


def _category_label(product: Optional[Product]) -> Optional[Dict[str, Any]]:
    if product is None:
        return None
    return {"category": product.category}


class ProductUseCase:
    """Products CRUD through the instrumented repository."""

    def __init__(self, session: AsyncSession, operations: OperationInstrumentation) -> None:
        self.repository = ProductRepository(session)
        self.operations = operations

    async def get_all(self) -> Sequence[Product]:
        return await self.operations.instrument(
            "get_all_products",
            self.repository.find_all,
            entity=ENTITY,
            query="find_all",
            attributes={"operation": "get_all_products", "repository": REPOSITORY},
            result_attributes=lambda products: {"products.count": len(products)},
        )

    async def get_by_id(self, product_id: int) -> Optional[Product]:
        return await self.operations.instrument(
            "get_product_by_id",
            lambda: self.repository.find_by_id(product_id),
            entity=ENTITY,
            query="find_by_id",
            attributes={
                "operation": "get_product_by_id",
                "repository": REPOSITORY,
                "product.id": product_id,
            },
            result_attributes=lambda product: {
                "product.found": product is not None,
                "product.name": product.name if product else None,
            },
        )

    async def create(self, data: Dict[str, Any]) -> Product:
        """
        Add a book to the catalogue.

        Raises:
            ValidationError: If price or stock is negative
        """
        self._validate(data)
        product = await self.operations.instrument(
            "create_product",
            lambda: self.repository.create(data),
            entity=ENTITY,
            query="create",
            attributes={
                "operation": "create_product",
                "repository": REPOSITORY,
                "product.name": data.get("name", "unknown"),
                "product.price": data.get("price", 0),
            },
            result_attributes=lambda product: {
                "product.id": product.id,
                "product.created_at": product.created_at.isoformat(),
            },
            domain_metric=DomainMetric.PRODUCTS_CREATED,
            metric_attributes=_category_label,
        )
        logger.info("product_created", product_id=product.id, category=product.category)
        return product

    async def update(self, product_id: int, data: Dict[str, Any]) -> Optional[Product]:
        """Apply a partial update; returns None when the product does not exist."""
        reject_null_fields(data, REQUIRED_FIELDS)
        self._validate(data)
        product = await self.operations.instrument(
            "update_product",
            lambda: self.repository.update(product_id, data),
            entity=ENTITY,
            query="update",
            attributes={
                "operation": "update_product",
                "repository": REPOSITORY,
                "product.id": product_id,
                "product.fields": ",".join(sorted(data)),
            },
            result_attributes=lambda product: {"product.found": product is not None},
            domain_metric=DomainMetric.PRODUCTS_UPDATED,
            metric_attributes=_category_label,
        )
        if product is not None:
            logger.info("product_updated", product_id=product_id)
        return product

    async def delete(self, product_id: int) -> bool:
        deleted = await self.operations.instrument(
            "delete_product",
            lambda: self.repository.delete(product_id),
            entity=ENTITY,
            query="delete",
            attributes={
                "operation": "delete_product",
                "repository": REPOSITORY,
                "product.id": product_id,
            },
            result_attributes=lambda deleted: {"product.deleted": deleted},
            domain_metric=DomainMetric.PRODUCTS_DELETED,
            metric_attributes=lambda deleted: {} if deleted else None,
        )
        if deleted:
            logger.info("product_deleted", product_id=product_id)
        return deleted

    @staticmethod
    def _validate(data: Dict[str, Any]) -> None:
        if data.get("price") is not None and data["price"] < 0:
            raise ValidationError("Price must not be negative")
        if data.get("stock") is not None and data["stock"] < 0:
            raise ValidationError("Stock must not be negative")
