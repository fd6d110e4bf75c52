"""
Pydantic request schemas for the API.
"""
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from ..database.models import OrderStatus


class ProductCreate(BaseModel):
    """Request schema for adding a book to the catalogue."""

    name: str = Field(..., min_length=1, max_length=255, description="Book title")
    description: str = Field(default="", description="Book description")
    price: float = Field(..., ge=0, description="Unit price")
    stock: int = Field(default=0, ge=0, description="Units available")
    image: Optional[str] = Field(default=None, max_length=255)
    category: str = Field(..., min_length=1, max_length=100)
    author: Optional[str] = Field(default=None, max_length=255)
    isbn: Optional[str] = Field(default=None, max_length=20)
    pages: Optional[int] = Field(default=None, gt=0)
    language: Optional[str] = Field(default=None, max_length=50)
    publisher: Optional[str] = Field(default=None, max_length=255)
    publication_year: Optional[int] = Field(default=None, ge=0)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "name": "Site Reliability Engineering",
                    "description": "How Google runs production systems.",
                    "price": 189.9,
                    "stock": 25,
                    "category": "technology",
                    "author": "Betsy Beyer",
                    "isbn": "9781491929124",
                }
            ]
        }
    }


class ProductUpdate(BaseModel):
    """Partial update of a product; omitted fields are left unchanged."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0)
    stock: Optional[int] = Field(default=None, ge=0)
    image: Optional[str] = Field(default=None, max_length=255)
    category: Optional[str] = Field(default=None, min_length=1, max_length=100)
    author: Optional[str] = Field(default=None, max_length=255)
    isbn: Optional[str] = Field(default=None, max_length=20)
    pages: Optional[int] = Field(default=None, gt=0)
    language: Optional[str] = Field(default=None, max_length=50)
    publisher: Optional[str] = Field(default=None, max_length=255)
    publication_year: Optional[int] = Field(default=None, ge=0)


class OrderItem(BaseModel):
    product_id: int = Field(..., gt=0)
    quantity: int = Field(..., gt=0)
    price: float = Field(..., ge=0)
    name: Optional[str] = None


class OrderCreate(BaseModel):
    """Request schema for placing an order."""

    customer_name: str = Field(..., min_length=1, max_length=255)
    customer_email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    items: List[OrderItem] = Field(default_factory=list)
    total_amount: float = Field(..., ge=0)
    status: Optional[str] = Field(default=None, description="Initial status (default pending)")
    shipping_address: Optional[str] = Field(default=None, max_length=255)
    tracking_number: Optional[str] = Field(default=None, max_length=20)

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in OrderStatus.values():
            raise ValueError(f"Status must be one of: {OrderStatus.values()}")
        return v


class OrderUpdate(BaseModel):
    """Partial update of an order; omitted fields are left unchanged."""

    customer_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    customer_email: Optional[str] = Field(
        default=None, min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$"
    )
    items: Optional[List[OrderItem]] = None
    total_amount: Optional[float] = Field(default=None, ge=0)
    status: Optional[str] = None
    shipping_address: Optional[str] = Field(default=None, max_length=255)
    tracking_number: Optional[str] = Field(default=None, max_length=20)


class OrderStatusUpdate(BaseModel):
    """Request schema for a status transition."""

    status: str = Field(..., description="pending, processing, shipped, delivered or cancelled")
