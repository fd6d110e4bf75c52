"""Business layer: instrumented use cases over the repositories."""
from .admin import AdminService
from .exceptions import BookstoreError, NotFoundError, ValidationError, reject_null_fields
from .orders import OrderUseCase
from .products import ProductUseCase

__all__ = [
    "AdminService",
    "BookstoreError",
    "NotFoundError",
    "OrderUseCase",
    "ProductUseCase",
    "ValidationError",
    "reject_null_fields",
]
