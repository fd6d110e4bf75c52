"""Persistence layer: models, engine/session management and repositories."""
from .connection import (
    close_db,
    create_engine,
    create_session_factory,
    get_db,
    init_db,
    instrument_pool,
)
from .models import Base, Order, OrderStatus, Product
from .repositories import OrderRepository, ProductRepository

__all__ = [
    "Base",
    "Order",
    "OrderRepository",
    "OrderStatus",
    "Product",
    "ProductRepository",
    "close_db",
    "create_engine",
    "create_session_factory",
    "get_db",
    "init_db",
    "instrument_pool",
]
