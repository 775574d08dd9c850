"""Database module."""

from .base import Base, get_engine, get_session_factory, init_db
from .models import LineItem, MessageTemplate, Order, ShopifyConfig, utcnow
from .repository import OrderRepository, ShopifyConfigRepository, TemplateRepository

__all__ = [
    "Base",
    "get_engine",
    "get_session_factory",
    "init_db",
    "LineItem",
    "MessageTemplate",
    "Order",
    "ShopifyConfig",
    "utcnow",
    "OrderRepository",
    "ShopifyConfigRepository",
    "TemplateRepository",
]
