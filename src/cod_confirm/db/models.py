"""SQLAlchemy models for orders, message templates and Shopify credentials."""

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


def utcnow() -> datetime:
    """Naive UTC timestamp, the representation stored in every DateTime column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Order(Base):
    """
    A cash-on-delivery order awaiting customer confirmation.

    Identified externally by shopify_order_id. Status moves
    pending -> awaiting_response -> confirmed | cancelled, or failed when the
    customer number is not on WhatsApp. Timing markers are written once.
    """

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Identity
    shopify_order_id: Mapped[str] = mapped_column(String(100), unique=True, index=True, nullable=False)
    order_number: Mapped[str] = mapped_column(String(50), index=True, nullable=False)
    shop_domain: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Customer
    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_phone: Mapped[str] = mapped_column(String(50), default="", nullable=False)
    customer_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Commercial
    total_value: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    currency: Mapped[str] = mapped_column(String(10), default="COP", nullable=False)
    financial_status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    fulfillment_status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    payment_gateway: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Serialized delivery address (JSON string)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(String(30), default="pending", index=True, nullable=False)

    # Timing markers
    message_sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    first_reminder_sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    second_reminder_sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    auto_cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    response_received_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Append-only audit log of {action, timestamp, details}
    timeline: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, default=list, nullable=False)
    # Bumped on every append; appends are compare-and-set on this value
    timeline_version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    items: Mapped[List["LineItem"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="LineItem.id",
    )

    @property
    def address_data(self) -> Dict[str, Any]:
        """Deserialized address, empty when missing or malformed."""
        if not self.address:
            return {}
        try:
            data = json.loads(self.address)
        except (TypeError, ValueError):
            return {}
        return data if isinstance(data, dict) else {}

    @property
    def legacy_order_id(self) -> str:
        """Numeric Shopify id ("gid://shopify/Order/123" -> "123")."""
        return self.shopify_order_id.rsplit("/", 1)[-1]

    def __repr__(self) -> str:
        return f"<Order id={self.id} number={self.order_number} status={self.status}>"


class LineItem(Base):
    """One product line of an order. Replaced wholesale on every re-sync."""

    __tablename__ = "order_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(
        ForeignKey("orders.id", ondelete="CASCADE"), index=True, nullable=False
    )

    name: Mapped[str] = mapped_column(String(500), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    price: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    sku: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    variant: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    order: Mapped[Order] = relationship(back_populates="items")


class MessageTemplate(Base):
    """Editable WhatsApp message text keyed by a fixed template id."""

    __tablename__ = "message_templates"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    variables: Mapped[List[str]] = mapped_column(JSON, default=list, nullable=False)

    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class ShopifyConfig(Base):
    """Storefront credentials for one shop."""

    __tablename__ = "shopify_configs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    shop_url: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    access_token: Mapped[str] = mapped_column(String(255), nullable=False)
    webhook_secret: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
