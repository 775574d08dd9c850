"""Pydantic models for Shopify order payloads and local order records."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ShopifyCustomerSchema(BaseModel):
    """Customer block of a Shopify order."""

    model_config = ConfigDict(extra="allow")

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None


class ShopifyAddressSchema(BaseModel):
    """Shipping or billing address of a Shopify order."""

    model_config = ConfigDict(extra="allow")

    name: Optional[str] = None
    address1: Optional[str] = None
    address2: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = None
    zip: Optional[str] = None
    country: Optional[str] = None
    phone: Optional[str] = None


class ShopifyLineItemSchema(BaseModel):
    """Line item from a Shopify order."""

    model_config = ConfigDict(extra="allow")

    id: Optional[int] = None
    name: Optional[str] = None
    title: Optional[str] = None
    quantity: Optional[int] = None
    price: Optional[float] = None
    sku: Optional[str] = None
    variant_title: Optional[str] = None


class ShopifyOrderPayload(BaseModel):
    """Order as delivered by the orders/create webhook or the orders.json API."""

    model_config = ConfigDict(extra="allow")

    id: int
    name: Optional[str] = None
    order_number: Optional[int] = None
    email: Optional[str] = None
    contact_email: Optional[str] = None
    phone: Optional[str] = None
    total_price: Optional[float] = None
    currency: Optional[str] = None
    financial_status: Optional[str] = None
    fulfillment_status: Optional[str] = None
    gateway: Optional[str] = None
    customer: Optional[ShopifyCustomerSchema] = None
    shipping_address: Optional[ShopifyAddressSchema] = None
    billing_address: Optional[ShopifyAddressSchema] = None
    line_items: List[ShopifyLineItemSchema] = Field(default_factory=list)


class LineItemCreate(BaseModel):
    """Data for creating a LineItem record."""

    name: str
    quantity: int = 1
    price: float = 0.0
    sku: Optional[str] = None
    variant: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class OrderCreate(BaseModel):
    """Normalized order ready to be upserted."""

    shopify_order_id: str
    order_number: str
    shop_domain: Optional[str] = None
    customer_name: str
    customer_phone: str = ""
    customer_email: Optional[str] = None
    total_value: float = 0.0
    currency: str = "COP"
    financial_status: Optional[str] = None
    fulfillment_status: Optional[str] = None
    payment_gateway: Optional[str] = None
    address: Optional[str] = None
    items: List[LineItemCreate] = Field(default_factory=list)


class TimelineEntry(BaseModel):
    """One audit log entry."""

    action: str
    timestamp: str
    details: Optional[str] = None


class OrderRead(BaseModel):
    """Order as returned by the operator API."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    shopify_order_id: str
    order_number: str
    shop_domain: Optional[str] = None
    customer_name: str
    customer_phone: str
    customer_email: Optional[str] = None
    total_value: float
    currency: str
    address: Optional[str] = None
    status: str
    message_sent_at: Optional[datetime] = None
    first_reminder_sent_at: Optional[datetime] = None
    second_reminder_sent_at: Optional[datetime] = None
    auto_cancelled_at: Optional[datetime] = None
    response_received_at: Optional[datetime] = None
    timeline: List[Dict[str, Any]] = Field(default_factory=list)
    items: List[LineItemCreate] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
