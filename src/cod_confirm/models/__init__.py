"""Pydantic models."""

from cod_confirm.models.message import Contact, GatewayEvent, InboundMessage
from cod_confirm.models.order import LineItemCreate, OrderCreate, ShopifyOrderPayload
from cod_confirm.models.sync import SyncRequest, SyncSummary

__all__ = [
    "Contact",
    "GatewayEvent",
    "InboundMessage",
    "LineItemCreate",
    "OrderCreate",
    "ShopifyOrderPayload",
    "SyncRequest",
    "SyncSummary",
]
