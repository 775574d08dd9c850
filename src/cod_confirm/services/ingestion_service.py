"""
Shopify order ingestion.

Maps webhook and Admin API order payloads onto the local order model, upserts
them by external id and kicks off the confirmation request for new orders.
"""

import json
from typing import Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cod_confirm.config.constants import GUEST_CUSTOMER_NAME, SYNC_CUSTOMER_NAME, TIMELINE_CREATED
from cod_confirm.config.settings import settings
from cod_confirm.core.logger import setup_logger
from cod_confirm.core.monitoring import capture_exception, set_order_context
from cod_confirm.db.models import Order
from cod_confirm.db.repository import OrderRepository, ShopifyConfigRepository
from cod_confirm.integrations.shopify import to_order_gid
from cod_confirm.models.order import LineItemCreate, OrderCreate, ShopifyOrderPayload
from cod_confirm.services.confirmation_service import ConfirmationService

logger = setup_logger(__name__)

WEBHOOK_CREATED_DETAILS = "Recebido via Webhook"


def _full_name(first_name: Optional[str], last_name: Optional[str]) -> str:
    return " ".join(part for part in (first_name, last_name) if part)


def map_webhook_order(payload: ShopifyOrderPayload, shop_domain: Optional[str] = None) -> OrderCreate:
    """
    Normalize an orders/create webhook payload.

    Phone is the first of order.phone, customer.phone, billing_address.phone.
    The address is the shipping address, else the billing address, serialized.
    """
    customer = payload.customer
    billing = payload.billing_address
    address = payload.shipping_address or billing

    customer_name = _full_name(customer.first_name, customer.last_name) if customer else ""
    phone = payload.phone or (customer.phone if customer else None) or (billing.phone if billing else None)

    return OrderCreate(
        shopify_order_id=to_order_gid(payload.id),
        order_number=str(payload.order_number if payload.order_number is not None else payload.name or ""),
        shop_domain=shop_domain,
        customer_name=customer_name or GUEST_CUSTOMER_NAME,
        customer_phone=phone or "",
        customer_email=payload.email or payload.contact_email,
        total_value=payload.total_price or 0.0,
        currency=payload.currency or settings.default_currency,
        financial_status=payload.financial_status,
        fulfillment_status=payload.fulfillment_status,
        payment_gateway=payload.gateway,
        address=json.dumps(address.model_dump(exclude_none=True)) if address else None,
        items=[
            LineItemCreate(
                name=item.name or item.title or "Item",
                quantity=item.quantity or 1,
                price=item.price or 0.0,
                sku=item.sku,
                variant=item.variant_title,
            )
            for item in payload.line_items
        ],
    )


def map_synced_order(payload: ShopifyOrderPayload, shop_domain: Optional[str] = None) -> OrderCreate:
    """
    Normalize an order fetched from the Admin API during a historical sync.

    Uses the display name ("#1042") as order number and only the customer
    block and shipping address for contact details.
    """
    customer = payload.customer
    shipping = payload.shipping_address

    customer_name = ""
    if customer:
        customer_name = _full_name(customer.first_name, customer.last_name) if customer.last_name else customer.first_name or ""

    phone = (customer.phone if customer else None) or (shipping.phone if shipping else None)
    order_number = payload.name or (str(payload.order_number) if payload.order_number is not None else "N/A")

    return OrderCreate(
        shopify_order_id=to_order_gid(payload.id),
        order_number=order_number,
        shop_domain=shop_domain,
        customer_name=customer_name or SYNC_CUSTOMER_NAME,
        customer_phone=phone or "",
        customer_email=(customer.email if customer else None) or payload.email,
        total_value=payload.total_price or 0.0,
        currency=payload.currency or settings.default_currency,
        financial_status=payload.financial_status,
        fulfillment_status=payload.fulfillment_status,
        payment_gateway=payload.gateway,
        address=json.dumps(shipping.model_dump(exclude_none=True) if shipping else {}),
        items=[
            LineItemCreate(
                name=item.name or item.title or "Item",
                quantity=item.quantity or 1,
                price=item.price or 0.0,
                sku=item.sku or "",
                variant=item.variant_title or "",
            )
            for item in payload.line_items
        ],
    )


class IngestionService:
    """Persists incoming Shopify orders and requests customer confirmation."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        confirmation: ConfirmationService,
        default_shop_domain: Optional[str] = None,
    ):
        self.session_factory = session_factory
        self.confirmation = confirmation
        self.default_shop_domain = default_shop_domain

    async def get_webhook_secret(self, shop_domain: Optional[str]) -> Optional[str]:
        """Webhook signing secret stored for a shop."""
        async with self.session_factory() as session:
            config = await ShopifyConfigRepository(session).resolve(shop_domain, self.default_shop_domain)

        if config is None or not config.webhook_secret:
            logger.error(f"No webhook secret found for shop: {shop_domain}")
            return None
        return config.webhook_secret

    async def ingest(self, payload: ShopifyOrderPayload, shop_domain: Optional[str] = None) -> Tuple[Order, bool]:
        """
        Upsert a webhook order and send the confirmation request if none was sent yet.

        Database errors propagate to the caller. Messaging problems never do.

        Returns:
            Tuple of (stored order, created flag)
        """
        data = map_webhook_order(payload, shop_domain)
        logger.info(f"Processing order: {payload.name or payload.id}")

        async with self.session_factory() as session:
            order, created = await OrderRepository(session).upsert_order(
                data,
                created_action=TIMELINE_CREATED,
                created_details=WEBHOOK_CREATED_DETAILS,
            )

        set_order_context(order_id=order.id, order_number=order.order_number, source="webhook")
        logger.info(
            f"Order {order.order_number} {'created' if created else 'updated'} with {len(order.items)} items",
            extra={"order_id": order.id, "order_number": order.order_number},
        )

        if order.message_sent_at is None:
            try:
                await self.confirmation.send_initial_confirmation(order.id)
            except Exception as e:
                logger.error(f"Error sending confirmation for order {order.order_number}: {e}", exc_info=True)
                capture_exception(e, {"order_id": order.id, "operation": "ingest"})

        return order, created
