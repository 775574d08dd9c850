"""
Tests for Shopify order ingestion.

Tests cover:
- Webhook and sync payload mapping
- Upsert by external id with full line item replacement
- Re-ingestion never resets the confirmation state
- Messaging failures never fail ingestion
"""

import json

from sqlalchemy import func, select

from cod_confirm.config.constants import (
    STATUS_AWAITING_RESPONSE,
    STATUS_CONFIRMED,
    STATUS_PENDING,
    TIMELINE_CREATED,
)
from cod_confirm.config.settings import settings
from cod_confirm.core.tasks import TaskTracker
from cod_confirm.db import LineItem, Order
from cod_confirm.models.order import ShopifyOrderPayload
from cod_confirm.services.confirmation_service import ConfirmationService
from cod_confirm.services.ingestion_service import IngestionService, map_synced_order, map_webhook_order


def webhook_payload(**overrides) -> ShopifyOrderPayload:
    data = {
        "id": 5551234,
        "name": "#1042",
        "order_number": 1042,
        "email": None,
        "contact_email": "ana@example.com",
        "phone": None,
        "total_price": "150000.00",
        "currency": "COP",
        "financial_status": "pending",
        "gateway": "Cash on Delivery (COD)",
        "customer": {"first_name": "Ana", "last_name": "Gómez", "phone": "+57 300 123 4567"},
        "shipping_address": {"address1": "Calle 10 #5-20", "city": "Bogotá", "phone": "3110000000"},
        "billing_address": {"address1": "Carrera 7 #1-1", "phone": "3220000000"},
        "line_items": [
            {"id": 1, "name": "Crema Facial", "quantity": 2, "price": "75000.00", "sku": "CR-1", "variant_title": "50ml"},
        ],
    }
    data.update(overrides)
    return ShopifyOrderPayload.model_validate(data)


async def count(session_factory, model) -> int:
    async with session_factory() as session:
        return (await session.execute(select(func.count()).select_from(model))).scalar_one()


class TestMapWebhookOrder:
    """Webhook payload normalization."""

    def test_maps_core_fields(self):
        data = map_webhook_order(webhook_payload(), "test-shop.myshopify.com")

        assert data.shopify_order_id == "gid://shopify/Order/5551234"
        assert data.order_number == "1042"
        assert data.customer_name == "Ana Gómez"
        assert data.customer_email == "ana@example.com"
        assert data.total_value == 150000.0
        assert data.payment_gateway == "Cash on Delivery (COD)"
        assert json.loads(data.address)["address1"] == "Calle 10 #5-20"
        assert data.items[0].name == "Crema Facial"
        assert data.items[0].variant == "50ml"

    def test_phone_precedence(self):
        assert map_webhook_order(webhook_payload(phone="3009998888")).customer_phone == "3009998888"
        assert map_webhook_order(webhook_payload()).customer_phone == "+57 300 123 4567"
        assert map_webhook_order(webhook_payload(customer=None)).customer_phone == "3220000000"

    def test_guest_without_customer(self):
        assert map_webhook_order(webhook_payload(customer=None)).customer_name == "Guest"

    def test_billing_address_fallback(self):
        data = map_webhook_order(webhook_payload(shipping_address=None))
        assert json.loads(data.address)["address1"] == "Carrera 7 #1-1"


class TestMapSyncedOrder:
    """Admin API payload normalization."""

    def test_uses_display_name_and_defaults(self):
        payload = webhook_payload(currency=None, customer={"first_name": "Ana"}, shipping_address=None)
        data = map_synced_order(payload)

        assert data.order_number == "#1042"
        assert data.customer_name == "Ana"
        assert data.currency == "COP"
        assert data.customer_phone == ""
        assert json.loads(data.address) == {}

    def test_customer_fallback_name(self):
        assert map_synced_order(webhook_payload(customer=None)).customer_name == "Cliente"

    def test_currency_defaults_to_configured_currency(self, monkeypatch):
        monkeypatch.setattr(settings, "default_currency", "MXN")

        assert map_synced_order(webhook_payload(currency=None)).currency == "MXN"


class TestIngest:
    """Upsert and confirmation trigger."""

    def make_service(self, session_factory, messaging, delay, reconciler):
        confirmation = ConfirmationService(session_factory, messaging, delay, reconciler, tasks=TaskTracker())
        return IngestionService(session_factory, confirmation)

    async def test_new_order_gets_confirmation(self, session_factory, messaging, delay, reconciler):
        service = self.make_service(session_factory, messaging, delay, reconciler)

        order, created = await service.ingest(webhook_payload(), "test-shop.myshopify.com")

        assert created
        assert len(messaging.sent) == 1
        async with session_factory() as session:
            stored = await session.get(Order, order.id)
        assert stored.status == STATUS_AWAITING_RESPONSE
        assert stored.timeline[0]["action"] == TIMELINE_CREATED
        assert stored.timeline[0]["details"] == "Recebido via Webhook"

    async def test_reingest_updates_in_place_and_replaces_items(self, session_factory, messaging, delay, reconciler, load_order):
        service = self.make_service(session_factory, messaging, delay, reconciler)
        first, _ = await service.ingest(webhook_payload())

        second_items = [
            {"name": "Serum", "quantity": 1, "price": "40000"},
            {"name": "Jabón", "quantity": 3, "price": "10000"},
        ]
        second, created = await service.ingest(webhook_payload(line_items=second_items, total_price="70000"))

        assert not created
        assert second.id == first.id
        assert await count(session_factory, Order) == 1
        assert await count(session_factory, LineItem) == 2

        stored = await load_order(first.id)
        assert [item.name for item in stored.items] == ["Serum", "Jabón"]
        assert stored.total_value == 70000.0
        assert [entry["action"] for entry in stored.timeline].count(TIMELINE_CREATED) == 1
        assert len(messaging.sent) == 1

    async def test_reingest_never_resets_terminal_status(self, session_factory, messaging, delay, reconciler, load_order):
        service = self.make_service(session_factory, messaging, delay, reconciler)
        order, _ = await service.ingest(webhook_payload())
        async with session_factory() as session:
            stored = await session.get(Order, order.id)
            stored.status = STATUS_CONFIRMED
            await session.commit()

        await service.ingest(webhook_payload())

        stored = await load_order(order.id)
        assert stored.status == STATUS_CONFIRMED
        assert stored.message_sent_at is not None
        assert len(messaging.sent) == 1

    async def test_messaging_failure_does_not_fail_ingestion(self, session_factory, messaging, delay, reconciler, load_order):
        messaging.send_fails = True
        service = self.make_service(session_factory, messaging, delay, reconciler)

        order, created = await service.ingest(webhook_payload())

        assert created
        assert (await load_order(order.id)).status == STATUS_PENDING

    async def test_pending_order_retried_on_reingest(self, session_factory, messaging, delay, reconciler):
        messaging.set_ready(False)
        service = self.make_service(session_factory, messaging, delay, reconciler)
        await service.ingest(webhook_payload())
        assert messaging.sent == []

        messaging.set_ready(True)
        await service.ingest(webhook_payload())
        assert len(messaging.sent) == 1
