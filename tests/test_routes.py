"""
Tests for the HTTP API.

Tests cover:
- Shopify webhook signature check (401) and ingestion (200)
- Invalid payloads (400)
- Manual send, status and gateway events
- Sync endpoint validation
- API key protection of operator endpoints
"""

import base64
import hashlib
import hmac
import json

import httpx
import pytest_asyncio

from cod_confirm.config.constants import STATUS_AWAITING_RESPONSE, STATUS_CONFIRMED
from cod_confirm.core.delay import NoDelay
from cod_confirm.db import OrderRepository, utcnow
from cod_confirm.server.app import create_app
from cod_confirm.server.context import AppContext

from conftest import TEST_API_KEY, TEST_SHOP_DOMAIN, TEST_WEBHOOK_SECRET


def compute_signature(body: str, secret: str) -> str:
    """Compute base64 HMAC-SHA256 signature for request body."""
    digest = hmac.new(secret.encode("utf-8"), body.encode("utf-8"), hashlib.sha256).digest()
    return base64.b64encode(digest).decode("utf-8")


ORDER_BODY = json.dumps(
    {
        "id": 820982911946154508,
        "name": "#1042",
        "order_number": 1042,
        "email": "ana@example.com",
        "total_price": "150000.00",
        "currency": "COP",
        "customer": {"first_name": "Ana", "last_name": "Gómez", "phone": "3001234567"},
        "shipping_address": {"address1": "Calle 10 #5-20", "city": "Bogotá"},
        "line_items": [{"name": "Crema Facial", "quantity": 2, "price": "75000.00"}],
    }
)


@pytest_asyncio.fixture
async def app_context(test_settings, engine, messaging, shopify_api):
    context = AppContext.build(
        test_settings,
        engine=engine,
        messaging=messaging,
        delay=NoDelay(),
        shopify_transport=shopify_api.transport,
        with_scheduler=False,
    )
    await context.initialize()
    yield context
    await context.tasks.drain()


@pytest_asyncio.fixture
async def client(app_context):
    app = create_app(context=app_context)
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as test_client:
        yield test_client


def webhook_headers(body: str, secret: str = TEST_WEBHOOK_SECRET) -> dict:
    return {
        "Content-Type": "application/json",
        "X-Shopify-Hmac-Sha256": compute_signature(body, secret),
        "X-Shopify-Shop-Domain": TEST_SHOP_DOMAIN,
    }


class TestShopifyWebhook:
    """POST /api/webhooks/shopify"""

    async def test_valid_signature(self, client, messaging):
        response = await client.post("/api/webhooks/shopify", content=ORDER_BODY, headers=webhook_headers(ORDER_BODY))

        assert response.status_code == 200
        assert response.text == "OK"
        assert len(messaging.sent) == 1
        assert messaging.sent[0][0] == "573001234567@c.us"

    async def test_orders_create_path(self, client):
        response = await client.post(
            "/api/webhooks/shopify/orders/create",
            content=ORDER_BODY,
            headers=webhook_headers(ORDER_BODY),
        )

        assert response.status_code == 200

    async def test_invalid_signature(self, client, app_context, messaging):
        response = await client.post(
            "/api/webhooks/shopify",
            content=ORDER_BODY,
            headers=webhook_headers(ORDER_BODY, secret="wrong-secret"),
        )

        assert response.status_code == 401
        assert messaging.sent == []
        async with app_context.session_factory() as session:
            assert await OrderRepository(session).get_by_external_id("gid://shopify/Order/820982911946154508") is None

    async def test_missing_signature(self, client):
        response = await client.post(
            "/api/webhooks/shopify",
            content=ORDER_BODY,
            headers={"Content-Type": "application/json", "X-Shopify-Shop-Domain": TEST_SHOP_DOMAIN},
        )

        assert response.status_code == 401

    async def test_non_ascii_signature(self, client, messaging):
        headers = webhook_headers(ORDER_BODY)
        headers["X-Shopify-Hmac-Sha256"] = b"\xe9forged=="

        response = await client.post("/api/webhooks/shopify", content=ORDER_BODY, headers=headers)

        assert response.status_code == 401
        assert messaging.sent == []

    async def test_unknown_shop(self, client):
        headers = webhook_headers(ORDER_BODY)
        headers["X-Shopify-Shop-Domain"] = "other-shop.myshopify.com"

        response = await client.post("/api/webhooks/shopify", content=ORDER_BODY, headers=headers)

        assert response.status_code == 401

    async def test_invalid_json(self, client):
        body = "{not json"
        response = await client.post("/api/webhooks/shopify", content=body, headers=webhook_headers(body))

        assert response.status_code == 400

    async def test_duplicate_delivery_single_message(self, client, messaging):
        for _ in range(2):
            response = await client.post("/api/webhooks/shopify", content=ORDER_BODY, headers=webhook_headers(ORDER_BODY))
            assert response.status_code == 200

        assert len(messaging.sent) == 1


class TestWhatsAppEndpoints:
    """Status, manual send and gateway events."""

    async def test_status(self, client, messaging):
        messaging.set_ready(True, "Connected")

        response = await client.get("/api/whatsapp/status")

        assert response.json() == {"connected": True, "message": "Connected"}

    async def test_manual_send(self, client, messaging, order_factory):
        order = await order_factory(phone="3001234567")

        response = await client.post("/api/whatsapp/send-confirmation", json={"orderId": order.id})

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert len(messaging.sent) == 1

    async def test_manual_send_unknown_order(self, client):
        response = await client.post("/api/whatsapp/send-confirmation", json={"orderId": 404})

        assert response.status_code == 404

    async def test_manual_send_missing_order_id(self, client):
        response = await client.post("/api/whatsapp/send-confirmation", json={})

        assert response.status_code == 400

    async def test_manual_send_not_ready(self, client, messaging, order_factory):
        messaging.set_ready(False)
        order = await order_factory(phone="3001234567")

        response = await client.post("/api/whatsapp/send-confirmation", json={"orderId": order.id})

        assert response.status_code == 500
        assert response.json()["success"] is False

    async def test_ready_and_disconnected_events(self, client, messaging):
        await client.post("/api/whatsapp/events", json={"type": "disconnected", "reason": "LOGOUT"})
        assert not messaging.is_ready

        await client.post("/api/whatsapp/events", json={"type": "ready"})
        assert messaging.is_ready

    async def test_message_event_confirms_order(self, client, app_context, messaging, order_factory, load_order):
        order = await order_factory(phone="3001234567", status=STATUS_AWAITING_RESPONSE, message_sent_at=utcnow())

        response = await client.post(
            "/api/whatsapp/events",
            json={"type": "message", "message": {"from": "573001234567@c.us", "to": "573000000000@c.us", "body": "1"}},
        )
        await app_context.tasks.drain()

        assert response.status_code == 200
        assert (await load_order(order.id)).status == STATUS_CONFIRMED


class TestSyncEndpoint:
    """POST /api/shopify/sync-orders"""

    async def test_missing_dates(self, client):
        response = await client.post("/api/shopify/sync-orders", json={"startDate": "2024-01-01"})

        assert response.status_code == 400

    async def test_sync(self, client, shopify_api, messaging):
        shopify_api.orders = [{"id": 1, "name": "#1001", "total_price": "10.00", "line_items": []}]

        response = await client.post(
            "/api/shopify/sync-orders",
            json={"startDate": "2024-01-01", "endDate": "2024-01-31"},
        )

        assert response.status_code == 200
        assert response.json() == {"success": True, "summary": {"total": 1, "new": 1, "updated": 0, "errors": 0}}
        assert messaging.sent == []

    async def test_shopify_failure(self, client, shopify_api):
        shopify_api.fail = True

        response = await client.post(
            "/api/shopify/sync-orders",
            json={"startDate": "2024-01-01", "endDate": "2024-01-31"},
        )

        assert response.status_code == 500


class TestOperatorEndpoints:
    """API key protected template and order access."""

    async def test_templates_require_api_key(self, client):
        response = await client.get("/api/templates", headers={"X-API-Key": "wrong"})

        assert response.status_code == 401

    async def test_list_templates(self, client):
        response = await client.get("/api/templates", headers={"X-API-Key": TEST_API_KEY})

        assert response.status_code == 200
        assert {template["id"] for template in response.json()} >= {"confirmation", "auto_cancelled"}

    async def test_update_template(self, client):
        response = await client.put(
            "/api/templates/confirmed",
            json={"content": "¡Gracias {{nome_cliente}}!"},
            headers={"X-API-Key": TEST_API_KEY},
        )

        assert response.status_code == 200
        assert response.json()["content"] == "¡Gracias {{nome_cliente}}!"

    async def test_update_unknown_template(self, client):
        response = await client.put(
            "/api/templates/promo",
            json={"content": "x"},
            headers={"X-API-Key": TEST_API_KEY},
        )

        assert response.status_code == 404

    async def test_get_order(self, client, order_factory):
        order = await order_factory()

        response = await client.get(f"/api/orders/{order.id}", headers={"X-API-Key": TEST_API_KEY})

        assert response.status_code == 200
        body = response.json()
        assert body["order_number"] == order.order_number
        assert body["items"][0]["name"] == "Crema Facial"
        assert body["timeline"][0]["action"] == "Pedido criado"


class TestHealth:

    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
