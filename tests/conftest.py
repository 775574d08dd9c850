"""
Pytest configuration and shared fixtures.

Every test gets a fresh in-memory SQLite database, a fake WhatsApp session
that records outgoing messages, and a mock Shopify Admin API.
"""

import os

# No log files from test runs
os.environ.setdefault("LOG_DIR", "")

import itertools
import json
from typing import Dict, List, Optional, Set, Tuple

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import update

from cod_confirm.config.constants import STATUS_PENDING, TIMELINE_CREATED
from cod_confirm.config.settings import Settings
from cod_confirm.core.delay import NoDelay
from cod_confirm.core.exceptions import MessagingError
from cod_confirm.db import Order, OrderRepository, get_engine, get_session_factory, init_db
from cod_confirm.integrations.whatsapp import MessagingClient
from cod_confirm.models.message import Contact
from cod_confirm.models.order import LineItemCreate, OrderCreate

TEST_SHOP_DOMAIN = "test-shop.myshopify.com"
TEST_WEBHOOK_SECRET = "whsec_test_secret"
TEST_API_KEY = "test-dashboard-key"


class FakeMessagingClient(MessagingClient):
    """In-memory WhatsApp session."""

    def __init__(self, ready: bool = True):
        super().__init__()
        self._ready = ready
        self.sent: List[Tuple[str, str]] = []
        self.unregistered: Set[str] = set()
        self.contacts: Dict[str, str] = {}
        self.lookup_fails = False
        self.send_fails = False

    async def send_message(self, chat_id: str, text: str) -> None:
        if self.send_fails:
            raise MessagingError("send failed")
        self.sent.append((chat_id, text))

    async def get_number_id(self, phone: str) -> Optional[str]:
        if self.lookup_fails:
            raise MessagingError("lookup failed")
        if phone in self.unregistered:
            return None
        return f"{phone}@c.us"

    async def get_contact(self, chat_id: str) -> Contact:
        return Contact(number=self.contacts.get(chat_id), id=chat_id)


class FakeReconciler:
    """Records Shopify write-backs instead of calling the API."""

    def __init__(self):
        self.tagged: List[Tuple[int, str]] = []
        self.cancelled: List[int] = []

    async def update_tag(self, order, tag: str) -> bool:
        self.tagged.append((order.id, tag))
        return True

    async def cancel_order(self, order) -> bool:
        self.cancelled.append(order.id)
        return True


class FakeShopifyAPI:
    """Mock Admin API behind an httpx.MockTransport."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.tags: Dict[str, str] = {}
        self.orders: List[dict] = []
        self.fail = False
        self.transport = httpx.MockTransport(self.handler)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail:
            return httpx.Response(500, json={"errors": "Internal Server Error"})

        path = request.url.path
        if path.endswith("/orders.json"):
            return httpx.Response(200, json={"orders": self.orders})
        if path.endswith("/cancel.json"):
            return httpx.Response(200, json={"order": {}})

        order_id = path.rsplit("/", 1)[-1].removesuffix(".json")
        if request.method == "PUT":
            body = json.loads(request.content)
            self.tags[order_id] = body["order"]["tags"]
            return httpx.Response(200, json={"order": body["order"]})
        return httpx.Response(200, json={"order": {"tags": self.tags.get(order_id, "")}})

    def calls(self, method: str) -> List[httpx.Request]:
        return [request for request in self.requests if request.method == method]


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        database_url="sqlite+aiosqlite:///:memory:",
        shopify_shop_domain=TEST_SHOP_DOMAIN,
        shopify_access_token="shpat_test_token",
        shopify_webhook_secret=TEST_WEBHOOK_SECRET,
        dashboard_api_key=TEST_API_KEY,
        whatsapp_gateway_token=None,
        store_url="https://tienda.example",
        redis_enabled=False,
        glitchtip_dsn=None,
    )


@pytest_asyncio.fixture
async def engine():
    engine = get_engine("sqlite+aiosqlite:///:memory:")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return get_session_factory(engine)


@pytest.fixture
def messaging() -> FakeMessagingClient:
    return FakeMessagingClient()


@pytest.fixture
def reconciler() -> FakeReconciler:
    return FakeReconciler()


@pytest.fixture
def shopify_api() -> FakeShopifyAPI:
    return FakeShopifyAPI()


@pytest.fixture
def delay() -> NoDelay:
    return NoDelay()


@pytest.fixture
def order_factory(session_factory):
    """Create an order, optionally forcing status and timing markers."""
    numbers = itertools.count(1001)

    async def create(
        phone: str = "+57 300 123 4567",
        status: str = STATUS_PENDING,
        items: Optional[List[LineItemCreate]] = None,
        customer_name: str = "Ana Gómez",
        shop_domain: Optional[str] = TEST_SHOP_DOMAIN,
        **fields,
    ) -> Order:
        number = next(numbers)
        data = OrderCreate(
            shopify_order_id=f"gid://shopify/Order/{number}",
            order_number=str(number),
            shop_domain=shop_domain,
            customer_name=customer_name,
            customer_phone=phone,
            total_value=150000,
            currency="COP",
            address=json.dumps({"address1": "Calle 10 #5-20", "city": "Bogotá"}),
            items=items if items is not None else [LineItemCreate(name="Crema Facial", quantity=2, price=75000)],
        )
        async with session_factory() as session:
            repo = OrderRepository(session)
            order, _ = await repo.upsert_order(data, created_action=TIMELINE_CREATED)
            if status != STATUS_PENDING or fields:
                await session.execute(update(Order).where(Order.id == order.id).values(status=status, **fields))
                await session.commit()
            return await repo.get_by_id(order.id)

    return create


@pytest.fixture
def load_order(session_factory):
    """Fresh copy of an order from the database."""

    async def load(order_id: int) -> Order:
        async with session_factory() as session:
            return await OrderRepository(session).get_by_id(order_id)

    return load
