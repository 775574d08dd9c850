"""
Tests for order persistence under concurrency.

Tests cover:
- Concurrent timeline appends all land, in one list
- A lost insert race on the external id becomes an update
"""

import asyncio

from sqlalchemy import func, select

from cod_confirm.config.constants import TIMELINE_CREATED
from cod_confirm.db import Order, OrderRepository
from cod_confirm.models.order import LineItemCreate, OrderCreate


def order_data(**overrides) -> OrderCreate:
    data = {
        "shopify_order_id": "gid://shopify/Order/9001",
        "order_number": "9001",
        "customer_name": "Ana Gómez",
        "customer_phone": "3001234567",
        "total_value": 150000,
        "currency": "COP",
        "items": [LineItemCreate(name="Crema Facial", quantity=2, price=75000)],
    }
    data.update(overrides)
    return OrderCreate(**data)


class TestAppendTimeline:
    """Append-only audit log."""

    async def test_concurrent_appends_keep_every_entry(self, session_factory, order_factory, load_order):
        order = await order_factory()

        async def append(action):
            async with session_factory() as session:
                return await OrderRepository(session).append_timeline(order.id, action)

        results = await asyncio.gather(*(append(action) for action in ("A", "B", "C")))

        assert results == [True, True, True]
        stored = await load_order(order.id)
        actions = [entry["action"] for entry in stored.timeline]
        assert actions[0] == TIMELINE_CREATED
        assert sorted(actions[1:]) == ["A", "B", "C"]
        assert stored.timeline_version == 3

    async def test_unknown_order(self, session_factory):
        async with session_factory() as session:
            assert await OrderRepository(session).append_timeline(404, "A") is False


class TestUpsertOrder:
    """Insert-or-update by external id."""

    async def test_lost_insert_race_updates_existing_row(self, session_factory, monkeypatch, load_order):
        async with session_factory() as session:
            first, created = await OrderRepository(session).upsert_order(order_data(), created_action=TIMELINE_CREATED)
        assert created

        async with session_factory() as session:
            repo = OrderRepository(session)
            lookup = repo.get_by_external_id
            lookups = []

            # The first lookup runs before the other delivery committed its row
            async def stale_lookup(shopify_order_id):
                lookups.append(shopify_order_id)
                if len(lookups) == 1:
                    return None
                return await lookup(shopify_order_id)

            monkeypatch.setattr(repo, "get_by_external_id", stale_lookup)
            second, created = await repo.upsert_order(
                order_data(total_value=90000, items=[LineItemCreate(name="Serum", quantity=1, price=90000)]),
                created_action=TIMELINE_CREATED,
            )

        assert not created
        assert second.id == first.id
        async with session_factory() as session:
            assert (await session.execute(select(func.count()).select_from(Order))).scalar_one() == 1

        stored = await load_order(first.id)
        assert stored.total_value == 90000.0
        assert [item.name for item in stored.items] == ["Serum"]
        assert [entry["action"] for entry in stored.timeline] == [TIMELINE_CREATED]
