"""Repositories for order, template and Shopify config data access."""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from cod_confirm.config.constants import STATUS_AWAITING_RESPONSE, STATUS_PENDING
from cod_confirm.core.exceptions import TimelineConflict
from cod_confirm.models.order import LineItemCreate, OrderCreate

from .models import LineItem, MessageTemplate, Order, ShopifyConfig, utcnow

# Columns refreshed when an already-known order is ingested again.
# Status, timing markers and timeline are owned by the confirmation flow.
UPSERT_UPDATE_FIELDS = (
    "order_number",
    "shop_domain",
    "customer_name",
    "customer_phone",
    "customer_email",
    "total_value",
    "currency",
    "financial_status",
    "fulfillment_status",
    "payment_gateway",
    "address",
)

TIMELINE_APPEND_ATTEMPTS = 5


def timeline_entry(action: str, details: Optional[str] = None) -> Dict[str, Any]:
    """Build a timeline entry stamped with the current time."""
    return {
        "action": action,
        "timestamp": utcnow().isoformat(),
        "details": details,
    }


class OrderRepository:
    """Data access layer for Order and LineItem models."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with async session."""
        self.session = session

    async def get_by_id(self, order_id: int) -> Optional[Order]:
        """Get an order with its items."""
        query = (
            select(Order)
            .options(selectinload(Order.items))
            .where(Order.id == order_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_by_external_id(self, shopify_order_id: str) -> Optional[Order]:
        query = (
            select(Order)
            .options(selectinload(Order.items))
            .where(Order.shopify_order_id == shopify_order_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def list_by_status(self, status: str) -> List[Order]:
        """Orders in a status, most recently created first."""
        query = (
            select(Order)
            .options(selectinload(Order.items))
            .where(Order.status == status)
            .order_by(Order.created_at.desc(), Order.id.desc())
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def list_awaiting_with_message_sent(self) -> List[Order]:
        """Orders the reminder sweep has to look at."""
        query = (
            select(Order)
            .options(selectinload(Order.items))
            .where(Order.status == STATUS_AWAITING_RESPONSE)
            .where(Order.message_sent_at.is_not(None))
            .order_by(Order.message_sent_at.asc(), Order.id.asc())
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def upsert_order(
        self,
        data: OrderCreate,
        created_action: Optional[str] = None,
        created_details: Optional[str] = None,
    ) -> Tuple[Order, bool]:
        """
        Insert a new order or update the existing one with the same external id.

        Line items are replaced, never merged. A creation timeline entry is
        appended only when the order is inserted.

        Returns:
            Tuple of (order with items loaded, created flag)
        """
        order = await self.get_by_external_id(data.shopify_order_id)
        created = order is None

        if created:
            order = Order(
                shopify_order_id=data.shopify_order_id,
                status=STATUS_PENDING,
                timeline=[timeline_entry(created_action, created_details)] if created_action else [],
            )
            for field in UPSERT_UPDATE_FIELDS:
                setattr(order, field, getattr(data, field))
            self.session.add(order)
            try:
                await self.session.flush()
            except IntegrityError:
                # Same order inserted by a concurrent delivery; update that row instead
                await self.session.rollback()
                order = await self.get_by_external_id(data.shopify_order_id)
                if order is None:
                    raise
                created = False

        if not created:
            for field in UPSERT_UPDATE_FIELDS:
                setattr(order, field, getattr(data, field))
            await self.session.flush()

        order_id = order.id
        await self._replace_items(order_id, data.items)
        await self.session.commit()

        order = await self.get_by_id(order_id)
        return order, created

    async def _replace_items(self, order_id: int, items: Iterable[LineItemCreate]) -> None:
        """Delete all items of the order and insert the given set."""
        await self.session.execute(delete(LineItem).where(LineItem.order_id == order_id))
        self.session.add_all(
            [
                LineItem(
                    order_id=order_id,
                    name=item.name,
                    quantity=item.quantity,
                    price=item.price,
                    sku=item.sku,
                    variant=item.variant,
                )
                for item in items
            ]
        )
        await self.session.flush()
        # Drop the stale collection so the next load sees the new rows
        self.session.expire_all()

    async def transition(
        self,
        order_id: int,
        from_statuses: Iterable[str],
        to_status: str,
        **markers: datetime,
    ) -> bool:
        """
        Move an order to a new status only if it is still in one of from_statuses.

        The check and the write are a single UPDATE, so a concurrent reply or
        sweep that already moved the order makes this a no-op.

        Returns:
            True if the row was updated
        """
        stmt = (
            update(Order)
            .where(Order.id == order_id)
            .where(Order.status.in_(list(from_statuses)))
            .values(status=to_status, updated_at=utcnow(), **markers)
        )
        result = await self.session.execute(stmt)
        await self.session.commit()
        return result.rowcount == 1

    async def stamp(self, order_id: int, marker: str, value: Optional[datetime] = None) -> bool:
        """Set a timing marker if it is still empty."""
        column = getattr(Order, marker)
        stmt = (
            update(Order)
            .where(Order.id == order_id)
            .where(column.is_(None))
            .values({marker: value or utcnow(), "updated_at": utcnow()})
        )
        result = await self.session.execute(stmt)
        await self.session.commit()
        return result.rowcount == 1

    async def append_timeline(self, order_id: int, action: str, details: Optional[str] = None) -> bool:
        """
        Append an entry to the order's timeline.

        The write only lands if timeline_version is unchanged since the read;
        a concurrent append makes it re-read and try again, so no entry is lost.

        Returns:
            True if the entry was stored
        """
        entry = timeline_entry(action, details)
        for _ in range(TIMELINE_APPEND_ATTEMPTS):
            row = (
                await self.session.execute(
                    select(Order.timeline, Order.timeline_version).where(Order.id == order_id)
                )
            ).one_or_none()
            if row is None:
                return False

            timeline, version = row
            stmt = (
                update(Order)
                .where(Order.id == order_id)
                .where(Order.timeline_version == version)
                .values(timeline=[*(timeline or []), entry], timeline_version=version + 1)
            )
            result = await self.session.execute(stmt)
            await self.session.commit()
            if result.rowcount == 1:
                return True

        raise TimelineConflict(f"Could not append '{action}' to order {order_id} timeline")


class TemplateRepository:
    """Data access layer for MessageTemplate model."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, template_id: str) -> Optional[MessageTemplate]:
        return await self.session.get(MessageTemplate, template_id)

    async def list_all(self) -> List[MessageTemplate]:
        result = await self.session.execute(select(MessageTemplate).order_by(MessageTemplate.id))
        return list(result.scalars().all())

    async def upsert(
        self,
        template_id: str,
        content: str,
        name: Optional[str] = None,
        variables: Optional[List[str]] = None,
    ) -> MessageTemplate:
        template = await self.get(template_id)
        if template is None:
            template = MessageTemplate(id=template_id, name=name or template_id, content=content, variables=variables or [])
            self.session.add(template)
        else:
            template.content = content
            if name is not None:
                template.name = name
            if variables is not None:
                template.variables = variables
        await self.session.commit()
        return template

    async def insert_missing(self, defaults: Dict[str, Dict[str, Any]]) -> List[str]:
        """Insert default templates whose id is not stored yet. Returns inserted ids."""
        existing = {template.id for template in await self.list_all()}
        inserted = []
        for template_id, data in defaults.items():
            if template_id in existing:
                continue
            self.session.add(
                MessageTemplate(
                    id=template_id,
                    name=data["name"],
                    content=data["content"],
                    variables=list(data["variables"]),
                )
            )
            inserted.append(template_id)
        if inserted:
            await self.session.commit()
        return inserted


class ShopifyConfigRepository:
    """Data access layer for ShopifyConfig model."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_for_shop(self, shop_domain: str) -> Optional[ShopifyConfig]:
        """Active config for a shop domain, newest first when duplicated."""
        query = (
            select(ShopifyConfig)
            .where(ShopifyConfig.shop_url == normalize_shop_domain(shop_domain))
            .where(ShopifyConfig.is_active.is_(True))
            .order_by(ShopifyConfig.created_at.desc(), ShopifyConfig.id.desc())
            .limit(1)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_latest_active(self) -> Optional[ShopifyConfig]:
        query = (
            select(ShopifyConfig)
            .where(ShopifyConfig.is_active.is_(True))
            .order_by(ShopifyConfig.created_at.desc(), ShopifyConfig.id.desc())
            .limit(1)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def resolve(
        self,
        shop_domain: Optional[str] = None,
        default_shop_domain: Optional[str] = None,
    ) -> Optional[ShopifyConfig]:
        """
        Config for an explicit shop, else the configured default shop, else
        the most recently created active row.
        """
        if shop_domain:
            return await self.get_for_shop(shop_domain)
        if default_shop_domain:
            return await self.get_for_shop(default_shop_domain)
        return await self.get_latest_active()

    async def count(self) -> int:
        result = await self.session.execute(select(func.count(ShopifyConfig.id)))
        return result.scalar_one()

    async def create(
        self,
        shop_url: str,
        access_token: str,
        webhook_secret: Optional[str] = None,
    ) -> ShopifyConfig:
        config = ShopifyConfig(
            shop_url=normalize_shop_domain(shop_url),
            access_token=access_token,
            webhook_secret=webhook_secret,
            is_active=True,
        )
        self.session.add(config)
        await self.session.commit()
        return config


def normalize_shop_domain(shop_domain: str) -> str:
    """Strip scheme and trailing slash ("https://x.myshopify.com/" -> "x.myshopify.com")."""
    return shop_domain.replace("https://", "").replace("http://", "").strip().rstrip("/").lower()
