"""Historical order sync from the Shopify Admin API."""

from datetime import date
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cod_confirm.core.logger import setup_logger
from cod_confirm.core.monitoring import capture_exception
from cod_confirm.db.repository import OrderRepository
from cod_confirm.models.order import ShopifyOrderPayload
from cod_confirm.models.sync import SyncSummary
from cod_confirm.services.ingestion_service import map_synced_order
from cod_confirm.services.reconciler import ShopifyReconciler

logger = setup_logger(__name__)


def day_bounds(start_date: date, end_date: date, utc_offset: str = "-03:00") -> tuple[str, str]:
    """
    ISO bounds covering whole days in the store's timezone.

    >>> day_bounds(date(2024, 1, 1), date(2024, 1, 31))
    ('2024-01-01T00:00:00-03:00', '2024-01-31T23:59:59-03:00')
    """
    return (
        f"{start_date.isoformat()}T00:00:00{utc_offset}",
        f"{end_date.isoformat()}T23:59:59{utc_offset}",
    )


class SyncService:
    """Imports orders created in a date range without messaging customers."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        reconciler: ShopifyReconciler,
        utc_offset: str = "-03:00",
    ):
        self.session_factory = session_factory
        self.reconciler = reconciler
        self.utc_offset = utc_offset

    async def sync_orders(
        self,
        start_date: date,
        end_date: date,
        shop_domain: Optional[str] = None,
    ) -> SyncSummary:
        """
        Fetch and upsert every order created between two dates (inclusive).

        Raises:
            ShopifyConfigMissing: no credentials stored for the shop
            ShopifyAPIError: the order listing failed
        """
        created_at_min, created_at_max = day_bounds(start_date, end_date, self.utc_offset)
        logger.info(f"[SYNC] Fetching orders from {created_at_min} to {created_at_max}")

        client = await self.reconciler.client_for(shop_domain)
        try:
            orders = await client.fetch_orders(created_at_min, created_at_max)
        finally:
            await client.close()

        logger.info(f"[SYNC] Found {len(orders)} orders")
        summary = SyncSummary(total=len(orders))

        for raw_order in orders:
            try:
                payload = ShopifyOrderPayload.model_validate(raw_order)
                data = map_synced_order(payload, client.shop_domain)

                async with self.session_factory() as session:
                    order, created = await OrderRepository(session).upsert_order(data)

                if created:
                    summary.new += 1
                else:
                    summary.updated += 1
                logger.info(f"[SYNC] Processed order {order.order_number}")

            except Exception as e:
                logger.error(f"[SYNC] Error processing order {raw_order.get('id')}: {e}", exc_info=True)
                capture_exception(e, {"shopify_order_id": raw_order.get("id"), "operation": "sync"})
                summary.errors += 1

        logger.info(
            f"[SYNC] Completed: {summary.total} total, {summary.new} new, "
            f"{summary.updated} updated, {summary.errors} errors"
        )
        return summary

