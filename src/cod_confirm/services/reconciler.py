"""Push local confirmation outcomes back to Shopify.

Both operations are best-effort: failures are logged and reported as False,
never raised into the reply handler or the reminder sweep.
"""

from typing import Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cod_confirm.core.exceptions import ShopifyAPIError, ShopifyConfigMissing
from cod_confirm.core.logger import setup_logger
from cod_confirm.core.monitoring import capture_exception
from cod_confirm.db.models import Order
from cod_confirm.db.repository import ShopifyConfigRepository
from cod_confirm.integrations.shopify import ShopifyClient

logger = setup_logger(__name__)


def append_tag(current_tags: str, new_tag: str) -> Optional[str]:
    """
    Tag string with new_tag appended, or None when it is already present.

    >>> append_tag("vip, cod", "Confirmado")
    'vip, cod, Confirmado'
    """
    existing = [tag.strip() for tag in (current_tags or "").split(",") if tag.strip()]
    if new_tag in existing:
        return None
    return ", ".join([*existing, new_tag])


class ShopifyReconciler:
    """Applies tag updates and cancellations to the storefront."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        api_version: str = "2024-01",
        default_shop_domain: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.session_factory = session_factory
        self.api_version = api_version
        self.default_shop_domain = default_shop_domain
        self.transport = transport

    async def client_for(self, shop_domain: Optional[str] = None) -> ShopifyClient:
        """Build an API client from the stored credentials of a shop."""
        async with self.session_factory() as session:
            config = await ShopifyConfigRepository(session).resolve(shop_domain, self.default_shop_domain)

        if config is None:
            raise ShopifyConfigMissing(f"No Shopify config found for shop {shop_domain or 'default'}")

        return ShopifyClient(
            shop_domain=config.shop_url,
            access_token=config.access_token,
            api_version=self.api_version,
            transport=self.transport,
        )

    async def update_tag(self, order: Order, tag: str) -> bool:
        """Append a tag to the Shopify order unless it is already there."""
        order_id = order.legacy_order_id
        client = None
        try:
            client = await self.client_for(order.shop_domain)
            current_tags = await client.get_order_tags(order_id)

            updated_tags = append_tag(current_tags, tag)
            if updated_tags is None:
                logger.info(f"Tag {tag} already on Shopify order {order_id}, skipping update")
                return True

            await client.set_order_tags(order_id, updated_tags)
            logger.info(f"Shopify tags updated for order {order_id}: {updated_tags}")
            return True

        except ShopifyConfigMissing as e:
            logger.error(f"Cannot update tag for order {order_id}: {e}")
            return False
        except ShopifyAPIError as e:
            logger.error(f"Failed to update Shopify tag for order {order_id}: {e}")
            return False
        except Exception as e:
            logger.error(f"Error updating Shopify tag for order {order_id}: {e}", exc_info=True)
            capture_exception(e, {"order_id": order.id, "operation": "update_tag"})
            return False
        finally:
            if client:
                await client.close()

    async def cancel_order(self, order: Order) -> bool:
        """Cancel the Shopify order with the default restock behaviour."""
        order_id = order.legacy_order_id
        client = None
        try:
            client = await self.client_for(order.shop_domain)
            await client.cancel_order(order_id)
            logger.info(f"Order {order_id} cancelled on Shopify")
            return True

        except ShopifyConfigMissing as e:
            logger.error(f"Cannot cancel order {order_id}: {e}")
            return False
        except ShopifyAPIError as e:
            logger.error(f"Failed to cancel Shopify order {order_id}: {e}")
            return False
        except Exception as e:
            logger.error(f"Error cancelling Shopify order {order_id}: {e}", exc_info=True)
            capture_exception(e, {"order_id": order.id, "operation": "cancel_order"})
            return False
        finally:
            if client:
                await client.close()
