"""Shopify Admin REST API client."""

from typing import Any, Dict, List, Optional

import httpx

from cod_confirm.config.constants import ORDER_LIST_PAGE_SIZE, SHOPIFY_ORDER_GID_PREFIX
from cod_confirm.core.exceptions import ShopifyAPIError
from cod_confirm.core.logger import setup_logger

logger = setup_logger(__name__)

REQUEST_TIMEOUT = 30.0


def to_order_gid(order_id: Any) -> str:
    """123 -> "gid://shopify/Order/123"."""
    return f"{SHOPIFY_ORDER_GID_PREFIX}{order_id}"


def to_legacy_id(order_gid: str) -> str:
    """"gid://shopify/Order/123" -> "123"."""
    return str(order_gid).rsplit("/", 1)[-1]


def _next_page_url(link_header: str) -> Optional[str]:
    """Extract the rel="next" URL from a Shopify Link header."""
    for link in link_header.split(","):
        if 'rel="next"' in link:
            return link.split(";")[0].strip().strip("<>")
    return None


class ShopifyClient:
    """Async HTTP client for one shop's Admin API."""

    def __init__(
        self,
        shop_domain: str,
        access_token: str,
        api_version: str = "2024-01",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize API client with shop credentials."""
        self.shop_domain = shop_domain.replace("https://", "").replace("http://", "").rstrip("/")
        self.base_url = f"https://{self.shop_domain}/admin/api/{api_version}"
        self.client = httpx.AsyncClient(
            headers={
                "X-Shopify-Access-Token": access_token,
                "Content-Type": "application/json",
            },
            timeout=REQUEST_TIMEOUT,
            transport=transport,
        )

    async def _make_request(
        self,
        method: str,
        path: str,
        params: Optional[dict] = None,
        json: Optional[dict] = None,
    ) -> httpx.Response:
        """
        Make an authenticated request to the Admin API.

        Args:
            method: HTTP method
            path: Path below /admin/api/{version} (e.g., "/orders/1.json") or absolute URL
            params: Query parameters
            json: JSON body

        Returns:
            The successful response

        Raises:
            ShopifyAPIError: on non-2xx responses or transport errors
        """
        url = path if path.startswith("http") else f"{self.base_url}{path}"
        try:
            response = await self.client.request(method, url, params=params, json=json)
        except httpx.HTTPError as e:
            logger.error(f"HTTP error calling {path}: {e}")
            raise ShopifyAPIError(f"Shopify request {path} failed: {e}") from e

        if response.is_error:
            logger.error(f"Shopify API error calling {path}: {response.status_code} - {response.text}")
            raise ShopifyAPIError(
                f"Shopify API error {response.status_code} on {path}",
                status_code=response.status_code,
            )
        return response

    async def get_order_tags(self, order_id: str) -> str:
        """Fetch the comma-separated tag string of an order."""
        response = await self._make_request("GET", f"/orders/{order_id}.json", params={"fields": "tags"})
        return (response.json().get("order") or {}).get("tags") or ""

    async def set_order_tags(self, order_id: str, tags: str) -> None:
        """Overwrite the full tag string of an order."""
        await self._make_request(
            "PUT",
            f"/orders/{order_id}.json",
            json={"order": {"id": order_id, "tags": tags}},
        )

    async def cancel_order(self, order_id: str) -> None:
        """Cancel an order. An empty body keeps Shopify's default restock behaviour."""
        await self._make_request("POST", f"/orders/{order_id}/cancel.json", json={})

    async def fetch_orders(self, created_at_min: str, created_at_max: str) -> List[Dict[str, Any]]:
        """Fetch all orders created in a range, following Link header pagination."""
        orders: List[Dict[str, Any]] = []
        url: Optional[str] = "/orders.json"
        params: Optional[dict] = {
            "created_at_min": created_at_min,
            "created_at_max": created_at_max,
            "limit": ORDER_LIST_PAGE_SIZE,
            "status": "any",
        }

        while url:
            response = await self._make_request("GET", url, params=params)
            orders.extend(response.json().get("orders", []))

            url = _next_page_url(response.headers.get("Link", ""))
            # The next-page URL already carries page_info
            params = None

        logger.info(f"Fetched {len(orders)} orders from {self.shop_domain}")
        return orders

    async def close(self) -> None:
        """Close HTTP client connection."""
        await self.client.aclose()
