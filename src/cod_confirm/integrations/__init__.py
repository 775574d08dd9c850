"""External integrations - Shopify Admin API and WhatsApp gateway."""

from cod_confirm.integrations.shopify import ShopifyClient
from cod_confirm.integrations.whatsapp import MessagingClient, WhatsAppGatewayClient

__all__ = ["MessagingClient", "ShopifyClient", "WhatsAppGatewayClient"]
