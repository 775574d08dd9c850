"""COD order confirmation over WhatsApp for Shopify stores."""

__version__ = "1.0.0"
