"""Core module - Logging, signature verification, monitoring and delays."""

from cod_confirm.core.delay import DelayStrategy, NoDelay, RandomDelay
from cod_confirm.core.logger import setup_logger
from cod_confirm.core.signature import validate_webhook_request, verify_shopify_signature

__all__ = [
    "DelayStrategy",
    "NoDelay",
    "RandomDelay",
    "setup_logger",
    "validate_webhook_request",
    "verify_shopify_signature",
]
