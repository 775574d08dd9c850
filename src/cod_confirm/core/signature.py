"""Shopify Webhook Signature Verification.

Verifies that incoming webhooks are genuinely from Shopify using HMAC-SHA256.
Shopify signs the raw request body with the app's webhook secret and sends
the base64-encoded digest in the X-Shopify-Hmac-Sha256 header.
"""

import base64
import hashlib
import hmac
from typing import Optional

from cod_confirm.core.logger import setup_logger

logger = setup_logger(__name__)


def compute_shopify_hmac(raw_body: bytes, secret: str) -> str:
    """Return the base64 HMAC-SHA256 digest of the raw body."""
    digest = hmac.new(
        secret.encode("utf-8"),
        raw_body,
        hashlib.sha256,
    ).digest()
    return base64.b64encode(digest).decode("utf-8")


def verify_shopify_signature(
    raw_body: bytes,
    hmac_header: Optional[str],
    secret: Optional[str],
) -> bool:
    """
    Verify a Shopify webhook signature.

    Args:
        raw_body: Raw request body bytes (NOT re-serialized JSON)
        hmac_header: Value of the X-Shopify-Hmac-Sha256 header
        secret: Webhook signing secret configured for the shop

    Returns:
        True if the signature matches
    """
    if not hmac_header:
        logger.warning("Webhook received without X-Shopify-Hmac-Sha256 header")
        return False

    if not secret:
        logger.warning("No webhook secret configured for this shop")
        return False

    expected_signature = compute_shopify_hmac(raw_body, secret)

    # Header values arrive latin-1 decoded; compare bytes so non-ASCII input is a mismatch
    if hmac.compare_digest(expected_signature.encode("utf-8"), hmac_header.strip().encode("latin-1", "replace")):
        return True

    logger.warning(f"Invalid webhook signature. Got: {hmac_header[:16]}...")
    return False


def validate_webhook_request(
    raw_body: bytes,
    hmac_header: Optional[str],
    shop_domain: Optional[str],
    secret: Optional[str],
) -> tuple[bool, Optional[str]]:
    """
    Full webhook validation: header presence + signature verification.

    Returns:
        Tuple of (is_valid: bool, error_message: Optional[str])
    """
    if not hmac_header or not shop_domain:
        return False, "Missing signature or shop domain header"

    if not raw_body:
        return False, "Empty request body"

    if not secret:
        return False, f"No webhook secret found for shop {shop_domain}"

    if not verify_shopify_signature(raw_body, hmac_header, secret):
        return False, "Invalid webhook signature"

    return True, None
