"""
GlitchTip Error Monitoring Utilities

Initialization plus helpers for error tracking and context management.
All helpers are no-ops until init_monitoring() has been called with a DSN.
"""

import logging
from typing import Any, Dict, Optional

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

from cod_confirm.core.logger import setup_logger

logger = setup_logger(__name__)


def init_monitoring(dsn: Optional[str], environment: str) -> bool:
    """Initialize GlitchTip (Sentry-compatible) error monitoring."""
    if not dsn:
        return False

    try:
        sentry_sdk.init(
            dsn=dsn,
            environment=environment,
            integrations=[
                FastApiIntegration(transaction_style="endpoint"),
                LoggingIntegration(
                    level=None,  # Capture all log levels as breadcrumbs
                    event_level=logging.ERROR,  # Send ERROR logs as events
                ),
            ],
            traces_sample_rate=0.1,
            profiles_sample_rate=0.0,
            send_default_pii=False,  # Customer phones stay out of events
        )
        logger.info("GlitchTip error monitoring initialized")
        return True
    except Exception as e:
        logger.error(f"Failed to initialize GlitchTip: {e}")
        return False


def set_order_context(
    order_id: Optional[int] = None,
    order_number: Optional[str] = None,
    source: Optional[str] = None,
    **extra_tags,
) -> None:
    """
    Set order-specific context for error tracking.

    Args:
        order_id: Internal order id
        order_number: Human-facing order number
        source: Which flow touched the order (webhook, reply, sweep, sync)
        **extra_tags: Additional tags to add
    """
    try:
        if order_id is not None:
            sentry_sdk.set_tag("order.id", order_id)
        if order_number:
            sentry_sdk.set_tag("order.number", order_number)
        if source:
            sentry_sdk.set_tag("order.source", source)

        for key, value in extra_tags.items():
            sentry_sdk.set_tag(key, value)

        context_data = {
            "order_id": order_id,
            "order_number": order_number,
            "source": source,
        }
        context_data.update(extra_tags)
        sentry_sdk.set_context("order", context_data)
    except Exception as e:
        logger.warning(f"Failed to set order context: {e}")


def capture_exception(
    error: Exception,
    context: Optional[Dict[str, Any]] = None,
) -> None:
    """Capture an exception and send to GlitchTip."""
    try:
        if context:
            with sentry_sdk.new_scope() as scope:
                scope.set_context("custom", context)
                sentry_sdk.capture_exception(error)
        else:
            sentry_sdk.capture_exception(error)
    except Exception as e:
        logger.warning(f"Failed to capture exception in GlitchTip: {e}")
