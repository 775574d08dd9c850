"""Exception types raised by integrations and caught at the service boundary."""


class CodConfirmError(Exception):
    """Base class for service errors."""


class ShopifyConfigMissing(CodConfirmError):
    """No active Shopify credentials for the requested shop."""


class ShopifyAPIError(CodConfirmError):
    """Shopify Admin API returned an error response."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class MessagingError(CodConfirmError):
    """The WhatsApp gateway could not complete a request."""


class TimelineConflict(CodConfirmError):
    """An order timeline kept changing under concurrent appends."""
