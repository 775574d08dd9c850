"""
WhatsApp messaging capability.

The WhatsApp Web session itself (browser, QR pairing, reconnects) lives in a
separate gateway process. This module talks to that gateway over HTTP:

    POST /sendMessage    {"chatId": "...", "text": "..."}
    POST /getNumberId    {"number": "5730..."} -> {"numberId": {"_serialized": "...@c.us"} | null}
    GET  /contact/{id}   -> {"number": "5730...", "id": {"user": "...", "_serialized": "..."}}
    GET  /status         -> {"connected": true}

Inbound messages and ready/disconnected notifications are pushed by the
gateway to POST /api/whatsapp/events (see server/routes.py).
"""

from abc import ABC, abstractmethod
from typing import Optional

import httpx

from cod_confirm.core.exceptions import MessagingError
from cod_confirm.core.logger import setup_logger
from cod_confirm.models.message import Contact

logger = setup_logger(__name__)

REQUEST_TIMEOUT = 30.0


class MessagingClient(ABC):
    """What the confirmation flow needs from a WhatsApp session."""

    def __init__(self):
        self._ready = False
        self.status_message = "Initializing..."

    @property
    def is_ready(self) -> bool:
        return self._ready

    def set_ready(self, ready: bool, status_message: Optional[str] = None) -> None:
        """Record a readiness change reported by the session."""
        if ready != self._ready:
            logger.info(f"WhatsApp session {'ready' if ready else 'not ready'}")
        self._ready = ready
        if status_message:
            self.status_message = status_message

    @abstractmethod
    async def send_message(self, chat_id: str, text: str) -> None:
        """Send a text message. Raises MessagingError on failure."""

    @abstractmethod
    async def get_number_id(self, phone: str) -> Optional[str]:
        """
        Look up the chat id registered for a phone number.

        Returns:
            Serialized chat id, or None when the number is not on WhatsApp

        Raises:
            MessagingError: when the lookup itself could not be performed
        """

    @abstractmethod
    async def get_contact(self, chat_id: str) -> Contact:
        """Resolve the real phone number behind a (possibly anonymized) chat id."""

    async def refresh_status(self) -> bool:
        """Ask the session for its current readiness."""
        return self._ready

    async def close(self) -> None:
        """Release transport resources."""


class WhatsAppGatewayClient(MessagingClient):
    """Async HTTP client for the WhatsApp Web gateway."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize client with gateway location and optional bearer token."""
        super().__init__()
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self.base_url = base_url.rstrip("/")
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=REQUEST_TIMEOUT,
            transport=transport,
        )

    async def _request(self, method: str, path: str, json: Optional[dict] = None) -> dict:
        try:
            response = await self.client.request(method, path, json=json)
            response.raise_for_status()
            return response.json() if response.content else {}
        except httpx.HTTPError as e:
            logger.error(f"WhatsApp gateway error calling {path}: {e}")
            raise MessagingError(f"Gateway request {path} failed: {e}") from e

    async def send_message(self, chat_id: str, text: str) -> None:
        await self._request("POST", "/sendMessage", json={"chatId": chat_id, "text": text})
        logger.info(f"Message sent to {chat_id}", extra={"chat_id": chat_id})

    async def get_number_id(self, phone: str) -> Optional[str]:
        data = await self._request("POST", "/getNumberId", json={"number": phone})
        number_id = data.get("numberId")
        if not number_id:
            return None
        if isinstance(number_id, str):
            return number_id
        return number_id.get("_serialized")

    async def get_contact(self, chat_id: str) -> Contact:
        data = await self._request("GET", f"/contact/{chat_id}")
        contact_id = data.get("id")
        if isinstance(contact_id, dict):
            contact_id = contact_id.get("_serialized") or contact_id.get("user")
        return Contact(number=data.get("number"), id=contact_id or chat_id)

    async def refresh_status(self) -> bool:
        try:
            data = await self._request("GET", "/status")
        except MessagingError as e:
            self.set_ready(False, f"Gateway unreachable: {e}")
            return False

        connected = bool(data.get("connected"))
        self.set_ready(connected, data.get("message"))
        return connected

    async def close(self) -> None:
        """Close HTTP client connection."""
        await self.client.aclose()
