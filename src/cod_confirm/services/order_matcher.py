"""Match an inbound WhatsApp message to the order it answers."""

from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cod_confirm.config.constants import MATCH_SUFFIX_LENGTH, STATUS_AWAITING_RESPONSE
from cod_confirm.core.logger import setup_logger
from cod_confirm.db.models import Order
from cod_confirm.db.repository import OrderRepository
from cod_confirm.integrations.whatsapp import MessagingClient
from cod_confirm.models.message import InboundMessage
from cod_confirm.services.phone_resolver import digits_only, normalize_phone

logger = setup_logger(__name__)


@dataclass
class MatchResult:
    """Outcome of matching a message to an awaiting order."""

    sender_phone: str
    suffix: str
    order: Optional[Order] = None
    candidates: List[Order] = field(default_factory=list)
    ambiguous: bool = False

    @property
    def matched(self) -> bool:
        return self.order is not None


def select_order(candidates: List[Order], sender_phone: str) -> tuple[Optional[Order], bool]:
    """
    Pick the order a reply belongs to among suffix matches (newest first).

    Several suffix matches are only resolved when the sender's full number
    identifies them; the newest exact match wins. Distinct customers sharing
    a suffix are reported as ambiguous.

    Returns:
        Tuple of (selected order or None, ambiguous flag)
    """
    if not candidates:
        return None, False
    if len(candidates) == 1:
        return candidates[0], False

    sender = normalize_phone(sender_phone)
    exact = [order for order in candidates if normalize_phone(order.customer_phone) == sender]
    if exact:
        return exact[0], False

    return None, True


class OrderMatcher:
    """Maps a message sender to an order in awaiting_response by phone suffix."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        messaging: MessagingClient,
    ):
        self.session_factory = session_factory
        self.messaging = messaging

    async def match(self, message: InboundMessage) -> MatchResult:
        contact = await self.messaging.get_contact(message.counterpart)
        sender_phone = digits_only(contact.phone)
        suffix = sender_phone[-MATCH_SUFFIX_LENGTH:]

        if not suffix:
            logger.warning(f"Could not resolve a phone number for chat {message.counterpart}")
            return MatchResult(sender_phone=sender_phone, suffix=suffix)

        async with self.session_factory() as session:
            awaiting = await OrderRepository(session).list_by_status(STATUS_AWAITING_RESPONSE)

        candidates = [order for order in awaiting if digits_only(order.customer_phone).endswith(suffix)]
        order, ambiguous = select_order(candidates, sender_phone)
        result = MatchResult(
            sender_phone=sender_phone,
            suffix=suffix,
            order=order,
            candidates=candidates,
            ambiguous=ambiguous,
        )

        if order:
            logger.info(
                f"[MATCH] Found order {order.order_number} for phone ending in {suffix}",
                extra={"order_id": order.id, "order_number": order.order_number},
            )
        elif ambiguous:
            numbers = ", ".join(candidate.order_number for candidate in candidates)
            logger.warning(
                f"[MATCH] Ambiguous reply from phone ending in {suffix}: "
                f"orders {numbers} belong to different numbers, ignoring"
            )
        else:
            logger.info(
                f"No pending order found for phone ending in {suffix}. "
                f"(Checked {len(awaiting)} pending orders)"
            )

        return result
