"""
Order confirmation state machine.

    pending --initial message sent--> awaiting_response
    pending --number not on WhatsApp--> failed
    awaiting_response --reply "1"--> confirmed   (+ Shopify tag)
    awaiting_response --reply "2"--> cancelled   (+ Shopify cancel)
    awaiting_response --reply "3"--> awaiting_response (address request)

Every status change is a conditional UPDATE on the expected source status,
so duplicate replies and races with the reminder sweep are no-ops.
"""

from typing import Optional, Set

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cod_confirm.config.constants import (
    REPLY_ADDRESS_UPDATE,
    REPLY_CANCEL,
    REPLY_CONFIRM,
    REPLY_OPTIONS,
    STATUS_AWAITING_RESPONSE,
    STATUS_CANCELLED,
    STATUS_CONFIRMED,
    STATUS_FAILED,
    STATUS_PENDING,
    TEMPLATE_ADDRESS_UPDATE,
    TEMPLATE_CANCELLED,
    TEMPLATE_CONFIRMATION,
    TEMPLATE_CONFIRMED,
    TERMINAL_STATUSES,
    TIMELINE_ADDRESS_UPDATE,
    TIMELINE_CANCELLED,
    TIMELINE_CONFIRMED,
    TIMELINE_MESSAGE_SENT,
    TIMELINE_NOT_REGISTERED,
)
from cod_confirm.core.delay import DelayStrategy
from cod_confirm.core.exceptions import MessagingError
from cod_confirm.core.logger import setup_logger
from cod_confirm.core.monitoring import capture_exception, set_order_context
from cod_confirm.core.tasks import TaskTracker
from cod_confirm.db.models import Order, utcnow
from cod_confirm.db.repository import OrderRepository
from cod_confirm.integrations.whatsapp import MessagingClient
from cod_confirm.models.message import InboundMessage
from cod_confirm.services.order_matcher import OrderMatcher
from cod_confirm.services.phone_resolver import resolve_chat_id
from cod_confirm.services.reconciler import ShopifyReconciler
from cod_confirm.services.template_renderer import render_order_message

logger = setup_logger(__name__)


class ConfirmationService:
    """Sends the initial confirmation request and applies customer replies."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        messaging: MessagingClient,
        delay: DelayStrategy,
        reconciler: ShopifyReconciler,
        tasks: Optional[TaskTracker] = None,
        confirmed_tag: str = "Confirmado",
        matcher: Optional[OrderMatcher] = None,
    ):
        self.session_factory = session_factory
        self.messaging = messaging
        self.delay = delay
        self.reconciler = reconciler
        self.tasks = tasks or TaskTracker()
        self.confirmed_tag = confirmed_tag
        self.matcher = matcher or OrderMatcher(session_factory, messaging)
        # Orders with an initial send in progress
        self._sending: Set[int] = set()

    async def send_initial_confirmation(self, order_id: int) -> bool:
        """
        Send the confirmation request for an order, at most once.

        Args:
            order_id: Internal order id

        Returns:
            True if the message was sent and the order is now awaiting a response
        """
        if order_id in self._sending:
            logger.info(f"Initial message for order {order_id} already in progress, skipping")
            return False

        self._sending.add(order_id)
        try:
            return await self._send_initial(order_id)
        except Exception as e:
            logger.error(f"Error sending confirmation for order {order_id}: {e}", exc_info=True)
            capture_exception(e, {"order_id": order_id, "operation": "send_initial_confirmation"})
            return False
        finally:
            self._sending.discard(order_id)

    async def _send_initial(self, order_id: int) -> bool:
        async with self.session_factory() as session:
            order = await OrderRepository(session).get_by_id(order_id)

        if order is None:
            logger.warning(f"Order {order_id} not found, cannot send confirmation")
            return False

        log_context = {"order_id": order.id, "order_number": order.order_number}
        set_order_context(order_id=order.id, order_number=order.order_number, source="confirmation")

        if order.message_sent_at is not None:
            logger.info(f"Confirmation already sent for order {order.order_number}, skipping", extra=log_context)
            return False

        if order.status in TERMINAL_STATUSES:
            logger.info(f"Order {order.order_number} is {order.status}, not sending confirmation", extra=log_context)
            return False

        if not self.messaging.is_ready:
            logger.warning(f"WhatsApp not ready, order {order.order_number} stays pending", extra=log_context)
            return False

        text = await render_order_message(self.session_factory, TEMPLATE_CONFIRMATION, order)
        chat_id = await resolve_chat_id(self.messaging, order.customer_phone)

        if chat_id is None:
            async with self.session_factory() as session:
                repo = OrderRepository(session)
                if await repo.transition(order.id, [STATUS_PENDING, STATUS_FAILED], STATUS_FAILED):
                    await repo.append_timeline(order.id, TIMELINE_NOT_REGISTERED, order.customer_phone or None)
            logger.warning(
                f"Customer of order {order.order_number} is not on WhatsApp, marked as failed",
                extra=log_context,
            )
            return False

        try:
            await self.messaging.send_message(chat_id, text)
        except MessagingError as e:
            logger.error(f"Failed to send confirmation for order {order.order_number}: {e}", extra=log_context)
            return False

        async with self.session_factory() as session:
            repo = OrderRepository(session)
            moved = await repo.transition(
                order.id,
                [STATUS_PENDING, STATUS_FAILED],
                STATUS_AWAITING_RESPONSE,
                message_sent_at=utcnow(),
            )
            if moved:
                await repo.append_timeline(order.id, TIMELINE_MESSAGE_SENT, f"Enviada para {chat_id}")

        logger.info(
            f"Confirmation sent for order {order.order_number}",
            extra={**log_context, "chat_id": chat_id},
        )
        return moved

    async def handle_reply(self, message: InboundMessage) -> Optional[str]:
        """
        Apply a customer reply to the order it answers.

        Returns:
            The resulting status ("confirmed", "cancelled") or "address_update",
            None when the message was ignored
        """
        reply = message.reply
        if reply not in REPLY_OPTIONS:
            logger.debug(f"Ignoring non-option message from {message.counterpart}")
            return None

        try:
            result = await self.matcher.match(message)
            if not result.matched:
                return None

            order = result.order
            set_order_context(order_id=order.id, order_number=order.order_number, source="reply")

            if reply == REPLY_CONFIRM:
                return await self._confirm(order, message.counterpart)
            if reply == REPLY_CANCEL:
                return await self._cancel(order, message.counterpart)
            return await self._request_address(order, message.counterpart)

        except Exception as e:
            logger.error(f"Error handling reply from {message.counterpart}: {e}", exc_info=True)
            capture_exception(e, {"chat_id": message.counterpart, "reply": reply})
            return None

    async def _confirm(self, order: Order, chat_id: str) -> Optional[str]:
        async with self.session_factory() as session:
            repo = OrderRepository(session)
            moved = await repo.transition(
                order.id,
                [STATUS_AWAITING_RESPONSE],
                STATUS_CONFIRMED,
                response_received_at=utcnow(),
            )
            if not moved:
                logger.info(f"Order {order.order_number} no longer awaiting a response, ignoring confirm")
                return None
            await repo.append_timeline(order.id, TIMELINE_CONFIRMED, f"Cliente respondeu {REPLY_CONFIRM}")

        logger.info(
            f"Order {order.order_number} confirmed by customer",
            extra={"order_id": order.id, "order_number": order.order_number},
        )

        self.tasks.spawn(
            self.reconciler.update_tag(order, self.confirmed_tag),
            name=f"shopify-tag-{order.id}",
        )

        await self._send_reply(order, TEMPLATE_CONFIRMED, chat_id)
        return STATUS_CONFIRMED

    async def _cancel(self, order: Order, chat_id: str) -> Optional[str]:
        async with self.session_factory() as session:
            repo = OrderRepository(session)
            moved = await repo.transition(
                order.id,
                [STATUS_AWAITING_RESPONSE],
                STATUS_CANCELLED,
                response_received_at=utcnow(),
            )
            if not moved:
                logger.info(f"Order {order.order_number} no longer awaiting a response, ignoring cancel")
                return None
            await repo.append_timeline(order.id, TIMELINE_CANCELLED, f"Cliente respondeu {REPLY_CANCEL}")

        logger.info(
            f"Order {order.order_number} cancelled by customer",
            extra={"order_id": order.id, "order_number": order.order_number},
        )

        await self.reconciler.cancel_order(order)
        await self._send_reply(order, TEMPLATE_CANCELLED, chat_id)
        return STATUS_CANCELLED

    async def _request_address(self, order: Order, chat_id: str) -> Optional[str]:
        async with self.session_factory() as session:
            await OrderRepository(session).append_timeline(
                order.id, TIMELINE_ADDRESS_UPDATE, f"Cliente respondeu {REPLY_ADDRESS_UPDATE}"
            )

        await self._send_reply(order, TEMPLATE_ADDRESS_UPDATE, chat_id)
        return TEMPLATE_ADDRESS_UPDATE

    async def _send_reply(self, order: Order, template_id: str, chat_id: str) -> bool:
        """Wait the anti-bot delay, then send a rendered template to the chat."""
        await self.delay.wait()
        text = await render_order_message(self.session_factory, template_id, order)
        try:
            await self.messaging.send_message(chat_id, text)
            return True
        except MessagingError as e:
            logger.error(
                f"Failed to send {template_id} message for order {order.order_number}: {e}",
                extra={"order_id": order.id, "chat_id": chat_id},
            )
            return False
