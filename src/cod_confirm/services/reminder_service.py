"""
Reminder and auto-cancel sweep.

Looks at every order still awaiting a customer response and, depending on
how long ago the confirmation request went out:

- 24h or more: cancels the order locally and on Shopify, then notifies the customer
- 2h or more without a first reminder: sends the first reminder
- 4h or more after the first reminder: sends the second (urgent) reminder

An order is handled by at most one of these per sweep. An order already due
for auto-cancel gets no reminder first: the cancellation notice replaces it.

Only one sweep runs at a time (in-process flag, plus a Redis lease when
enabled). Shutdown waits for a running sweep through wait_until_idle().
"""

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cod_confirm.config.constants import (
    AUTO_CANCEL_AFTER,
    FIRST_REMINDER_AFTER,
    SECOND_REMINDER_AFTER,
    STATUS_AWAITING_RESPONSE,
    STATUS_CANCELLED,
    SWEEP_LOCK_TIMEOUT_SECONDS,
    TEMPLATE_AUTO_CANCELLED,
    TEMPLATE_FIRST_REMINDER,
    TEMPLATE_SECOND_REMINDER,
    TIMELINE_AUTO_CANCELLED,
    TIMELINE_FIRST_REMINDER,
    TIMELINE_SECOND_REMINDER,
)
from cod_confirm.core.delay import DelayStrategy
from cod_confirm.core.exceptions import MessagingError
from cod_confirm.core.logger import setup_logger
from cod_confirm.core.monitoring import capture_exception, set_order_context
from cod_confirm.db.models import Order, utcnow
from cod_confirm.db.repository import OrderRepository
from cod_confirm.integrations.whatsapp import MessagingClient
from cod_confirm.services.phone_resolver import resolve_chat_id
from cod_confirm.services.reconciler import ShopifyReconciler
from cod_confirm.services.template_renderer import render_order_message

logger = setup_logger(__name__)

REDIS_SWEEP_LOCK = "cod_confirm:reminders:sweep_in_progress"


@dataclass
class SweepResult:
    """Result of one reminder sweep."""
    sweep_id: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    orders_checked: int = 0
    first_reminders: int = 0
    second_reminders: int = 0
    auto_cancelled: int = 0
    skipped: bool = False
    skip_reason: Optional[str] = None
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors


class ReminderService:
    """Runs the periodic reminder / auto-cancel sweep."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        messaging: MessagingClient,
        delay: DelayStrategy,
        reconciler: ShopifyReconciler,
        redis_enabled: bool = False,
        redis_host: str = "redis",
        redis_port: int = 6379,
        redis_db: int = 0,
    ):
        self.session_factory = session_factory
        self.messaging = messaging
        self.delay = delay
        self.reconciler = reconciler
        self.redis_enabled = redis_enabled
        self.redis_host = redis_host
        self.redis_port = redis_port
        self.redis_db = redis_db
        self._redis: Optional[aioredis.Redis] = None
        self._in_progress = False
        self._idle = asyncio.Event()
        self._idle.set()

    async def _get_redis(self) -> aioredis.Redis:
        """Get or create Redis connection."""
        if self._redis is None:
            self._redis = aioredis.Redis(
                host=self.redis_host,
                port=self.redis_port,
                db=self.redis_db,
                decode_responses=True,
            )
        return self._redis

    async def close(self):
        """Close Redis connection."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def _acquire_sweep_lock(self, timeout: int = SWEEP_LOCK_TIMEOUT_SECONDS) -> bool:
        """Acquire distributed lease for the sweep."""
        redis = await self._get_redis()
        acquired = await redis.set(
            REDIS_SWEEP_LOCK,
            value=str(time.time()),
            nx=True,
            ex=timeout,
        )
        return bool(acquired)

    async def _release_sweep_lock(self):
        """Release sweep lease."""
        redis = await self._get_redis()
        await redis.delete(REDIS_SWEEP_LOCK)

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    async def wait_until_idle(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for a running sweep to finish.

        Returns:
            False if the sweep was still running after timeout seconds
        """
        try:
            await asyncio.wait_for(self._idle.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def run_sweep(self, now: Optional[datetime] = None) -> SweepResult:
        """
        Run one sweep unless another one is still running.

        Args:
            now: Reference time (naive UTC), defaults to the current time

        Returns:
            SweepResult with per-action counts
        """
        result = SweepResult(sweep_id=uuid.uuid4().hex[:8], started_at=utcnow())

        if self._in_progress:
            logger.warning("[REMINDER] Previous sweep still running, skipping")
            result.skipped, result.skip_reason = True, "in_progress"
            return result

        self._in_progress = True
        self._idle.clear()
        lease_held = False
        try:
            if self.redis_enabled:
                try:
                    lease_held = await self._acquire_sweep_lock()
                except RedisError as e:
                    logger.warning(f"[REMINDER] Redis unavailable, using in-process guard only: {e}")
                else:
                    if not lease_held:
                        logger.warning("[REMINDER] Sweep lease held by another process, skipping")
                        result.skipped, result.skip_reason = True, "in_progress"
                        return result

            await self._sweep(now or utcnow(), result)
            return result
        finally:
            if lease_held:
                try:
                    await self._release_sweep_lock()
                except RedisError as e:
                    logger.warning(f"[REMINDER] Failed to release sweep lease: {e}")
            self._in_progress = False
            self._idle.set()
            result.completed_at = utcnow()

    async def _sweep(self, now: datetime, result: SweepResult) -> None:
        log_context = {"sweep_id": result.sweep_id}

        if not self.messaging.is_ready:
            logger.info("[REMINDER] WhatsApp not ready, skipping reminder check", extra=log_context)
            result.skipped, result.skip_reason = True, "messaging_not_ready"
            return

        logger.info("[REMINDER] Checking for orders needing reminders...", extra=log_context)

        async with self.session_factory() as session:
            orders = await OrderRepository(session).list_awaiting_with_message_sent()

        result.orders_checked = len(orders)

        for order in orders:
            try:
                await self._process_order(order, now, result)
            except Exception as e:
                logger.error(
                    f"[REMINDER] Error processing order {order.order_number}: {e}",
                    exc_info=True,
                    extra={**log_context, "order_id": order.id},
                )
                capture_exception(e, {"order_id": order.id, "sweep_id": result.sweep_id})
                result.errors.append(f"{order.order_number}: {e}")

        logger.info(
            f"[REMINDER] Sweep completed: {result.orders_checked} checked, "
            f"{result.first_reminders} first reminders, {result.second_reminders} second reminders, "
            f"{result.auto_cancelled} auto-cancelled, {len(result.errors)} errors",
            extra=log_context,
        )

    async def _process_order(self, order: Order, now: datetime, result: SweepResult) -> None:
        set_order_context(order_id=order.id, order_number=order.order_number, source="sweep")

        if order.auto_cancelled_at is None and order.message_sent_at <= now - AUTO_CANCEL_AFTER:
            if await self._auto_cancel(order):
                result.auto_cancelled += 1
            return

        if order.first_reminder_sent_at is None:
            if order.message_sent_at <= now - FIRST_REMINDER_AFTER:
                logger.info(f"[REMINDER] Sending first reminder for order {order.order_number}")
                if await self._send_reminder(order, TEMPLATE_FIRST_REMINDER, "first_reminder_sent_at", TIMELINE_FIRST_REMINDER):
                    result.first_reminders += 1
            return

        if order.second_reminder_sent_at is None and order.first_reminder_sent_at <= now - SECOND_REMINDER_AFTER:
            logger.info(f"[REMINDER] Sending second (urgent) reminder for order {order.order_number}")
            if await self._send_reminder(order, TEMPLATE_SECOND_REMINDER, "second_reminder_sent_at", TIMELINE_SECOND_REMINDER):
                result.second_reminders += 1

    async def _send_reminder(self, order: Order, template_id: str, marker: str, timeline_action: str) -> bool:
        """Delay, re-check the order still awaits a response, send, then stamp the marker."""
        await self.delay.wait()

        async with self.session_factory() as session:
            current = await OrderRepository(session).get_by_id(order.id)

        if current is None or current.status != STATUS_AWAITING_RESPONSE or getattr(current, marker) is not None:
            logger.info(f"[REMINDER] Order {order.order_number} changed during delay, reminder not sent")
            return False

        chat_id = await resolve_chat_id(self.messaging, current.customer_phone)
        if chat_id is None:
            logger.info(f"[REMINDER] Number not registered for order {order.order_number}")
            return False

        text = await render_order_message(self.session_factory, template_id, current)
        try:
            await self.messaging.send_message(chat_id, text)
        except MessagingError as e:
            logger.error(f"[REMINDER] Error sending reminder for order {order.order_number}: {e}")
            return False

        async with self.session_factory() as session:
            repo = OrderRepository(session)
            if await repo.stamp(order.id, marker):
                await repo.append_timeline(order.id, timeline_action, f"Enviado para {chat_id}")

        logger.info(
            f"[REMINDER] Reminder sent to {chat_id} for order {order.order_number}",
            extra={"order_id": order.id, "chat_id": chat_id},
        )
        return True

    async def _auto_cancel(self, order: Order) -> bool:
        """Cancel an unanswered order and notify the customer."""
        async with self.session_factory() as session:
            repo = OrderRepository(session)
            moved = await repo.transition(
                order.id,
                [STATUS_AWAITING_RESPONSE],
                STATUS_CANCELLED,
                auto_cancelled_at=utcnow(),
            )
            if not moved:
                logger.info(f"[AUTO-CANCEL] Order {order.order_number} no longer awaiting a response")
                return False
            await repo.append_timeline(order.id, TIMELINE_AUTO_CANCELLED, "Sem resposta em 24h")

        logger.info(f"[AUTO-CANCEL] Order {order.order_number} cancelled after 24h without response")

        if await self.reconciler.cancel_order(order):
            logger.info(f"[AUTO-CANCEL] Order {order.order_number} cancelled in Shopify")
        else:
            logger.warning(f"[AUTO-CANCEL] Failed to cancel order {order.order_number} in Shopify")

        chat_id = await resolve_chat_id(self.messaging, order.customer_phone)
        if chat_id is None:
            logger.info(f"[AUTO-CANCEL] Number not registered for order {order.order_number}")
            return True

        await self.delay.wait()
        text = await render_order_message(self.session_factory, TEMPLATE_AUTO_CANCELLED, order)
        try:
            await self.messaging.send_message(chat_id, text)
            logger.info(f"[AUTO-CANCEL] Cancellation notification sent to {chat_id} for order {order.order_number}")
        except MessagingError as e:
            logger.error(f"[AUTO-CANCEL] Error notifying order {order.order_number}: {e}")
        return True
