"""Process-wide service wiring."""

from dataclasses import dataclass
from typing import Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from cod_confirm.config.constants import DEFAULT_TEMPLATES
from cod_confirm.config.settings import Settings
from cod_confirm.core.delay import DelayStrategy, RandomDelay
from cod_confirm.core.logger import setup_logger
from cod_confirm.core.tasks import TaskTracker
from cod_confirm.db.base import get_engine, get_session_factory, init_db
from cod_confirm.db.repository import ShopifyConfigRepository, TemplateRepository
from cod_confirm.integrations.whatsapp import MessagingClient, WhatsAppGatewayClient
from cod_confirm.services.confirmation_service import ConfirmationService
from cod_confirm.services.ingestion_service import IngestionService
from cod_confirm.services.reconciler import ShopifyReconciler
from cod_confirm.services.reminder_scheduler import ReminderScheduler
from cod_confirm.services.reminder_service import ReminderService
from cod_confirm.services.sync_service import SyncService

logger = setup_logger(__name__)

# Stays under uvicorn timeout_graceful_shutdown
SWEEP_SHUTDOWN_TIMEOUT_SECONDS = 150


@dataclass
class AppContext:
    """Everything a request handler or scheduled job needs, built once per process."""
    settings: Settings
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    messaging: MessagingClient
    delay: DelayStrategy
    tasks: TaskTracker
    reconciler: ShopifyReconciler
    confirmation: ConfirmationService
    ingestion: IngestionService
    reminders: ReminderService
    sync: SyncService
    scheduler: Optional[ReminderScheduler] = None

    @classmethod
    def build(
        cls,
        settings: Settings,
        engine: Optional[AsyncEngine] = None,
        messaging: Optional[MessagingClient] = None,
        delay: Optional[DelayStrategy] = None,
        shopify_transport: Optional[httpx.AsyncBaseTransport] = None,
        with_scheduler: bool = True,
    ) -> "AppContext":
        """
        Wire services from settings. Any collaborator can be supplied
        instead (in-memory engine, fake messaging, no delay, mock transport).
        """
        engine = engine or get_engine(settings.database_url)
        session_factory = get_session_factory(engine)
        messaging = messaging or WhatsAppGatewayClient(
            settings.whatsapp_gateway_url,
            token=settings.whatsapp_gateway_token,
        )
        delay = delay or RandomDelay(settings.reply_delay_min_seconds, settings.reply_delay_max_seconds)
        tasks = TaskTracker()

        reconciler = ShopifyReconciler(
            session_factory,
            api_version=settings.shopify_api_version,
            default_shop_domain=settings.shopify_shop_domain,
            transport=shopify_transport,
        )
        confirmation = ConfirmationService(
            session_factory,
            messaging,
            delay,
            reconciler,
            tasks=tasks,
            confirmed_tag=settings.shopify_confirmed_tag,
        )
        reminders = ReminderService(
            session_factory,
            messaging,
            delay,
            reconciler,
            redis_enabled=settings.redis_enabled,
            redis_host=settings.redis_host,
            redis_port=settings.redis_port,
            redis_db=settings.redis_db,
        )

        return cls(
            settings=settings,
            engine=engine,
            session_factory=session_factory,
            messaging=messaging,
            delay=delay,
            tasks=tasks,
            reconciler=reconciler,
            confirmation=confirmation,
            ingestion=IngestionService(session_factory, confirmation, settings.shopify_shop_domain),
            reminders=reminders,
            sync=SyncService(session_factory, reconciler, settings.sync_utc_offset),
            scheduler=ReminderScheduler(reminders, settings.reminder_interval_minutes) if with_scheduler else None,
        )

    async def initialize(self) -> None:
        """Create tables, seed missing templates and bootstrap Shopify credentials."""
        await init_db(self.engine)

        async with self.session_factory() as session:
            inserted = await TemplateRepository(session).insert_missing(DEFAULT_TEMPLATES)
        if inserted:
            logger.info(f"Inserted default templates: {', '.join(inserted)}")

        await self._bootstrap_shopify_config()

    async def _bootstrap_shopify_config(self) -> None:
        shop_domain = self.settings.shopify_shop_domain
        access_token = self.settings.shopify_access_token
        if not shop_domain or not access_token:
            return

        async with self.session_factory() as session:
            repo = ShopifyConfigRepository(session)
            if await repo.count() > 0:
                return
            await repo.create(shop_domain, access_token, self.settings.shopify_webhook_secret)
        logger.info(f"Shopify config created from environment for {shop_domain}")

    async def start(self) -> None:
        """Initialize storage, query the WhatsApp session and start the sweep."""
        await self.initialize()

        ready = await self.messaging.refresh_status()
        logger.info(f"WhatsApp gateway {'ready' if ready else 'not ready'}: {self.messaging.status_message}")

        if self.scheduler:
            self.scheduler.start()

    async def close(self) -> None:
        """Stop the sweep, finish background work and release connections."""
        if self.scheduler:
            self.scheduler.stop()

        if not await self.reminders.wait_until_idle(SWEEP_SHUTDOWN_TIMEOUT_SECONDS):
            logger.warning("Reminder sweep still running at shutdown, closing connections anyway")

        await self.tasks.drain()
        await self.messaging.close()
        await self.reminders.close()
        await self.engine.dispose()
