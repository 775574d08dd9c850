"""Business logic - confirmation flow, ingestion, reminders and Shopify reconciliation."""

from cod_confirm.services.confirmation_service import ConfirmationService
from cod_confirm.services.ingestion_service import IngestionService, map_synced_order, map_webhook_order
from cod_confirm.services.order_matcher import MatchResult, OrderMatcher
from cod_confirm.services.reconciler import ShopifyReconciler
from cod_confirm.services.reminder_scheduler import ReminderScheduler
from cod_confirm.services.reminder_service import ReminderService, SweepResult
from cod_confirm.services.sync_service import SyncService

__all__ = [
    "ConfirmationService",
    "IngestionService",
    "map_synced_order",
    "map_webhook_order",
    "MatchResult",
    "OrderMatcher",
    "ShopifyReconciler",
    "ReminderScheduler",
    "ReminderService",
    "SweepResult",
    "SyncService",
]
