"""
Reminder Scheduler using APScheduler.

Runs the reminder / auto-cancel sweep every REMINDER_INTERVAL_MINUTES
(15 by default). Overlapping runs are dropped.
"""

from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from cod_confirm.core.logger import setup_logger
from cod_confirm.services.reminder_service import ReminderService

logger = setup_logger(__name__)

SWEEP_JOB_ID = "reminder_sweep"


class ReminderScheduler:
    """Manages the scheduled reminder sweep using APScheduler."""

    def __init__(self, reminder_service: ReminderService, interval_minutes: int = 15):
        self.service = reminder_service
        self.interval_minutes = interval_minutes
        self.scheduler = AsyncIOScheduler()
        self._started = False

    def start(self):
        """Start scheduler with the sweep job."""
        if self._started:
            logger.warning("Scheduler already started")
            return

        self.scheduler.add_job(
            self._run_sweep,
            IntervalTrigger(minutes=self.interval_minutes),
            id=SWEEP_JOB_ID,
            name="Reminder / Auto-Cancel Sweep",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info(f"Added reminder sweep job (every {self.interval_minutes} minutes)")

        self.scheduler.start()
        self._started = True
        logger.info("[REMINDER] Automated reminder system initialized")

    def stop(self):
        """
        Stop scheduling new sweeps.

        A sweep already running is not awaited here; AppContext.close waits for
        it through ReminderService.wait_until_idle before closing connections.
        """
        if not self._started:
            return

        self.scheduler.shutdown(wait=False)
        self._started = False
        logger.info("Reminder scheduler stopped")

    async def _run_sweep(self):
        """Wrapper for the scheduled sweep with error handling."""
        try:
            result = await self.service.run_sweep()
            if result.skipped:
                logger.info(f"Reminder sweep skipped: {result.skip_reason}")
            elif not result.success:
                logger.warning(f"Reminder sweep had issues: {result.errors}")
        except Exception as e:
            logger.error(f"Reminder sweep failed: {e}", exc_info=True)

    def get_next_run_time(self) -> Optional[str]:
        """Next scheduled sweep as formatted string."""
        job = self.scheduler.get_job(SWEEP_JOB_ID)
        if job and job.next_run_time:
            return job.next_run_time.strftime("%Y-%m-%d %H:%M:%S")
        return None

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._started and self.scheduler.running
