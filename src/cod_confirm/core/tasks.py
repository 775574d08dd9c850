"""Background task tracking for graceful shutdown."""

import asyncio
from typing import Any, Coroutine, Optional, Set

from cod_confirm.core.logger import setup_logger

logger = setup_logger(__name__)


class TaskTracker:
    """
    Keeps references to fire-and-forget tasks (reply handling, Shopify tag
    updates) so they are not garbage collected and can be awaited on shutdown.
    """

    def __init__(self):
        self._pending_tasks: Set[asyncio.Task] = set()

    def track(self, task: asyncio.Task) -> None:
        """
        Track a background task for graceful shutdown.

        Args:
            task: The asyncio Task to track
        """
        self._pending_tasks.add(task)
        task.add_done_callback(self._pending_tasks.discard)

    def spawn(self, coro: Coroutine[Any, Any, Any], name: Optional[str] = None) -> asyncio.Task:
        """Schedule a coroutine on the running loop and track it."""
        task = asyncio.create_task(coro, name=name)
        self.track(task)
        return task

    def __len__(self) -> int:
        return len(self._pending_tasks)

    async def drain(self) -> None:
        """Wait for every pending task to finish."""
        if not self._pending_tasks:
            return

        pending_count = len(self._pending_tasks)
        logger.info(f"Waiting for {pending_count} pending background tasks to complete...")
        results = await asyncio.gather(*list(self._pending_tasks), return_exceptions=True)

        errors = [r for r in results if isinstance(r, Exception)]
        if errors:
            logger.warning(f"{len(errors)} background tasks finished with errors during shutdown")
        logger.info(f"All {pending_count} background tasks completed")
