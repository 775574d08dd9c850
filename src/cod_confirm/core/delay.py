"""Anti-automation delay strategies.

Outbound WhatsApp replies are spaced out by a random pause so the session
does not look automated. The strategy is injected so tests run without
waiting.
"""

import asyncio
import random
from abc import ABC, abstractmethod
from typing import Optional

from cod_confirm.core.logger import setup_logger

logger = setup_logger(__name__)


class DelayStrategy(ABC):
    """Something that can be awaited before an outbound message."""

    @abstractmethod
    async def wait(self) -> float:
        """Pause and return the number of seconds waited."""


class RandomDelay(DelayStrategy):
    """Uniformly distributed pause between min_seconds and max_seconds."""

    def __init__(
        self,
        min_seconds: float = 60.0,
        max_seconds: float = 120.0,
        rng: Optional[random.Random] = None,
    ):
        if min_seconds > max_seconds:
            raise ValueError("min_seconds must not exceed max_seconds")
        self.min_seconds = min_seconds
        self.max_seconds = max_seconds
        self.rng = rng or random.Random()

    async def wait(self) -> float:
        delay = self.rng.uniform(self.min_seconds, self.max_seconds)
        logger.info(f"[ANTI-BOT] Waiting {int(delay)}s before responding...")
        await asyncio.sleep(delay)
        return delay


class NoDelay(DelayStrategy):
    """Zero pause, for tests and manual operator sends."""

    async def wait(self) -> float:
        return 0.0
