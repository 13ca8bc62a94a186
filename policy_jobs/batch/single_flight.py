"""
Single-flight lane for the render relay.

The relay cannot process overlapping requests, so every job goes through
one lane: a semaphore of capacity 1 whose slot is held until the job is
terminal plus a settle delay.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Awaitable, Callable, Optional

from config.logging_config import get_logger
from config.constants import BATCH_LANE_CAPACITY, BATCH_SETTLE_DELAY_SECONDS

logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class SingleFlightLane:
    """
    Serializes access to the relay.

    Share one lane between every orchestrator that talks to the same relay.

    Usage:
        lane = SingleFlightLane(settle_delay=2.0)
        async with lane.slot("target-1"):
            ...  # submit and poll until terminal
    """

    def __init__(
        self,
        settle_delay: float = BATCH_SETTLE_DELAY_SECONDS,
        sleep: Optional[Sleep] = None,
    ):
        """
        Args:
            settle_delay: Seconds to hold the slot after a job finishes
            sleep: Awaitable sleep, injectable for tests
        """
        self.settle_delay = settle_delay
        self._sleep = sleep or asyncio.sleep
        self._semaphore = asyncio.Semaphore(BATCH_LANE_CAPACITY)
        self._active = 0
        self.active_target: Optional[str] = None
        self.max_concurrency_observed = 0

    @property
    def busy(self) -> bool:
        return self._active > 0

    @asynccontextmanager
    async def slot(self, target_id: str):
        """Hold the lane for one target's job, then settle before releasing."""
        async with self._semaphore:
            self._active += 1
            self.active_target = target_id
            self.max_concurrency_observed = max(self.max_concurrency_observed, self._active)
            logger.debug(f"Lane acquired: {target_id}")
            try:
                yield
            finally:
                self._active -= 1
                self.active_target = None
                if self.settle_delay > 0:
                    await self._sleep(self.settle_delay)
                logger.debug(f"Lane released: {target_id}")
