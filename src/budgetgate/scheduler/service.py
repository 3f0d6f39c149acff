"""APScheduler-based replenishment ticker."""

import logging
import time
from enum import Enum
from typing import Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from budgetgate.budget.service import AdmissionController

logger = logging.getLogger(__name__)

TICK_JOB_ID = "budget_tick"


class SchedulerState(str, Enum):
    """Replenishment scheduler state."""

    IDLE = "idle"
    TICKING = "ticking"


class ReplenishmentScheduler:
    """
    Periodic driver for AdmissionController.tick.

    Runs one coroutine job on a fixed interval. Each run measures the
    time since the previous run on a monotonic clock, reads the current
    caller count from the injected provider and hands both to the
    controller. Overlapping runs are never started.
    """

    def __init__(
        self,
        controller: AdmissionController,
        caller_count: Callable[[], int] = lambda: 0,
        interval_seconds: float = 1.0,
        timezone: str = "UTC",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the replenishment scheduler.

        Args:
            controller: Controller whose budgets are replenished
            caller_count: Returns the number of active callers
            interval_seconds: Seconds between ticks
            timezone: Scheduler timezone
            clock: Monotonic time source
        """
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._controller = controller
        self._caller_count = caller_count
        self._interval_seconds = interval_seconds
        self._timezone = timezone
        self._clock = clock
        self._scheduler: AsyncIOScheduler | None = None
        self._last_tick: float | None = None
        self._state = SchedulerState.IDLE

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def interval_seconds(self) -> float:
        return self._interval_seconds

    @property
    def scheduler(self) -> AsyncIOScheduler:
        """Get or create the scheduler instance."""
        if self._scheduler is None:
            self._scheduler = self._create_scheduler()
        return self._scheduler

    def _create_scheduler(self) -> AsyncIOScheduler:
        """Create and configure the APScheduler instance."""
        job_defaults = {
            "coalesce": True,  # Combine missed runs into one
            "max_instances": 1,  # Prevent overlapping ticks
            "misfire_grace_time": max(1, int(self._interval_seconds * 5)),
        }

        scheduler = AsyncIOScheduler(
            job_defaults=job_defaults,
            timezone=self._timezone,
        )
        logger.info(
            f"Replenishment scheduler configured: every {self._interval_seconds}s, "
            f"timezone={self._timezone}"
        )
        return scheduler

    def start(self) -> None:
        """Start ticking. Must be called from a running event loop."""
        if self.is_running:
            logger.warning("Replenishment scheduler is already running")
            return

        self._last_tick = self._clock()
        self.scheduler.add_job(
            self.run_tick_now,
            trigger=IntervalTrigger(seconds=self._interval_seconds),
            id=TICK_JOB_ID,
            name=TICK_JOB_ID,
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info("Replenishment scheduler started")

    def shutdown(self, wait: bool = False) -> None:
        """
        Stop ticking.

        Args:
            wait: Wait for a running tick to complete
        """
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
            logger.info("Replenishment scheduler shutdown complete")
        self._scheduler = None

    async def run_tick_now(self) -> int:
        """
        Execute one tick immediately.

        Returns:
            Number of queued acquisitions granted
        """
        now = self._clock()
        elapsed = 0.0 if self._last_tick is None else now - self._last_tick
        self._last_tick = now

        self._state = SchedulerState.TICKING
        try:
            return await self._controller.tick(elapsed, self._caller_count())
        finally:
            self._state = SchedulerState.IDLE

    @property
    def is_running(self) -> bool:
        """Check if the scheduler is running."""
        return self._scheduler is not None and self._scheduler.running
