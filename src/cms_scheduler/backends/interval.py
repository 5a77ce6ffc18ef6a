import asyncio
import logging
from typing import Optional

from cms_scheduler.domain.run import TickResult
from .base import DEFAULT_TICK_LIMIT, SchedulerBackend

logger = logging.getLogger(__name__)


class IntervalBackend(SchedulerBackend):
    """
    Runs a tick every ``tick_interval_seconds`` from an asyncio task inside the
    current process. When a lock is configured every tick is wrapped in it, so
    several processes may run this driver against the same database.
    """

    def __init__(self, *args, tick_interval_seconds: float = 60.0, tick_limit: int = DEFAULT_TICK_LIMIT, **kwargs):
        super().__init__(*args, **kwargs)
        self.tick_interval_seconds = tick_interval_seconds
        self.tick_limit = tick_limit
        self.scheduler_task: Optional[asyncio.Task] = None
        self.is_running: bool = False
        self.last_result: Optional[TickResult] = None

    async def start(self):
        """
        Create the tables and start the tick loop.
        """
        await super().start()
        if not self.is_running:
            self.is_running = True
            self.scheduler_task = asyncio.create_task(self._scheduler_loop())
            logger.info("IntervalBackend started, ticking every %ss", self.tick_interval_seconds)

    async def stop(self):
        """
        Stop the tick loop. A tick in progress is cancelled.
        """
        if self.is_running:
            self.is_running = False
            if self.scheduler_task:
                self.scheduler_task.cancel()
                try:
                    await self.scheduler_task
                except asyncio.CancelledError:
                    pass
                self.scheduler_task = None
            logger.info("IntervalBackend stopped.")

    async def tick(self) -> TickResult:
        if self.lock is not None:
            return await self.run_locked_tick(self.tick_limit)
        return await self.run_due_schedules(self.tick_limit)

    async def _scheduler_loop(self):
        while self.is_running:
            try:
                self.last_result = await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Scheduler tick failed")
            await asyncio.sleep(self.tick_interval_seconds)
