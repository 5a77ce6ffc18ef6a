import asyncio
import logging
from datetime import timedelta

from celery import Celery
from celery.schedules import schedule
from redbeat import RedBeatSchedulerEntry

from cms_scheduler.domain.run import TickResult
from .base import DEFAULT_TICK_LIMIT, SchedulerBackend

logger = logging.getLogger(__name__)

TICK_TASK_NAME = "cms_scheduler.run_due_schedules"


class CeleryBackend(SchedulerBackend):
    """
    Drives ticks from Celery beat. ``install_beat_entry`` stores a RedBeat
    interval entry that enqueues the tick task; any worker may pick it up
    and the scheduler lock keeps overlapping ticks apart.
    """
    app: Celery

    def __init__(self, *args, celery_app: Celery, tick_limit: int = DEFAULT_TICK_LIMIT, **kwargs):
        super().__init__(*args, **kwargs)
        self.app = celery_app
        self.tick_limit = tick_limit

        @self.app.task(name=TICK_TASK_NAME)
        def run_due_schedules_task(limit: int = DEFAULT_TICK_LIMIT) -> dict:
            return asyncio.run(self._tick(limit)).model_dump()

        self.tick_task = run_due_schedules_task

    async def _tick(self, limit: int) -> TickResult:
        try:
            result = await self.run_locked_tick(limit)
        finally:
            # every task call runs in a fresh event loop; pooled connections must not outlive it
            await self.store.dispose()
        logger.info("Celery tick finished: %s", result.message)
        return result

    def install_beat_entry(self, every: timedelta = timedelta(minutes=1)) -> RedBeatSchedulerEntry:
        entry = RedBeatSchedulerEntry(
            "cms_scheduler:tick",
            self.tick_task.name,
            schedule(run_every=every),
            kwargs={"limit": self.tick_limit},
            app=self.app,
        )
        entry.save()
        return entry
