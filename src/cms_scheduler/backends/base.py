import logging
import time
from datetime import datetime
from typing import Callable, List, Optional

from cms_scheduler.dispatcher import ActionDispatcher
from cms_scheduler.domain.backoff import reconcile
from cms_scheduler.domain.entry import (
    CreateScheduleInput,
    MutationActor,
    OwnerType,
    ScheduleEntry,
    UpdateScheduleInput,
    utcnow,
)
from cms_scheduler.domain.run import (
    ManualRunResult,
    RunStatus,
    RunTrigger,
    ScheduleRunRecord,
    TickResult,
)
from cms_scheduler.errors import ScheduleNotFoundError
from cms_scheduler.settings_store import SCHEDULES_ENABLED_KEY, SettingsStore
from cms_scheduler.storages.lock import SchedulerLock
from cms_scheduler.storages.protocol import ScheduleStore

logger = logging.getLogger(__name__)

DEFAULT_TICK_LIMIT = 25


class SchedulerBackend:
    """
    The tick pipeline: select due entries, dispatch each one, reconcile its
    retry state, persist it and append an audit record.

    Entries are processed one after another. ``run_due_schedules`` does not
    take the scheduler lock; ``run_locked_tick`` does.
    """

    def __init__(
        self,
        store: ScheduleStore,
        dispatcher: ActionDispatcher,
        settings: SettingsStore,
        lock: Optional[SchedulerLock] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.settings = settings
        self.lock = lock
        self.clock = clock

    async def start(self):
        await self.store.create_tables()

    async def stop(self):
        pass

    async def create_entry(self, owner_type: OwnerType, owner_id: str, data: CreateScheduleInput) -> ScheduleEntry:
        return await self.store.create_entry(owner_type, owner_id, data)

    async def get_entry(self, entry_id: str) -> Optional[ScheduleEntry]:
        return await self.store.get_entry(entry_id)

    async def list_entries(
        self,
        owner_type: Optional[OwnerType] = None,
        owner_id: Optional[str] = None,
        include_disabled: bool = False,
    ) -> List[ScheduleEntry]:
        return await self.store.list_entries(owner_type, owner_id, include_disabled)

    async def update_entry(self, entry_id: str, patch: UpdateScheduleInput, actor: MutationActor) -> ScheduleEntry:
        return await self.store.update_entry(entry_id, patch, actor)

    async def delete_entry(self, entry_id: str, actor: MutationActor) -> None:
        await self.store.delete_entry(entry_id, actor)

    async def list_recent_runs(self, entry_id: str, limit: int = 20) -> List[ScheduleRunRecord]:
        return await self.store.list_recent_runs(entry_id, limit)

    async def acquire_lock(self) -> bool:
        if self.lock is None:
            raise RuntimeError("No scheduler lock configured")
        return await self.lock.try_acquire()

    async def release_lock(self) -> None:
        if self.lock is not None:
            await self.lock.release()

    async def run_due_schedules(self, limit: int = DEFAULT_TICK_LIMIT) -> TickResult:
        if not await self.settings.get_boolean(SCHEDULES_ENABLED_KEY, False):
            return TickResult(message="schedules disabled")

        due = await self.store.select_due(limit, self.clock())
        result = TickResult()
        for entry in due:
            try:
                record = await self._execute_entry(entry, RunTrigger.CRON)
            except Exception:
                logger.exception("Failed to record run of schedule %s", entry.id)
                result.errors += 1
                continue
            if record is not None:
                result.count(record.status)

        logger.info(
            "Due schedules processed: due=%d ran=%d skipped=%d blocked=%d errors=%d dead_lettered=%d",
            len(due), result.ran, result.skipped, result.blocked, result.errors, result.dead_lettered,
        )
        return result

    async def run_locked_tick(self, limit: int = DEFAULT_TICK_LIMIT) -> TickResult:
        if not await self.acquire_lock():
            return TickResult(busy=True, message="runner lock busy")
        try:
            return await self.run_due_schedules(limit)
        finally:
            await self.release_lock()

    async def run_schedule_entry_now(self, entry_id: str) -> ManualRunResult:
        entry = await self.store.get_entry(entry_id)
        if entry is None:
            raise ScheduleNotFoundError(entry_id)
        record = await self._execute_entry(entry, RunTrigger.MANUAL)
        if record is None:
            raise ScheduleNotFoundError(entry_id)
        return ManualRunResult(
            ok=record.status not in (RunStatus.ERROR, RunStatus.DEAD_LETTER),
            status=record.status,
            error=record.error,
        )

    async def _execute_entry(self, entry: ScheduleEntry, trigger: RunTrigger) -> Optional[ScheduleRunRecord]:
        """
        Dispatch one entry and persist the outcome. Returns the audit record,
        or None when the entry disappeared while its action was running.
        """
        retry_attempt = entry.retry_count + 1
        started = time.monotonic()
        outcome = await self.dispatcher.execute(entry)
        duration_ms = int((time.monotonic() - started) * 1000)

        now = self.clock()
        state = reconcile(entry, outcome, now)
        saved = await self.store.save_run_state(entry.id, state, outcome, now)
        if not saved:
            logger.warning("Schedule %s was deleted during its run", entry.id)
            return None

        logger.debug(
            "Schedule %s (%s) finished with %s", entry.id, entry.action_key, state.final_status.value
        )
        record = ScheduleRunRecord(
            schedule_id=entry.id,
            trigger=trigger,
            status=state.final_status,
            error=outcome.error,
            duration_ms=duration_ms,
            retry_attempt=retry_attempt,
            payload=entry.payload,
            created_at=now,
        )
        await self._record_run(record)
        return record

    async def _record_run(self, record: ScheduleRunRecord) -> None:
        try:
            await self.store.append_run(record)
        except Exception:
            logger.exception("Failed to append run record for schedule %s", record.schedule_id)
