import logging
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy import delete, false, insert, select, true, update
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from cms_scheduler.config import SchedulerSettings
from cms_scheduler.domain.backoff import Reconciliation
from cms_scheduler.domain.entry import (
    CreateScheduleInput,
    MutationActor,
    OwnerType,
    ScheduleEntry,
    UpdateScheduleInput,
    utcnow,
)
from cms_scheduler.domain.run import ActionOutcome, RunStatus, RunTrigger, ScheduleRunRecord
from cms_scheduler.errors import NotAuthorizedError, ScheduleNotFoundError, ScheduleValidationError
from cms_scheduler.storages.protocol import ScheduleStore
from cms_scheduler.storages.tables import build_tables

logger = logging.getLogger(__name__)

MAX_DUE_LIMIT = 100


def _check_definition(name: str, action_key: str) -> None:
    if not name:
        raise ScheduleValidationError("Schedule name is required")
    if not action_key:
        raise ScheduleValidationError("Schedule action key is required")


class SqlAlchemyScheduleStore(ScheduleStore):
    def __init__(
        self,
        db_url: str,
        prefix: str = "tooty_",
        clock: Callable[[], datetime] = utcnow,
    ):
        self.engine: AsyncEngine = create_async_engine(db_url)
        self.async_session = sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )
        self.prefix = prefix
        self.tables = build_tables(prefix)
        self.clock = clock

    @classmethod
    def from_settings(cls, settings: SchedulerSettings, **kwargs) -> "SqlAlchemyScheduleStore":
        return cls(settings.database_url, prefix=settings.db_prefix, **kwargs)

    async def create_tables(self):
        async with self.engine.begin() as conn:
            await conn.run_sync(self.tables.metadata.create_all)

    async def dispose(self):
        await self.engine.dispose()

    async def create_entry(self, owner_type: OwnerType, owner_id: str, data: CreateScheduleInput) -> ScheduleEntry:
        _check_definition(data.name, data.action_key)
        now = self.clock()
        entry = ScheduleEntry(
            owner_type=owner_type,
            owner_id=owner_id,
            site_id=data.site_id,
            name=data.name,
            action_key=data.action_key,
            payload=data.payload,
            enabled=data.enabled,
            run_every_minutes=data.run_every_minutes,
            max_retries=data.max_retries,
            backoff_base_seconds=data.backoff_base_seconds,
            next_run_at=data.next_run_at or now,
            created_at=now,
            updated_at=now,
        )
        async with self.async_session() as session:
            await session.execute(insert(self.tables.entries).values(**self._entry_to_row(entry)))
            await session.commit()
        logger.debug("Created schedule %s (%s:%s %s)", entry.id, owner_type.value, owner_id, entry.action_key)
        return entry

    async def get_entry(self, entry_id: str) -> Optional[ScheduleEntry]:
        async with self.async_session() as session:
            return await self._fetch_entry(session, entry_id)

    async def list_entries(
        self,
        owner_type: Optional[OwnerType] = None,
        owner_id: Optional[str] = None,
        include_disabled: bool = False,
    ) -> List[ScheduleEntry]:
        entries = self.tables.entries
        query = select(entries)
        if not include_disabled:
            query = query.where(entries.c.enabled == true())
        if owner_type:
            query = query.where(entries.c.owner_type == owner_type.value)
        if owner_id:
            query = query.where(entries.c.owner_id == owner_id)
        query = query.order_by(
            entries.c.dead_lettered.desc(),
            entries.c.next_run_at.asc().nulls_last(),
            entries.c.created_at.desc(),
        )
        async with self.async_session() as session:
            result = await session.execute(query)
            return [self._row_to_entry(row) for row in result.mappings()]

    async def update_entry(self, entry_id: str, patch: UpdateScheduleInput, actor: MutationActor) -> ScheduleEntry:
        async with self.async_session() as session:
            existing = await self._fetch_entry(session, entry_id)
            if existing is None:
                raise ScheduleNotFoundError(entry_id)
            if not actor.can_mutate(existing):
                raise NotAuthorizedError(entry_id)

            changes = patch.changes(existing, self.clock())
            updated = existing.model_copy(update=changes)
            _check_definition(updated.name, updated.action_key)
            if existing.dead_lettered and not updated.dead_lettered:
                logger.info("Schedule %s re-enabled, dead-letter cleared", entry_id)

            # only the patched columns; a concurrent tick owns the runtime state
            await session.execute(
                update(self.tables.entries).where(self.tables.entries.c.id == entry_id).values(**changes)
            )
            stored = await self._fetch_entry(session, entry_id)
            await session.commit()
            if stored is None:
                raise ScheduleNotFoundError(entry_id)
            return stored

    async def delete_entry(self, entry_id: str, actor: MutationActor) -> None:
        async with self.async_session() as session:
            existing = await self._fetch_entry(session, entry_id)
            if existing is None:
                raise ScheduleNotFoundError(entry_id)
            if not actor.can_mutate(existing):
                raise NotAuthorizedError(entry_id)
            await session.execute(delete(self.tables.runs).where(self.tables.runs.c.schedule_id == entry_id))
            await session.execute(delete(self.tables.entries).where(self.tables.entries.c.id == entry_id))
            await session.commit()

    async def select_due(self, limit: int, now: datetime) -> List[ScheduleEntry]:
        entries = self.tables.entries
        limit = max(1, min(MAX_DUE_LIMIT, int(limit)))
        query = (
            select(entries)
            .where(
                entries.c.enabled == true(),
                entries.c.dead_lettered == false(),
                entries.c.next_run_at.is_not(None),
                entries.c.next_run_at <= now,
            )
            .order_by(entries.c.next_run_at.asc())
            .limit(limit)
        )
        async with self.async_session() as session:
            result = await session.execute(query)
            return [self._row_to_entry(row) for row in result.mappings()]

    async def save_run_state(
        self,
        entry_id: str,
        result: Reconciliation,
        outcome: ActionOutcome,
        now: datetime,
    ) -> bool:
        entries = self.tables.entries
        async with self.async_session() as session:
            res = await session.execute(
                update(entries)
                .where(entries.c.id == entry_id)
                .values(
                    last_run_at=now,
                    last_status=result.final_status.value,
                    last_error=outcome.error,
                    retry_count=result.retry_count,
                    next_run_at=result.next_run_at,
                    dead_lettered=result.dead_lettered,
                    dead_lettered_at=result.dead_lettered_at,
                    updated_at=now,
                )
            )
            await session.commit()
            return res.rowcount > 0

    async def append_run(self, record: ScheduleRunRecord) -> str:
        async with self.async_session() as session:
            await session.execute(
                insert(self.tables.runs).values(
                    id=record.id,
                    schedule_id=record.schedule_id,
                    trigger=record.trigger.value,
                    status=record.status.value,
                    error=record.error,
                    duration_ms=record.duration_ms,
                    retry_attempt=record.retry_attempt,
                    payload=record.payload,
                    created_at=record.created_at,
                )
            )
            await session.commit()
            return record.id

    async def list_recent_runs(self, entry_id: str, limit: int = 20) -> List[ScheduleRunRecord]:
        runs = self.tables.runs
        async with self.async_session() as session:
            result = await session.execute(
                select(runs)
                .where(runs.c.schedule_id == entry_id)
                .order_by(runs.c.seq.desc())
                .limit(limit)
            )
            return [self._row_to_run(row) for row in result.mappings()]

    async def _fetch_entry(self, session: AsyncSession, entry_id: str) -> Optional[ScheduleEntry]:
        result = await session.execute(select(self.tables.entries).where(self.tables.entries.c.id == entry_id))
        row = result.mappings().one_or_none()
        if row:
            return self._row_to_entry(row)
        return None

    def _entry_to_row(self, entry: ScheduleEntry) -> dict:
        row = entry.model_dump()
        row["owner_type"] = entry.owner_type.value
        return row

    def _row_to_entry(self, row) -> ScheduleEntry:
        return ScheduleEntry(
            id=row["id"],
            owner_type=OwnerType(row["owner_type"]),
            owner_id=row["owner_id"],
            site_id=row["site_id"],
            name=row["name"],
            action_key=row["action_key"],
            payload=row["payload"],
            enabled=bool(row["enabled"]),
            run_every_minutes=row["run_every_minutes"],
            max_retries=row["max_retries"],
            backoff_base_seconds=row["backoff_base_seconds"],
            retry_count=row["retry_count"],
            dead_lettered=bool(row["dead_lettered"]),
            dead_lettered_at=row["dead_lettered_at"],
            next_run_at=row["next_run_at"],
            last_run_at=row["last_run_at"],
            last_status=row["last_status"],
            last_error=row["last_error"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def _row_to_run(self, row) -> ScheduleRunRecord:
        return ScheduleRunRecord(
            id=row["id"],
            schedule_id=row["schedule_id"],
            trigger=RunTrigger(row["trigger"]),
            status=RunStatus(row["status"]),
            error=row["error"],
            duration_ms=row["duration_ms"],
            retry_attempt=row["retry_attempt"],
            payload=row["payload"] or {},
            created_at=row["created_at"],
        )


class InMemoryScheduleStore(SqlAlchemyScheduleStore):
    def __init__(self, prefix: str = "tooty_", clock: Callable[[], datetime] = utcnow):
        super().__init__("sqlite+aiosqlite:///:memory:", prefix=prefix, clock=clock)
