"""
Tick-level mutual exclusion between scheduler processes.

On PostgreSQL the lock is a session-scoped advisory lock held on a dedicated
connection, so it disappears together with a crashed process's connection.
Databases without advisory locks fall back to a lock row with an expiry: a
row left behind by a crashed process is reclaimed once ``ttl_seconds`` pass.

Both variants are non-blocking: ``try_acquire`` answers immediately.
"""
import logging
import uuid
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy import delete, insert, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from cms_scheduler.domain.entry import utcnow
from cms_scheduler.storages.tables import build_tables

logger = logging.getLogger(__name__)


class SchedulerLock:
    def __init__(
        self,
        engine: AsyncEngine,
        prefix: str = "tooty_",
        ttl_seconds: int = 300,
        instance_id: Optional[str] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.engine = engine
        self.name = f"{prefix}scheduler_lock"
        self.tables = build_tables(prefix)
        self.ttl_seconds = ttl_seconds
        self.instance_id = instance_id or uuid.uuid4().hex
        self.clock = clock
        self._conn: Optional[AsyncConnection] = None
        self._held = False

    @classmethod
    def for_store(cls, store, **kwargs) -> "SchedulerLock":
        return cls(store.engine, prefix=store.prefix, clock=store.clock, **kwargs)

    @property
    def held(self) -> bool:
        return self._held

    @property
    def uses_advisory_lock(self) -> bool:
        return self.engine.dialect.name == "postgresql"

    async def try_acquire(self) -> bool:
        if self._held:
            return False
        if self.uses_advisory_lock:
            self._held = await self._try_advisory()
        else:
            self._held = await self._try_lock_row()
        if self._held:
            logger.debug("Acquired scheduler lock %s as %s", self.name, self.instance_id)
        else:
            logger.debug("Scheduler lock %s is busy", self.name)
        return self._held

    async def release(self) -> None:
        if not self._held:
            return
        try:
            if self.uses_advisory_lock:
                await self._release_advisory()
            else:
                await self._release_lock_row()
        finally:
            self._held = False
        logger.debug("Released scheduler lock %s", self.name)

    async def _try_advisory(self) -> bool:
        conn = await self.engine.connect()
        try:
            result = await conn.execute(
                text("SELECT pg_try_advisory_lock(hashtext(:name)) AS acquired"), {"name": self.name}
            )
            acquired = bool(result.scalar())
            await conn.commit()
        except Exception:
            await conn.close()
            raise
        if not acquired:
            await conn.close()
            return False
        self._conn = conn
        return True

    async def _release_advisory(self) -> None:
        conn, self._conn = self._conn, None
        if conn is None:
            return
        try:
            await conn.execute(text("SELECT pg_advisory_unlock(hashtext(:name))"), {"name": self.name})
            await conn.commit()
        finally:
            await conn.close()

    async def _try_lock_row(self) -> bool:
        locks = self.tables.locks
        now = self.clock()
        async with self.engine.begin() as conn:
            await conn.execute(delete(locks).where(locks.c.name == self.name, locks.c.expires_at < now))
        try:
            async with self.engine.begin() as conn:
                await conn.execute(
                    insert(locks).values(
                        name=self.name,
                        locked_by=self.instance_id,
                        locked_at=now,
                        expires_at=now + timedelta(seconds=self.ttl_seconds),
                    )
                )
        except IntegrityError:
            return False
        return True

    async def _release_lock_row(self) -> None:
        locks = self.tables.locks
        async with self.engine.begin() as conn:
            await conn.execute(
                delete(locks).where(locks.c.name == self.name, locks.c.locked_by == self.instance_id)
            )
