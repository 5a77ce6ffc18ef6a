from dataclasses import dataclass
from functools import lru_cache

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
)


@dataclass(frozen=True)
class SchedulerTables:
    metadata: MetaData
    entries: Table
    runs: Table
    locks: Table
    settings: Table


@lru_cache(maxsize=None)
def build_tables(prefix: str) -> SchedulerTables:
    """
    Table definitions for one deployment namespace. Every table name starts
    with ``prefix`` so several installations can share a database.
    """
    metadata = MetaData()

    entries = Table(
        f"{prefix}scheduled_actions",
        metadata,
        Column("id", String, primary_key=True),
        Column("owner_type", String, nullable=False),
        Column("owner_id", String, nullable=False),
        Column("site_id", String, nullable=True),
        Column("name", String, nullable=False),
        Column("action_key", String, nullable=False),
        Column("payload", JSON, nullable=False),
        Column("enabled", Boolean, nullable=False, default=True),
        Column("run_every_minutes", Integer, nullable=False, default=60),
        Column("max_retries", Integer, nullable=False, default=3),
        Column("backoff_base_seconds", Integer, nullable=False, default=60),
        Column("retry_count", Integer, nullable=False, default=0),
        Column("dead_lettered", Boolean, nullable=False, default=False),
        Column("dead_lettered_at", DateTime(timezone=True), nullable=True),
        Column("next_run_at", DateTime(timezone=True), nullable=True),
        Column("last_run_at", DateTime(timezone=True), nullable=True),
        Column("last_status", String, nullable=True),
        Column("last_error", Text, nullable=True),
        Column("created_at", DateTime(timezone=True), nullable=False),
        Column("updated_at", DateTime(timezone=True), nullable=False),
        Index(f"{prefix}scheduled_actions_due_idx", "enabled", "dead_lettered", "next_run_at"),
        Index(f"{prefix}scheduled_actions_owner_idx", "owner_type", "owner_id"),
    )

    runs = Table(
        f"{prefix}scheduled_action_runs",
        metadata,
        Column("seq", Integer, primary_key=True, autoincrement=True),
        Column("id", String, nullable=False, unique=True),
        Column(
            "schedule_id",
            String,
            ForeignKey(f"{entries.name}.id", ondelete="CASCADE"),
            nullable=False,
        ),
        Column("trigger", String, nullable=False),
        Column("status", String, nullable=False),
        Column("error", Text, nullable=True),
        Column("duration_ms", Integer, nullable=False, default=0),
        Column("retry_attempt", Integer, nullable=False, default=1),
        Column("payload", JSON, nullable=False),
        Column("created_at", DateTime(timezone=True), nullable=False),
        Index(f"{prefix}scheduled_action_runs_schedule_idx", "schedule_id", "seq"),
    )

    locks = Table(
        f"{prefix}scheduler_locks",
        metadata,
        Column("name", String, primary_key=True),
        Column("locked_by", String, nullable=False),
        Column("locked_at", DateTime(timezone=True), nullable=False),
        Column("expires_at", DateTime(timezone=True), nullable=False),
    )

    settings = Table(
        f"{prefix}cms_settings",
        metadata,
        Column("key", String, primary_key=True),
        Column("value", Text, nullable=False),
    )

    return SchedulerTables(metadata=metadata, entries=entries, runs=runs, locks=locks, settings=settings)
