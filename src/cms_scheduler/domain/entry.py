import json
import math
import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field, field_validator

UTC = ZoneInfo("UTC")

RUN_EVERY_MINUTES_RANGE = (1, 24 * 60)
MAX_RETRIES_RANGE = (0, 25)
BACKOFF_BASE_SECONDS_RANGE = (5, 3600)

DEFAULT_RUN_EVERY_MINUTES = 60
DEFAULT_MAX_RETRIES = 3
DEFAULT_BACKOFF_BASE_SECONDS = 60


def utcnow() -> datetime:
    return datetime.now(UTC)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Attach UTC to naive datetimes (SQLite drops the offset on the way back)
    and convert aware ones to UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def clamp_int(value: Any, low: int, high: int, fallback: int) -> int:
    if isinstance(value, bool):
        return fallback
    try:
        number = float(value)
    except (TypeError, ValueError):
        return fallback
    if not math.isfinite(number):
        return fallback
    return max(low, min(high, int(number)))


def parse_payload(raw: Any) -> Dict[str, Any]:
    if not raw:
        return {}
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, str):
        try:
            parsed = json.loads(raw)
        except ValueError:
            return {}
        return parsed if isinstance(parsed, dict) else {}
    return {}


class OwnerType(str, Enum):
    CORE = "core"
    PLUGIN = "plugin"
    THEME = "theme"


class ScheduleEntry(BaseModel):
    """
    A recurring unit of work owned by the core, a plugin or a theme.
    """
    id: str = Field(default_factory=lambda: f"sch_{uuid.uuid4().hex}", description="Unique schedule identifier")
    owner_type: OwnerType
    owner_id: str
    site_id: Optional[str] = Field(None, description="Site scope; None means network-wide")
    name: str
    action_key: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    enabled: bool = True
    run_every_minutes: int = DEFAULT_RUN_EVERY_MINUTES
    max_retries: int = DEFAULT_MAX_RETRIES
    backoff_base_seconds: int = DEFAULT_BACKOFF_BASE_SECONDS
    retry_count: int = 0
    dead_lettered: bool = False
    dead_lettered_at: Optional[datetime] = None
    next_run_at: Optional[datetime] = Field(None, description="None means the entry will not run automatically")
    last_run_at: Optional[datetime] = None
    last_status: Optional[str] = None
    last_error: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("dead_lettered_at", "next_run_at", "last_run_at", "created_at", "updated_at")
    def check_timezone(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    @field_validator("payload", mode="before")
    def coerce_payload(cls, v: Any) -> Dict[str, Any]:
        return parse_payload(v)

    @property
    def is_core(self) -> bool:
        return self.owner_type == OwnerType.CORE

    def is_due(self, now: datetime) -> bool:
        return (
            self.enabled
            and not self.dead_lettered
            and self.next_run_at is not None
            and self.next_run_at <= now
        )


class CreateScheduleInput(BaseModel):
    site_id: Optional[str] = None
    name: str = ""
    action_key: str = ""
    payload: Dict[str, Any] = Field(default_factory=dict)
    enabled: bool = True
    run_every_minutes: int = DEFAULT_RUN_EVERY_MINUTES
    max_retries: int = DEFAULT_MAX_RETRIES
    backoff_base_seconds: int = DEFAULT_BACKOFF_BASE_SECONDS
    next_run_at: Optional[datetime] = None

    @field_validator("name", "action_key", mode="before")
    def strip_text(cls, v: Any) -> str:
        return str(v or "").strip()

    @field_validator("site_id", mode="before")
    def blank_site_is_global(cls, v: Any) -> Optional[str]:
        return str(v) if v else None

    @field_validator("payload", mode="before")
    def coerce_payload(cls, v: Any) -> Dict[str, Any]:
        return parse_payload(v)

    @field_validator("run_every_minutes", mode="before")
    def clamp_run_every(cls, v: Any) -> int:
        return clamp_int(v, *RUN_EVERY_MINUTES_RANGE, DEFAULT_RUN_EVERY_MINUTES)

    @field_validator("max_retries", mode="before")
    def clamp_max_retries(cls, v: Any) -> int:
        return clamp_int(v, *MAX_RETRIES_RANGE, DEFAULT_MAX_RETRIES)

    @field_validator("backoff_base_seconds", mode="before")
    def clamp_backoff_base(cls, v: Any) -> int:
        return clamp_int(v, *BACKOFF_BASE_SECONDS_RANGE, DEFAULT_BACKOFF_BASE_SECONDS)

    @field_validator("next_run_at")
    def check_timezone(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)


class UpdateScheduleInput(BaseModel):
    """
    A partial update. Only fields that were explicitly set are applied; numeric
    fields that cannot be read as numbers keep their current value.
    """
    site_id: Optional[str] = None
    name: Optional[str] = None
    action_key: Optional[str] = None
    payload: Optional[Dict[str, Any]] = None
    enabled: Optional[bool] = None
    run_every_minutes: Optional[int] = None
    max_retries: Optional[int] = None
    backoff_base_seconds: Optional[int] = None
    next_run_at: Optional[datetime] = None

    @field_validator("name", "action_key", mode="before")
    def strip_text(cls, v: Any) -> Optional[str]:
        return None if v is None else str(v).strip()

    @field_validator("site_id", mode="before")
    def blank_site_is_global(cls, v: Any) -> Optional[str]:
        return str(v) if v else None

    @field_validator("payload", mode="before")
    def coerce_payload(cls, v: Any) -> Dict[str, Any]:
        return parse_payload(v)

    @field_validator("run_every_minutes", mode="before")
    def clamp_run_every(cls, v: Any) -> Optional[int]:
        return _clamp_or_none(v, RUN_EVERY_MINUTES_RANGE)

    @field_validator("max_retries", mode="before")
    def clamp_max_retries(cls, v: Any) -> Optional[int]:
        return _clamp_or_none(v, MAX_RETRIES_RANGE)

    @field_validator("backoff_base_seconds", mode="before")
    def clamp_backoff_base(cls, v: Any) -> Optional[int]:
        return _clamp_or_none(v, BACKOFF_BASE_SECONDS_RANGE)

    @field_validator("next_run_at")
    def check_timezone(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    def changes(self, entry: ScheduleEntry, now: datetime) -> Dict[str, Any]:
        """
        The columns this patch writes. Runtime state (retry count, last run,
        dead-letter flags) only appears when re-enabling lifts the quarantine.
        """
        fields = self.model_fields_set
        changes: Dict[str, Any] = {}
        for name in ("site_id", "next_run_at"):
            if name in fields:
                changes[name] = getattr(self, name)
        for name in ("name", "action_key", "payload", "enabled",
                     "run_every_minutes", "max_retries", "backoff_base_seconds"):
            value = getattr(self, name)
            if name in fields and value is not None:
                changes[name] = value

        if self.enabled is True and entry.dead_lettered:
            changes["dead_lettered"] = False
            changes["dead_lettered_at"] = None
            changes["retry_count"] = 0
            if changes.get("next_run_at") is None:
                changes["next_run_at"] = now
        elif entry.dead_lettered and "next_run_at" in changes:
            # a quarantined entry never has a next run
            changes["next_run_at"] = None

        changes["updated_at"] = now
        return changes

    def apply_to(self, entry: ScheduleEntry, now: datetime) -> ScheduleEntry:
        """
        Return a copy of ``entry`` with this patch applied. Re-enabling a
        dead-lettered entry lifts the quarantine in the same step.
        """
        return entry.model_copy(update=self.changes(entry, now))


def _clamp_or_none(value: Any, bounds) -> Optional[int]:
    if value is None:
        return None
    low, high = bounds
    sentinel = low - 1
    clamped = clamp_int(value, low, high, sentinel)
    return None if clamped == sentinel else clamped


class MutationActor(BaseModel):
    """
    Who is asking to change a schedule entry.
    """
    is_admin: bool = False
    owner_type: Optional[OwnerType] = None
    owner_id: Optional[str] = None

    def can_mutate(self, entry: ScheduleEntry) -> bool:
        if self.is_admin:
            return True
        return self.owner_type == entry.owner_type and self.owner_id == entry.owner_id
