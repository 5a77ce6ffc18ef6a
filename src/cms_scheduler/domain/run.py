import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

from .entry import ensure_utc, utcnow


class RunTrigger(str, Enum):
    CRON = "cron"
    MANUAL = "manual"


class RunStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    SKIPPED = "skipped"
    BLOCKED = "blocked"
    DEAD_LETTER = "dead_letter"


# Statuses an action itself may report; dead_letter is only ever decided by reconciliation.
ACTION_STATUSES = frozenset({RunStatus.SUCCESS, RunStatus.ERROR, RunStatus.SKIPPED, RunStatus.BLOCKED})


class ActionOutcome(BaseModel):
    """
    What a dispatched action reported.
    """
    status: RunStatus
    error: Optional[str] = None

    @field_validator("status")
    def check_action_status(cls, v: RunStatus) -> RunStatus:
        if v not in ACTION_STATUSES:
            raise ValueError(f"Actions cannot report status '{v.value}'")
        return v

    @classmethod
    def success(cls) -> "ActionOutcome":
        return cls(status=RunStatus.SUCCESS)

    @classmethod
    def failed(cls, error: str) -> "ActionOutcome":
        return cls(status=RunStatus.ERROR, error=error)

    @classmethod
    def skipped(cls, error: str) -> "ActionOutcome":
        return cls(status=RunStatus.SKIPPED, error=error)

    @classmethod
    def blocked(cls, error: Optional[str]) -> "ActionOutcome":
        return cls(status=RunStatus.BLOCKED, error=error)


class ScheduleRunRecord(BaseModel):
    """
    One immutable audit row per execution attempt of a schedule entry.
    """
    id: str = Field(default_factory=lambda: f"run_{uuid.uuid4().hex}", description="Unique run identifier")
    schedule_id: str
    trigger: RunTrigger
    status: RunStatus
    error: Optional[str] = None
    duration_ms: int = 0
    retry_attempt: int = Field(1, ge=1, description="1-based attempt ordinal within the current failure streak")
    payload: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("created_at")
    def check_timezone(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class TickResult(BaseModel):
    ran: int = 0
    skipped: int = 0
    blocked: int = 0
    errors: int = 0
    dead_lettered: int = 0
    busy: bool = False
    message: str = "ok"

    def count(self, status: RunStatus) -> None:
        self.ran += 1
        if status == RunStatus.SKIPPED:
            self.skipped += 1
        elif status == RunStatus.BLOCKED:
            self.blocked += 1
        elif status == RunStatus.ERROR:
            self.errors += 1
        elif status == RunStatus.DEAD_LETTER:
            self.dead_lettered += 1


class ManualRunResult(BaseModel):
    ok: bool
    status: RunStatus
    error: Optional[str] = None
