from .entry import (
    CreateScheduleInput,
    MutationActor,
    OwnerType,
    ScheduleEntry,
    UpdateScheduleInput,
)
from .run import ActionOutcome, ManualRunResult, RunStatus, RunTrigger, ScheduleRunRecord, TickResult
from .backoff import Reconciliation, backoff_seconds, reconcile

__all__ = [
    "ScheduleEntry", "OwnerType", "CreateScheduleInput", "UpdateScheduleInput", "MutationActor",
    "ActionOutcome", "RunStatus", "RunTrigger", "ScheduleRunRecord", "TickResult", "ManualRunResult",
    "Reconciliation", "backoff_seconds", "reconcile",
]
