"""
Retry and dead-letter bookkeeping for schedule entries.

Everything here is pure: given an entry, what its action reported and the
current time, ``reconcile`` decides the entry's next runtime state.

Blocked outcomes keep the current ``retry_count`` untouched. A failed
precondition is neither a fault (no retry is consumed and the entry is never
dead-lettered for it) nor evidence of recovery (an earlier failure streak is
not forgotten). The entry comes back at its normal cadence.
"""
from datetime import datetime, timedelta
from typing import Optional

from pydantic import BaseModel

from .entry import ScheduleEntry
from .run import ActionOutcome, RunStatus

MAX_BACKOFF_SECONDS = 24 * 60 * 60
MAX_BACKOFF_EXPONENT = 12


class Reconciliation(BaseModel):
    final_status: RunStatus
    retry_count: int
    next_run_at: Optional[datetime]
    dead_lettered: bool
    dead_lettered_at: Optional[datetime]


def backoff_seconds(base: int, attempt: int) -> int:
    exponent = max(1, min(MAX_BACKOFF_EXPONENT, attempt)) - 1
    return min(MAX_BACKOFF_SECONDS, base * 2 ** exponent)


def reconcile(entry: ScheduleEntry, outcome: ActionOutcome, now: datetime) -> Reconciliation:
    if entry.dead_lettered:
        return _rerun_in_quarantine(entry, outcome, now)

    cadence = now + timedelta(minutes=entry.run_every_minutes)

    if outcome.status == RunStatus.ERROR:
        retry_count = entry.retry_count + 1
        if retry_count > entry.max_retries:
            return _quarantined(entry, RunStatus.DEAD_LETTER, retry_count, now)
        next_run_at = now + timedelta(seconds=backoff_seconds(entry.backoff_base_seconds, retry_count))
        status = RunStatus.ERROR
    elif outcome.status == RunStatus.BLOCKED:
        retry_count = entry.retry_count
        next_run_at = cadence
        status = RunStatus.BLOCKED
    else:
        retry_count = 0
        next_run_at = cadence
        status = outcome.status

    return Reconciliation(
        final_status=status,
        retry_count=retry_count,
        next_run_at=next_run_at,
        dead_lettered=False,
        dead_lettered_at=None,
    )


def _rerun_in_quarantine(entry: ScheduleEntry, outcome: ActionOutcome, now: datetime) -> Reconciliation:
    """
    A manual run of a dead-lettered entry. The quarantine stays and a failure
    does not extend the retry count, which is already past ``max_retries``.
    """
    if outcome.status == RunStatus.ERROR:
        return _quarantined(entry, RunStatus.DEAD_LETTER, entry.retry_count, now)
    if outcome.status == RunStatus.BLOCKED:
        return _quarantined(entry, RunStatus.BLOCKED, entry.retry_count, now)
    return _quarantined(entry, outcome.status, 0, now)


def _quarantined(entry: ScheduleEntry, status: RunStatus, retry_count: int, now: datetime) -> Reconciliation:
    return Reconciliation(
        final_status=status,
        retry_count=retry_count,
        next_run_at=None,
        dead_lettered=True,
        dead_lettered_at=entry.dead_lettered_at or now,
    )
