"""
Durable Task Scheduler

This package runs the recurring maintenance and extension work of a
multi-tenant CMS.

Core Concepts:

ScheduleEntry:
    A ScheduleEntry is a unit of work that runs every N minutes.
    It names an action (a built-in core action or a handler contributed by a
    plugin or theme), carries a JSON payload for it, and tracks its own retry
    state: consecutive failures back off exponentially and, once the retry
    budget is spent, the entry is dead-lettered until someone re-enables it.

ScheduleRunRecord:
    A ScheduleRunRecord is the audit row of a single execution attempt.
    Every tick or manual run appends exactly one record per entry it executed.

Tick:
    One call to ``run_due_schedules``: the entries that are due are executed
    one after another. Deployments with several scheduler processes wrap each
    tick in the scheduler lock (``run_locked_tick``).

Relationships:
    - A ScheduleEntry has many ScheduleRunRecords, deleted together with it.
"""

from .backends import IntervalBackend, SchedulerBackend
from .bootstrap import bootstrap
from .config import SchedulerSettings
from .errors import NotAuthorizedError, ScheduleNotFoundError, ScheduleValidationError, SchedulerError

__all__ = [
    "SchedulerBackend",
    "IntervalBackend",
    "bootstrap",
    "SchedulerSettings",
    "SchedulerError",
    "ScheduleNotFoundError",
    "NotAuthorizedError",
    "ScheduleValidationError",
]
