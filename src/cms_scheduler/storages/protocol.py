from datetime import datetime
from typing import List, Optional, Protocol

from cms_scheduler.domain.backoff import Reconciliation
from cms_scheduler.domain.entry import (
    CreateScheduleInput,
    MutationActor,
    OwnerType,
    ScheduleEntry,
    UpdateScheduleInput,
)
from cms_scheduler.domain.run import ActionOutcome, ScheduleRunRecord


class ScheduleStore(Protocol):
    async def create_tables(self) -> None:
        """Create the scheduler tables if they do not exist yet. Safe to call repeatedly."""
        ...

    async def dispose(self) -> None:
        """Close pooled connections."""
        ...

    async def create_entry(self, owner_type: OwnerType, owner_id: str, data: CreateScheduleInput) -> ScheduleEntry:
        """Create a schedule entry. Raises ScheduleValidationError on a blank name or action key."""
        ...

    async def get_entry(self, entry_id: str) -> Optional[ScheduleEntry]:
        """Retrieve an entry by its ID."""
        ...

    async def list_entries(
        self,
        owner_type: Optional[OwnerType] = None,
        owner_id: Optional[str] = None,
        include_disabled: bool = False,
    ) -> List[ScheduleEntry]:
        """List entries, dead-lettered first, then by next run time (nulls last), then newest first."""
        ...

    async def update_entry(self, entry_id: str, patch: UpdateScheduleInput, actor: MutationActor) -> ScheduleEntry:
        """Apply a partial update. Raises ScheduleNotFoundError or NotAuthorizedError."""
        ...

    async def delete_entry(self, entry_id: str, actor: MutationActor) -> None:
        """Delete an entry and its run history. Raises ScheduleNotFoundError or NotAuthorizedError."""
        ...

    async def select_due(self, limit: int, now: datetime) -> List[ScheduleEntry]:
        """Enabled, non-quarantined entries whose next run time has passed, oldest first."""
        ...

    async def save_run_state(
        self,
        entry_id: str,
        result: Reconciliation,
        outcome: ActionOutcome,
        now: datetime,
    ) -> bool:
        """Persist the runtime state computed for an execution. Return False if the entry is gone."""
        ...

    async def append_run(self, record: ScheduleRunRecord) -> str:
        """Append an audit record and return its ID."""
        ...

    async def list_recent_runs(self, entry_id: str, limit: int = 20) -> List[ScheduleRunRecord]:
        """List audit records for an entry, newest first."""
        ...
