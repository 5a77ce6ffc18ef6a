import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from cms_scheduler.domain.entry import ScheduleEntry
from cms_scheduler.domain.run import ACTION_STATUSES, ActionOutcome, RunStatus
from cms_scheduler.executor_factory import CoreActionRegistry, PayloadValidationError
from cms_scheduler.extensions import ExtensionRegistry, HandlerCallable, ValidationResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CoreAction:
    key: str


@dataclass(frozen=True)
class ExtensionAction:
    owner_id: str
    key: str


ResolvedAction = Union[CoreAction, ExtensionAction]


def resolve_action(entry: ScheduleEntry) -> ResolvedAction:
    if entry.is_core:
        return CoreAction(entry.action_key)
    return ExtensionAction(entry.owner_id, entry.action_key)


class ActionDispatcher:
    """
    Runs the action behind a schedule entry and reports how it went.

    ``execute`` never raises: exceptions and timeouts become ``error``
    outcomes, unknown actions become ``skipped``.
    """

    def __init__(
        self,
        core_actions: CoreActionRegistry,
        extensions: Optional[ExtensionRegistry] = None,
        timeout_seconds: float = 30.0,
    ):
        self.core_actions = core_actions
        self.extensions = extensions or ExtensionRegistry()
        self.timeout_seconds = timeout_seconds

    async def execute(self, entry: ScheduleEntry) -> ActionOutcome:
        action = resolve_action(entry)
        task = asyncio.ensure_future(self._run(action, entry))
        try:
            done, _ = await asyncio.wait({task}, timeout=self.timeout_seconds)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if not done:
            # the action's own timeouts are reported below like any other failure
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            logger.warning("Schedule %s timed out after %ss", entry.id, self.timeout_seconds)
            return ActionOutcome.failed(f"action timed out after {self.timeout_seconds:g}s")

        try:
            return task.result()
        except Exception as e:
            logger.warning("Schedule %s failed: %s", entry.id, e)
            return ActionOutcome.failed(str(e) or e.__class__.__name__)

    async def _run(self, action: ResolvedAction, entry: ScheduleEntry) -> ActionOutcome:
        if isinstance(action, CoreAction):
            return await self._run_core(action, entry)
        return await self._run_extension(action, entry)

    async def _run_core(self, action: CoreAction, entry: ScheduleEntry) -> ActionOutcome:
        if self.core_actions.resolve(action.key) is None:
            return ActionOutcome.skipped(f"core action not found: {action.key}")
        try:
            executor, payload = self.core_actions.get_executor(action.key, entry.payload)
        except PayloadValidationError as e:
            return ActionOutcome.failed(str(e))
        return await executor.async_execute(entry, payload)

    async def _run_extension(self, action: ExtensionAction, entry: ScheduleEntry) -> ActionOutcome:
        handler = self.extensions.get_handler(action.owner_id, action.key)
        if handler is None:
            return ActionOutcome.skipped(f"handler not found: {action.owner_id}:{action.key}")

        if handler.validate is not None:
            verdict = _to_validation(await _call(handler.validate, entry.site_id, dict(entry.payload)))
            if not verdict.ok:
                return ActionOutcome.blocked(verdict.error or "handler validation failed")

        result = await _call(handler.run, entry.site_id, dict(entry.payload))
        return _to_outcome(result)


async def _call(fn: HandlerCallable, site_id: Optional[str], payload: Dict[str, Any]) -> Any:
    if inspect.iscoroutinefunction(fn):
        return await fn(site_id, payload)
    # plain callables run off the event loop so the timeout can still fire
    result = await asyncio.to_thread(fn, site_id, payload)
    if inspect.isawaitable(result):
        result = await result
    return result


def _read(value: Any, name: str) -> Any:
    if isinstance(value, dict):
        return value.get(name)
    return getattr(value, name, None)


def _to_validation(value: Any) -> ValidationResult:
    if isinstance(value, ValidationResult):
        return value
    if value is None:
        return ValidationResult(ok=True)
    if isinstance(value, bool):
        return ValidationResult(ok=value)
    error = _read(value, "error")
    return ValidationResult(ok=bool(_read(value, "ok")), error=str(error) if error else None)


def _to_outcome(value: Any) -> ActionOutcome:
    if isinstance(value, ActionOutcome):
        return value
    status = _read(value, "status")
    try:
        status = RunStatus(status)
    except ValueError:
        return ActionOutcome.success()
    if status not in ACTION_STATUSES:
        return ActionOutcome.success()
    error = _read(value, "error")
    return ActionOutcome(status=status, error=str(error) if error else None)
