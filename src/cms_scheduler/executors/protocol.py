from typing import Annotated, Any, ClassVar, Protocol, Tuple, Type

from pydantic import BaseModel, BeforeValidator, ConfigDict, StringConstraints, ValidationError

from cms_scheduler.collaborators import CoreServices
from cms_scheduler.domain.entry import ScheduleEntry
from cms_scheduler.domain.run import ActionOutcome


def _none_to_blank(value: Any) -> Any:
    return "" if value is None else value


RequiredText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1), BeforeValidator(_none_to_blank)]


class ActionPayload(BaseModel):
    """
    Base class for built-in action payload schemas. Payload keys are the
    camelCase names stored with the schedule entry.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class EmptyPayload(ActionPayload):
    pass


def describe_payload_error(exc: ValidationError) -> str:
    messages = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err["loc"]) or "payload"
        if err["type"] in ("missing", "string_too_short"):
            messages.append(f"payload.{field} is required")
        else:
            messages.append(f"payload.{field}: {err['msg']}")
    return "; ".join(messages)


class CoreActionExecutor(Protocol):
    """
    Protocol class for built-in actions.
    """
    payload_schema: ClassVar[Type[ActionPayload]]

    def __init__(self, services: CoreServices) -> None:
        ...

    @staticmethod
    def action_key() -> str:
        """
        Return the canonical key this executor handles.
        """
        ...

    @staticmethod
    def aliases() -> Tuple[str, ...]:
        """
        Return alternative keys that resolve to this executor.
        """
        ...

    async def async_execute(self, entry: ScheduleEntry, payload: Any) -> ActionOutcome:
        """
        Run the action for ``entry`` with its validated payload.

        Args:
            entry (ScheduleEntry): The entry being executed.
            payload: An instance of ``payload_schema``.
        """
        ...


class BaseCoreExecutor:
    payload_schema: ClassVar[Type[ActionPayload]] = EmptyPayload

    def __init__(self, services: CoreServices) -> None:
        self.services = services

    @staticmethod
    def aliases() -> Tuple[str, ...]:
        return ()

    @staticmethod
    def missing(collaborator: str) -> ActionOutcome:
        return ActionOutcome.skipped(f"{collaborator} not configured")
