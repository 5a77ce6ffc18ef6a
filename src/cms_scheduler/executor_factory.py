from typing import Dict, List, Optional, Tuple, Type

from pydantic import ValidationError

from cms_scheduler.collaborators import CoreServices
from cms_scheduler.executors import CORE_EXECUTORS
from cms_scheduler.executors.protocol import ActionPayload, CoreActionExecutor, describe_payload_error


class PayloadValidationError(ValueError):
    """
    Raised when an entry's payload does not match its action's schema.
    """


class CoreActionRegistry:
    """
    Maps built-in action keys (and their aliases) to executor classes.
    """
    def __init__(self, services: CoreServices):
        self.services = services
        self._executors: Dict[str, Type[CoreActionExecutor]] = {}

    @classmethod
    def with_defaults(cls, services: CoreServices) -> "CoreActionRegistry":
        registry = cls(services)
        for executor_class in CORE_EXECUTORS:
            registry.register(executor_class)
        return registry

    @property
    def action_keys(self) -> List[str]:
        return sorted({executor.action_key() for executor in self._executors.values()})

    def register(self, executor_class: Type[CoreActionExecutor]) -> None:
        """
        Register an executor class under its canonical key and its aliases.

        Args:
            executor_class (Type[CoreActionExecutor]): The executor class to register.
        """
        keys = (executor_class.action_key(), *executor_class.aliases())
        for key in keys:
            if key in self._executors:
                raise ValueError(f"An executor for action '{key}' is already registered")
        for key in keys:
            self._executors[key] = executor_class

    def resolve(self, action_key: str) -> Optional[Type[CoreActionExecutor]]:
        return self._executors.get(action_key)

    def get_executor(self, action_key: str, payload: dict) -> Tuple[CoreActionExecutor, ActionPayload]:
        """
        Get an executor instance for an action key together with its validated payload.

        Args:
            action_key (str): Canonical key or alias of the action.
            payload (Dict[str, Any]): The entry payload to validate.

        Returns:
            Tuple[CoreActionExecutor, ActionPayload]: The executor and the parsed payload.

        Raises:
            KeyError: If no executor is registered for the key.
            PayloadValidationError: If the payload is invalid for the action's schema.
        """
        executor_class = self.resolve(action_key)
        if executor_class is None:
            raise KeyError(f"No executor registered for action '{action_key}'")

        try:
            validated_payload = executor_class.payload_schema.model_validate(payload or {})
        except ValidationError as e:
            raise PayloadValidationError(describe_payload_error(e)) from e

        return executor_class(self.services), validated_payload
