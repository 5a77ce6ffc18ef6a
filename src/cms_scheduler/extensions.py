import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel

logger = logging.getLogger(__name__)

HandlerCallable = Callable[[Optional[str], Dict[str, Any]], Any]


class ValidationResult(BaseModel):
    ok: bool
    error: Optional[str] = None


@dataclass
class ScheduleHandler:
    """
    An action contributed by a plugin or theme.

    ``run(site_id, payload)`` performs the work and may return a
    ``{"status": ..., "error": ...}`` mapping. ``validate(site_id, payload)``
    is an optional precondition returning ``{"ok": bool, "error": str}``.
    Either may be a coroutine function or a plain function.
    """
    id: str
    run: HandlerCallable
    validate: Optional[HandlerCallable] = None
    description: Optional[str] = None


class ExtensionRegistry:
    """
    Schedule handlers registered by extensions, looked up by owner and action key.
    """
    def __init__(self):
        self._handlers: Dict[str, Dict[str, ScheduleHandler]] = {}

    def register_handler(self, owner_id: str, handler: ScheduleHandler) -> None:
        handlers = self._handlers.setdefault(owner_id, {})
        if handler.id in handlers:
            raise ValueError(f"A handler '{handler.id}' is already registered for '{owner_id}'")
        handlers[handler.id] = handler
        logger.debug("Registered schedule handler %s:%s", owner_id, handler.id)

    def unregister_owner(self, owner_id: str) -> None:
        self._handlers.pop(owner_id, None)

    def get_handler(self, owner_id: str, action_key: str) -> Optional[ScheduleHandler]:
        return self._handlers.get(owner_id, {}).get(action_key)

    def list_handlers(self, owner_id: str) -> List[ScheduleHandler]:
        return list(self._handlers.get(owner_id, {}).values())
