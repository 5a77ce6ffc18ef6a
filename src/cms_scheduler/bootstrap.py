from typing import Optional, Type

from cms_scheduler.backends.base import SchedulerBackend
from cms_scheduler.collaborators import CoreServices
from cms_scheduler.config import SchedulerSettings
from cms_scheduler.dispatcher import ActionDispatcher
from cms_scheduler.executor_factory import CoreActionRegistry
from cms_scheduler.extensions import ExtensionRegistry
from cms_scheduler.settings_store import SqlAlchemySettingsStore
from cms_scheduler.storages.lock import SchedulerLock
from cms_scheduler.storages.sqlalchemy import SqlAlchemyScheduleStore


async def bootstrap(
    settings: Optional[SchedulerSettings] = None,
    extensions: Optional[ExtensionRegistry] = None,
    backend_class: Type[SchedulerBackend] = SchedulerBackend,
    **backend_kwargs,
) -> SchedulerBackend:
    """
    Wire a scheduler from settings and create its tables. Meant to run once at
    process start. Collaborators for built-in actions (``communications``,
    ``callback_events``, ``webhooks``, ``publisher``, ``site_directory``) are
    passed as keyword arguments; anything else goes to ``backend_class``.
    """
    settings = settings or SchedulerSettings()
    collaborator_names = ("site_directory", "communications", "callback_events", "webhooks", "publisher")
    collaborators = {name: backend_kwargs.pop(name) for name in collaborator_names if name in backend_kwargs}

    store = SqlAlchemyScheduleStore.from_settings(settings)
    settings_store = SqlAlchemySettingsStore.for_store(store)
    services = CoreServices(
        settings=settings_store,
        http_timeout_seconds=settings.http_timeout_seconds,
        clock=store.clock,
        **collaborators,
    )
    dispatcher = ActionDispatcher(
        CoreActionRegistry.with_defaults(services),
        extensions,
        timeout_seconds=settings.action_timeout_seconds,
    )
    lock = SchedulerLock.for_store(store, ttl_seconds=settings.lock_ttl_seconds)

    backend = backend_class(store, dispatcher, settings_store, lock=lock, clock=store.clock, **backend_kwargs)
    await store.create_tables()
    return backend
