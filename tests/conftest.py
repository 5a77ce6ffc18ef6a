from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from cms_scheduler.backends.base import SchedulerBackend
from cms_scheduler.collaborators import CoreServices
from cms_scheduler.dispatcher import ActionDispatcher
from cms_scheduler.executor_factory import CoreActionRegistry
from cms_scheduler.extensions import ExtensionRegistry
from cms_scheduler.settings_store import SCHEDULES_ENABLED_KEY, InMemorySettingsStore
from cms_scheduler.storages.lock import SchedulerLock
from cms_scheduler.storages.sqlalchemy import InMemoryScheduleStore


class FrozenClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture(scope="function")
def clock() -> FrozenClock:
    return FrozenClock(datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc))


@pytest_asyncio.fixture(scope="function")
async def store(clock: FrozenClock):
    store = InMemoryScheduleStore(clock=clock)
    await store.create_tables()
    yield store
    await store.dispose()


@pytest.fixture(scope="function")
def settings() -> InMemorySettingsStore:
    return InMemorySettingsStore({SCHEDULES_ENABLED_KEY: "true"})


@pytest.fixture(scope="function")
def extensions() -> ExtensionRegistry:
    return ExtensionRegistry()


@pytest.fixture(scope="function")
def services(settings: InMemorySettingsStore, clock: FrozenClock) -> CoreServices:
    return CoreServices(settings=settings, http_timeout_seconds=5, clock=clock)


@pytest.fixture(scope="function")
def dispatcher(services: CoreServices, extensions: ExtensionRegistry) -> ActionDispatcher:
    return ActionDispatcher(CoreActionRegistry.with_defaults(services), extensions, timeout_seconds=2)


@pytest.fixture(scope="function")
def backend(store, dispatcher, settings, clock) -> SchedulerBackend:
    lock = SchedulerLock.for_store(store)
    return SchedulerBackend(store, dispatcher, settings, lock=lock, clock=clock)
