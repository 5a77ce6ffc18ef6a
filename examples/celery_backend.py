import asyncio

from celery import Celery

from cms_scheduler.backends.celery import CeleryBackend
from cms_scheduler.collaborators import CoreServices
from cms_scheduler.config import SchedulerSettings
from cms_scheduler.dispatcher import ActionDispatcher
from cms_scheduler.executor_factory import CoreActionRegistry
from cms_scheduler.settings_store import SCHEDULES_ENABLED_KEY, SqlAlchemySettingsStore
from cms_scheduler.storages.lock import SchedulerLock
from cms_scheduler.storages.sqlalchemy import SqlAlchemyScheduleStore

celery_app = Celery('cms_scheduler_app', broker='redis://localhost:6379/2', backend='redis://localhost:6379/3')
celery_app.conf.update(
    task_always_eager=False,
    task_eager_propagates=False,
    beat_scheduler='redbeat.RedBeatScheduler',
    redbeat_redis_url='redis://localhost:6379/1'
)

settings = SchedulerSettings(database_url="sqlite+aiosqlite:///./scheduler.db")
store = SqlAlchemyScheduleStore.from_settings(settings)
settings_store = SqlAlchemySettingsStore.for_store(store)
dispatcher = ActionDispatcher(
    CoreActionRegistry.with_defaults(CoreServices(settings=settings_store)),
    timeout_seconds=settings.action_timeout_seconds,
)

backend = CeleryBackend(
    store,
    dispatcher,
    settings_store,
    lock=SchedulerLock.for_store(store, ttl_seconds=settings.lock_ttl_seconds),
    celery_app=celery_app,
    tick_limit=settings.tick_limit,
)


async def prepare() -> None:
    await backend.start()
    await settings_store.set_boolean(SCHEDULES_ENABLED_KEY, True)
    await store.dispose()


if __name__ == "__main__":
    asyncio.run(prepare())
    backend.install_beat_entry()
    print("Beat entry installed. Start a worker with:")
    print("celery -A examples.celery_backend.celery_app worker --beat --scheduler redbeat.RedBeatScheduler -P solo --loglevel=info")
