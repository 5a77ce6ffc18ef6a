import asyncio
import logging

from cms_scheduler import IntervalBackend, SchedulerSettings, bootstrap
from cms_scheduler.domain.entry import CreateScheduleInput, OwnerType
from cms_scheduler.extensions import ExtensionRegistry, ScheduleHandler
from cms_scheduler.settings_store import SCHEDULES_ENABLED_KEY

logging.basicConfig(level=logging.INFO)


async def rebuild_search_index(site_id, payload):
    print(f"Rebuilding search index for site {site_id} with {payload}")
    return {"status": "success"}


async def check_search_config(site_id, payload):
    if not payload.get("index"):
        return {"ok": False, "error": "payload.index is required"}
    return {"ok": True}


async def main():
    extensions = ExtensionRegistry()
    extensions.register_handler(
        "search-plugin",
        ScheduleHandler(id="rebuild_index", run=rebuild_search_index, validate=check_search_config),
    )

    settings = SchedulerSettings(database_url="sqlite+aiosqlite:///./scheduler.db", tick_interval_seconds=5)
    backend = await bootstrap(settings, extensions, backend_class=IntervalBackend, tick_interval_seconds=5)
    await backend.settings.set_boolean(SCHEDULES_ENABLED_KEY, True)

    await backend.create_entry(OwnerType.PLUGIN, "search-plugin", CreateScheduleInput(
        site_id="site-1",
        name="Rebuild search index",
        action_key="rebuild_index",
        payload={"index": "posts"},
        run_every_minutes=1,
    ))
    await backend.create_entry(OwnerType.CORE, "core", CreateScheduleInput(
        name="Ping health endpoint",
        action_key="core.http_ping",
        payload={"url": "https://example.com"},
        run_every_minutes=5,
    ))

    await backend.start()
    try:
        await asyncio.sleep(75)
    finally:
        await backend.stop()

    for entry in await backend.list_entries(include_disabled=True):
        runs = await backend.list_recent_runs(entry.id, limit=5)
        print(entry.name, entry.last_status, [run.status.value for run in runs])
    await backend.store.dispose()


if __name__ == "__main__":
    asyncio.run(main())
