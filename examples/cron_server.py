import logging

from aiohttp import web

from cms_scheduler import SchedulerSettings, bootstrap
from cms_scheduler.backends.http import create_cron_app

logging.basicConfig(level=logging.INFO)


async def build_app() -> web.Application:
    settings = SchedulerSettings()
    backend = await bootstrap(settings)

    app = create_cron_app(backend, settings.effective_cron_token, tick_limit=settings.tick_limit)

    async def close_store(app: web.Application) -> None:
        await backend.store.dispose()

    app.on_cleanup.append(close_store)
    return app


if __name__ == "__main__":
    # curl -X POST -H "Authorization: Bearer $CRON_RUN_TOKEN" http://localhost:8080/api/cron/run
    web.run_app(build_app(), port=8080)
