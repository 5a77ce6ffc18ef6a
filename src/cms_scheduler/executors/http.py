import aiohttp
from pydantic import Field, field_validator

from cms_scheduler.domain.entry import ScheduleEntry
from cms_scheduler.domain.run import ActionOutcome
from cms_scheduler.executors.protocol import ActionPayload, BaseCoreExecutor, EmptyPayload, RequiredText
from cms_scheduler.settings_store import SCHEDULES_PING_SITEMAP_KEY, SITE_URL_KEY


class HttpPingPayload(ActionPayload):
    url: RequiredText = Field(..., description="The URL to request")
    method: str = Field("GET", description="The HTTP method to use (e.g. GET, POST, HEAD)")

    @field_validator("method", mode="before")
    def normalize_method(cls, v) -> str:
        return str(v or "GET").strip().upper() or "GET"


async def fetch_status(url: str, method: str, timeout_seconds: float) -> int:
    """
    Make a request and return the response status. The body is discarded.
    """
    timeout = aiohttp.ClientTimeout(total=timeout_seconds)
    headers = {"Cache-Control": "no-store"}
    async with aiohttp.ClientSession(timeout=timeout) as session:
        async with session.request(method=method, url=url, headers=headers) as response:
            return response.status


def _ok(status: int) -> bool:
    return 200 <= status < 300


class HttpPingExecutor(BaseCoreExecutor):
    """
    Request ``payload.url`` and fail on any non-2xx response.
    """
    payload_schema = HttpPingPayload

    @staticmethod
    def action_key() -> str:
        return "core.http_ping"

    @staticmethod
    def aliases():
        return ("http_ping",)

    async def async_execute(self, entry: ScheduleEntry, payload: HttpPingPayload) -> ActionOutcome:
        status = await fetch_status(payload.url, payload.method, self.services.http_timeout_seconds)
        if not _ok(status):
            return ActionOutcome.failed(f"http ping failed: {status}")
        return ActionOutcome.success()


class SitemapPingExecutor(BaseCoreExecutor):
    """
    Fetch ``<site url>/sitemap.xml`` so the sitemap is rebuilt and cached.
    Gated by the ``schedules_ping_sitemap`` setting.
    """
    payload_schema = EmptyPayload

    @staticmethod
    def action_key() -> str:
        return "core.ping_sitemap"

    @staticmethod
    def aliases():
        return ("ping_sitemap",)

    async def _site_url(self, entry: ScheduleEntry) -> str:
        directory = self.services.site_directory
        if entry.site_id and directory is not None:
            return (await directory.get_site_url(entry.site_id) or "").strip()
        return (await self.services.settings.get_text(SITE_URL_KEY, "")).strip()

    async def async_execute(self, entry: ScheduleEntry, payload: EmptyPayload) -> ActionOutcome:
        if not await self.services.settings.get_boolean(SCHEDULES_PING_SITEMAP_KEY, False):
            return ActionOutcome.skipped("sitemap ping disabled in settings")

        site_url = await self._site_url(entry)
        if not site_url:
            return ActionOutcome.skipped("site url not configured")

        target = f"{site_url.rstrip('/')}/sitemap.xml"
        status = await fetch_status(target, "GET", self.services.http_timeout_seconds)
        if not _ok(status):
            return ActionOutcome.failed(f"sitemap ping failed: {status}")
        return ActionOutcome.success()
