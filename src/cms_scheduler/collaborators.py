"""
Interfaces of the CMS subsystems that built-in actions call into.

The scheduler does not own any of these; the host application wires whichever
it has into ``CoreServices``. An action whose collaborator is missing reports
``skipped``.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional, Protocol

from cms_scheduler.domain.entry import utcnow
from cms_scheduler.settings_store import SettingsStore


class SiteDirectory(Protocol):
    async def get_site_url(self, site_id: str) -> str:
        """Public base URL of a site, or an empty string when unset."""
        ...


class CommunicationQueue(Protocol):
    async def retry_pending(self, limit: int) -> Any:
        """Redeliver queued, retrying and failed messages that are due."""
        ...

    async def purge(self, before: datetime) -> Any:
        """Delete queued/terminal messages created before ``before``."""
        ...


class CallbackEventLog(Protocol):
    async def purge(self, before: datetime) -> Any:
        """Delete processed, ignored and failed callback events created before ``before``."""
        ...


class WebhookDeliveries(Protocol):
    async def retry_pending(self, limit: int) -> Any:
        """Redeliver webhook deliveries that are due for another attempt."""
        ...


class ContentPublisher(Protocol):
    async def set_published(self, domain_post_id: str, published: bool, site_id: Optional[str]) -> bool:
        """Flip a domain post's published flag. Return False if the post does not exist."""
        ...


@dataclass
class CoreServices:
    settings: SettingsStore
    http_timeout_seconds: float = 15.0
    site_directory: Optional[SiteDirectory] = None
    communications: Optional[CommunicationQueue] = None
    callback_events: Optional[CallbackEventLog] = None
    webhooks: Optional[WebhookDeliveries] = None
    publisher: Optional[ContentPublisher] = None
    clock: Callable[[], datetime] = utcnow
