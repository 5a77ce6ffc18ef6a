from .content import PublishDomainPostExecutor, UnpublishDomainPostExecutor
from .http import HttpPingExecutor, SitemapPingExecutor
from .maintenance import (
    CommunicationsPurgeExecutor,
    CommunicationsRetryExecutor,
    WebcallbacksPurgeExecutor,
    WebhooksRetryExecutor,
)

CORE_EXECUTORS = (
    SitemapPingExecutor,
    HttpPingExecutor,
    CommunicationsRetryExecutor,
    CommunicationsPurgeExecutor,
    WebcallbacksPurgeExecutor,
    WebhooksRetryExecutor,
    PublishDomainPostExecutor,
    UnpublishDomainPostExecutor,
)

__all__ = ["CORE_EXECUTORS"] + [executor.__name__ for executor in CORE_EXECUTORS]
