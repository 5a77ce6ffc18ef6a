from datetime import timedelta

from pydantic import Field

from cms_scheduler.domain.entry import ScheduleEntry
from cms_scheduler.domain.run import ActionOutcome
from cms_scheduler.executors.protocol import ActionPayload, BaseCoreExecutor


class RetryLimitPayload(ActionPayload):
    limit: int = Field(20, ge=1, le=500)


class WebhookRetryPayload(ActionPayload):
    limit: int = Field(25, ge=1, le=200)


class PurgePayload(ActionPayload):
    older_than_days: int = Field(7, ge=0, le=3650, alias="olderThanDays")


class CommunicationsRetryExecutor(BaseCoreExecutor):
    payload_schema = RetryLimitPayload

    @staticmethod
    def action_key() -> str:
        return "core.communications_retry"

    @staticmethod
    def aliases():
        return ("communications_retry",)

    async def async_execute(self, entry: ScheduleEntry, payload: RetryLimitPayload) -> ActionOutcome:
        queue = self.services.communications
        if queue is None:
            return self.missing("communication queue")
        await queue.retry_pending(payload.limit)
        return ActionOutcome.success()


class CommunicationsPurgeExecutor(BaseCoreExecutor):
    payload_schema = PurgePayload

    @staticmethod
    def action_key() -> str:
        return "core.communications_purge"

    @staticmethod
    def aliases():
        return ("communications_purge",)

    async def async_execute(self, entry: ScheduleEntry, payload: PurgePayload) -> ActionOutcome:
        queue = self.services.communications
        if queue is None:
            return self.missing("communication queue")
        before = self.services.clock() - timedelta(days=payload.older_than_days)
        await queue.purge(before)
        return ActionOutcome.success()


class WebcallbacksPurgeExecutor(BaseCoreExecutor):
    payload_schema = PurgePayload

    @staticmethod
    def action_key() -> str:
        return "core.webcallbacks_purge"

    @staticmethod
    def aliases():
        return ("webcallbacks_purge",)

    async def async_execute(self, entry: ScheduleEntry, payload: PurgePayload) -> ActionOutcome:
        events = self.services.callback_events
        if events is None:
            return self.missing("callback event log")
        before = self.services.clock() - timedelta(days=payload.older_than_days)
        await events.purge(before)
        return ActionOutcome.success()


class WebhooksRetryExecutor(BaseCoreExecutor):
    payload_schema = WebhookRetryPayload

    @staticmethod
    def action_key() -> str:
        return "core.webhooks_retry"

    @staticmethod
    def aliases():
        return ("webhooks_retry",)

    async def async_execute(self, entry: ScheduleEntry, payload: WebhookRetryPayload) -> ActionOutcome:
        webhooks = self.services.webhooks
        if webhooks is None:
            return self.missing("webhook deliveries")
        await webhooks.retry_pending(payload.limit)
        return ActionOutcome.success()
