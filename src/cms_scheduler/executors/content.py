from pydantic import Field

from cms_scheduler.domain.entry import ScheduleEntry
from cms_scheduler.domain.run import ActionOutcome
from cms_scheduler.executors.protocol import ActionPayload, BaseCoreExecutor, RequiredText


class DomainPostPayload(ActionPayload):
    domain_post_id: RequiredText = Field(..., alias="domainPostId")


class _PublishStateExecutor(BaseCoreExecutor):
    payload_schema = DomainPostPayload
    published: bool = True

    async def async_execute(self, entry: ScheduleEntry, payload: DomainPostPayload) -> ActionOutcome:
        publisher = self.services.publisher
        if publisher is None:
            return self.missing("content publisher")
        found = await publisher.set_published(payload.domain_post_id, self.published, entry.site_id)
        if not found:
            return ActionOutcome.failed(f"domain post not found: {payload.domain_post_id}")
        return ActionOutcome.success()


class PublishDomainPostExecutor(_PublishStateExecutor):
    published = True

    @staticmethod
    def action_key() -> str:
        return "core.publish_domain_post"

    @staticmethod
    def aliases():
        return ("publish_domain_post",)


class UnpublishDomainPostExecutor(_PublishStateExecutor):
    published = False

    @staticmethod
    def action_key() -> str:
        return "core.unpublish_domain_post"

    @staticmethod
    def aliases():
        return ("unpublish_domain_post",)
