import asyncio

import aiohttp
import pytest
from aioresponses import aioresponses

from cms_scheduler.collaborators import CoreServices
from cms_scheduler.dispatcher import ActionDispatcher, CoreAction, ExtensionAction, resolve_action
from cms_scheduler.domain.entry import OwnerType, ScheduleEntry
from cms_scheduler.domain.run import RunStatus
from cms_scheduler.executor_factory import CoreActionRegistry
from cms_scheduler.extensions import ExtensionRegistry, ScheduleHandler, ValidationResult


def make_entry(owner_type=OwnerType.PLUGIN, owner_id="seo", action_key="rebuild", **payload) -> ScheduleEntry:
    return ScheduleEntry(
        owner_type=owner_type,
        owner_id=owner_id,
        site_id="site-1",
        name="Dispatch me",
        action_key=action_key,
        payload=payload,
    )


def test_resolve_action():
    assert resolve_action(make_entry(OwnerType.CORE, "core", "core.http_ping")) == CoreAction("core.http_ping")
    assert resolve_action(make_entry(OwnerType.THEME, "dark", "warm_cache")) == ExtensionAction("dark", "warm_cache")


@pytest.mark.asyncio
async def test_unknown_core_action_is_skipped(dispatcher: ActionDispatcher):
    outcome = await dispatcher.execute(make_entry(OwnerType.CORE, "core", "core.nope"))
    assert outcome.status == RunStatus.SKIPPED
    assert outcome.error == "core action not found: core.nope"


@pytest.mark.asyncio
async def test_core_payload_error_is_reported_not_raised(dispatcher: ActionDispatcher):
    outcome = await dispatcher.execute(make_entry(OwnerType.CORE, "core", "core.http_ping"))
    assert outcome.status == RunStatus.ERROR
    assert outcome.error == "payload.url is required"


@pytest.mark.asyncio
async def test_missing_handler_is_skipped(dispatcher: ActionDispatcher):
    outcome = await dispatcher.execute(make_entry())
    assert outcome.status == RunStatus.SKIPPED
    assert outcome.error == "handler not found: seo:rebuild"


@pytest.mark.asyncio
async def test_handler_receives_site_and_payload(dispatcher: ActionDispatcher, extensions: ExtensionRegistry):
    calls = []

    async def run(site_id, payload):
        calls.append((site_id, payload))

    extensions.register_handler("seo", ScheduleHandler(id="rebuild", run=run))

    outcome = await dispatcher.execute(make_entry(depth=2))

    assert outcome.status == RunStatus.SUCCESS
    assert calls == [("site-1", {"depth": 2})]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "returned, status, error",
    [
        ({"status": "skipped", "error": "nothing changed"}, RunStatus.SKIPPED, "nothing changed"),
        ({"status": "error", "error": "index locked"}, RunStatus.ERROR, "index locked"),
        ({"status": "blocked"}, RunStatus.BLOCKED, None),
        ({"status": "dead_letter"}, RunStatus.SUCCESS, None),
        ({"status": "weird"}, RunStatus.SUCCESS, None),
        ("done", RunStatus.SUCCESS, None),
    ],
)
async def test_handler_result_is_normalized(dispatcher, extensions, returned, status, error):
    async def run(site_id, payload):
        return returned

    extensions.register_handler("seo", ScheduleHandler(id="rebuild", run=run))

    outcome = await dispatcher.execute(make_entry())

    assert outcome.status == status
    assert outcome.error == error


@pytest.mark.asyncio
async def test_failed_validation_blocks_without_running(dispatcher, extensions):
    ran = []

    async def run(site_id, payload):
        ran.append(True)

    async def validate(site_id, payload):
        return {"ok": False, "error": "api key missing"}

    extensions.register_handler("seo", ScheduleHandler(id="rebuild", run=run, validate=validate))

    outcome = await dispatcher.execute(make_entry())

    assert outcome.status == RunStatus.BLOCKED
    assert outcome.error == "api key missing"
    assert ran == []


@pytest.mark.asyncio
@pytest.mark.parametrize("verdict", [None, True, ValidationResult(ok=True), {"ok": True}])
async def test_passing_validation_runs_handler(dispatcher, extensions, verdict):
    async def validate(site_id, payload):
        return verdict

    async def run(site_id, payload):
        return {"status": "success"}

    extensions.register_handler("seo", ScheduleHandler(id="rebuild", run=run, validate=validate))

    outcome = await dispatcher.execute(make_entry())

    assert outcome.status == RunStatus.SUCCESS


@pytest.mark.asyncio
async def test_handler_exception_becomes_error(dispatcher, extensions):
    async def run(site_id, payload):
        raise RuntimeError("search backend unavailable")

    extensions.register_handler("seo", ScheduleHandler(id="rebuild", run=run))

    outcome = await dispatcher.execute(make_entry())

    assert outcome.status == RunStatus.ERROR
    assert outcome.error == "search backend unavailable"


@pytest.mark.asyncio
async def test_slow_handler_times_out(services: CoreServices, extensions: ExtensionRegistry):
    dispatcher = ActionDispatcher(CoreActionRegistry.with_defaults(services), extensions, timeout_seconds=0.05)

    async def run(site_id, payload):
        await asyncio.sleep(10)

    extensions.register_handler("seo", ScheduleHandler(id="rebuild", run=run))

    outcome = await dispatcher.execute(make_entry())

    assert outcome.status == RunStatus.ERROR
    assert outcome.error == "action timed out after 0.05s"


@pytest.mark.asyncio
async def test_timeout_raised_by_handler_keeps_its_message(dispatcher, extensions):
    async def run(site_id, payload):
        raise asyncio.TimeoutError("upstream read timed out")

    extensions.register_handler("seo", ScheduleHandler(id="rebuild", run=run))

    outcome = await dispatcher.execute(make_entry())

    assert outcome.status == RunStatus.ERROR
    assert outcome.error == "upstream read timed out"


@pytest.mark.asyncio
async def test_http_client_timeout_is_not_reported_as_action_timeout(dispatcher):
    entry = make_entry(OwnerType.CORE, "core", "core.http_ping", url="https://slow.example.com")
    with aioresponses() as m:
        m.get("https://slow.example.com", exception=aiohttp.ServerTimeoutError("Timeout on reading data from socket"))

        outcome = await dispatcher.execute(entry)

    assert outcome.status == RunStatus.ERROR
    assert outcome.error == "Timeout on reading data from socket"


@pytest.mark.asyncio
async def test_plain_function_handler(dispatcher, extensions):
    def validate(site_id, payload):
        return {"ok": payload.get("ready", False), "error": "not ready"}

    def run(site_id, payload):
        return {"status": "skipped", "error": f"nothing to do for {site_id}"}

    extensions.register_handler("seo", ScheduleHandler(id="rebuild", run=run, validate=validate))

    blocked = await dispatcher.execute(make_entry())
    assert blocked.status == RunStatus.BLOCKED
    assert blocked.error == "not ready"

    skipped = await dispatcher.execute(make_entry(ready=True))
    assert skipped.status == RunStatus.SKIPPED
    assert skipped.error == "nothing to do for site-1"


def test_duplicate_handler_registration_fails(extensions: ExtensionRegistry):
    extensions.register_handler("seo", ScheduleHandler(id="rebuild", run=lambda site_id, payload: None))
    with pytest.raises(ValueError, match="already registered"):
        extensions.register_handler("seo", ScheduleHandler(id="rebuild", run=lambda site_id, payload: None))


def test_unregister_owner(extensions: ExtensionRegistry):
    handler = ScheduleHandler(id="rebuild", run=lambda site_id, payload: None)
    extensions.register_handler("seo", handler)
    assert extensions.list_handlers("seo") == [handler]

    extensions.unregister_owner("seo")

    assert extensions.get_handler("seo", "rebuild") is None
    assert extensions.list_handlers("seo") == []
