from datetime import datetime, timedelta, timezone

import pytest

from cms_scheduler.domain.entry import (
    CreateScheduleInput,
    MutationActor,
    OwnerType,
    ScheduleEntry,
    UpdateScheduleInput,
    clamp_int,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_entry(**overrides) -> ScheduleEntry:
    fields = dict(
        owner_type=OwnerType.PLUGIN,
        owner_id="seo",
        name="Rebuild index",
        action_key="rebuild",
        next_run_at=NOW,
    )
    fields.update(overrides)
    return ScheduleEntry(**fields)


@pytest.mark.parametrize(
    "value, expected",
    [
        (0, 1),
        (-5, 1),
        (1441, 1440),
        (30, 30),
        ("45", 45),
        (12.9, 12),
        ("abc", 60),
        (None, 60),
        (True, 60),
        (float("nan"), 60),
        (float("inf"), 60),
    ],
)
def test_clamp_int(value, expected):
    assert clamp_int(value, 1, 1440, 60) == expected


def test_create_input_clamps_and_normalizes():
    data = CreateScheduleInput(
        site_id="",
        name="  Nightly  ",
        action_key=" core.http_ping ",
        payload='{"url": "https://example.com"}',
        run_every_minutes=0,
        max_retries=99,
        backoff_base_seconds=1,
    )
    assert data.site_id is None
    assert data.name == "Nightly"
    assert data.action_key == "core.http_ping"
    assert data.payload == {"url": "https://example.com"}
    assert data.run_every_minutes == 1
    assert data.max_retries == 25
    assert data.backoff_base_seconds == 5


def test_create_input_defaults_for_garbage():
    data = CreateScheduleInput(name="x", action_key="y", run_every_minutes="often", max_retries=None, payload="[1, 2]")
    assert data.run_every_minutes == 60
    assert data.max_retries == 3
    assert data.backoff_base_seconds == 60
    assert data.payload == {}


def test_entry_normalizes_naive_datetimes_to_utc():
    entry = make_entry(next_run_at=datetime(2026, 3, 1, 12, 0))
    assert entry.next_run_at == NOW
    assert entry.next_run_at.tzinfo is not None


def test_is_due():
    assert make_entry().is_due(NOW) is True
    assert make_entry(next_run_at=NOW + timedelta(seconds=1)).is_due(NOW) is False
    assert make_entry(enabled=False).is_due(NOW) is False
    assert make_entry(dead_lettered=True).is_due(NOW) is False
    assert make_entry(next_run_at=None).is_due(NOW) is False


def test_update_applies_only_given_fields():
    entry = make_entry(run_every_minutes=30, payload={"a": 1})

    updated = UpdateScheduleInput(name="Renamed").apply_to(entry, NOW)

    assert updated.name == "Renamed"
    assert updated.run_every_minutes == 30
    assert updated.payload == {"a": 1}
    assert updated.next_run_at == NOW
    assert updated.updated_at == NOW


def test_update_ignores_unreadable_numbers():
    entry = make_entry(run_every_minutes=30, max_retries=4)

    updated = UpdateScheduleInput(run_every_minutes="soon", max_retries=100).apply_to(entry, NOW)

    assert updated.run_every_minutes == 30
    assert updated.max_retries == 25


def test_update_can_clear_next_run_and_site():
    entry = make_entry(site_id="site-1")

    updated = UpdateScheduleInput(next_run_at=None, site_id="").apply_to(entry, NOW)

    assert updated.next_run_at is None
    assert updated.site_id is None


def test_reenable_lifts_dead_letter():
    entry = make_entry(
        enabled=False, dead_lettered=True, dead_lettered_at=NOW - timedelta(days=1), retry_count=4, next_run_at=None
    )

    updated = UpdateScheduleInput(enabled=True).apply_to(entry, NOW)

    assert updated.enabled is True
    assert updated.dead_lettered is False
    assert updated.dead_lettered_at is None
    assert updated.retry_count == 0
    assert updated.next_run_at == NOW


def test_reenable_keeps_explicit_next_run():
    later = NOW + timedelta(hours=2)
    entry = make_entry(dead_lettered=True, dead_lettered_at=NOW, retry_count=4, next_run_at=None)

    updated = UpdateScheduleInput(enabled=True, next_run_at=later).apply_to(entry, NOW)

    assert updated.next_run_at == later
    assert updated.dead_lettered is False


def test_other_updates_keep_dead_letter():
    entry = make_entry(dead_lettered=True, dead_lettered_at=NOW, retry_count=4, next_run_at=None)

    updated = UpdateScheduleInput(name="Still broken").apply_to(entry, NOW)

    assert updated.dead_lettered is True
    assert updated.retry_count == 4


def test_next_run_of_dead_lettered_entry_stays_empty():
    entry = make_entry(dead_lettered=True, dead_lettered_at=NOW, retry_count=4, next_run_at=None)

    patch = UpdateScheduleInput(next_run_at=NOW + timedelta(hours=1))
    updated = patch.apply_to(entry, NOW)

    assert updated.dead_lettered is True
    assert updated.next_run_at is None


def test_changes_leave_runtime_state_alone():
    entry = make_entry(retry_count=2, last_status="error", last_error="boom")

    changes = UpdateScheduleInput(name="Renamed", run_every_minutes=5).changes(entry, NOW)

    assert changes == {"name": "Renamed", "run_every_minutes": 5, "updated_at": NOW}


def test_mutation_actor():
    entry = make_entry()
    assert MutationActor(is_admin=True).can_mutate(entry) is True
    assert MutationActor(owner_type=OwnerType.PLUGIN, owner_id="seo").can_mutate(entry) is True
    assert MutationActor(owner_type=OwnerType.THEME, owner_id="seo").can_mutate(entry) is False
    assert MutationActor(owner_type=OwnerType.PLUGIN, owner_id="other").can_mutate(entry) is False
    assert MutationActor().can_mutate(entry) is False
