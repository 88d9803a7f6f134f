"""TransitionRecorder against a temporary SQLite database."""

from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from database.repositories import (
    AliasRepository,
    DependencyRepository,
    ErrorHistoryRepository,
    LatencyHistoryRepository,
    TargetRepository,
)
from monitoring.history import ErrorHistoryRecorder
from monitoring.models import DependencyStatus
from monitoring.recorder import TransitionRecorder


@pytest_asyncio.fixture
async def repos(db, target):
    await TargetRepository(db).create(target)
    return {
        "dependencies": DependencyRepository(db),
        "aliases": AliasRepository(db),
        "latency": LatencyHistoryRepository(db),
        "errors": ErrorHistoryRepository(db),
    }


@pytest.fixture
def recorder(repos):
    return TransitionRecorder(
        dependencies=repos["dependencies"],
        aliases=repos["aliases"],
        latency_history=repos["latency"],
        error_history=ErrorHistoryRecorder(repos["errors"]),
    )


def status(name="postgres", healthy=True, latency=12, checked="2024-05-01T10:00:00+00:00", **kwargs):
    return DependencyStatus(name=name, healthy=healthy, latency_ms=latency, last_checked=checked, **kwargs)


@pytest.mark.asyncio
async def test_first_poll_creates_rows_without_events(recorder, repos, target):
    events = await recorder.record(target, [status(), status("redis", latency=0)], now="t1")

    rows = await repos["dependencies"].find_by_service(target.id)
    assert events == []
    assert [row.name for row in rows] == ["postgres", "redis"]
    assert rows[0].latency_ms == 12
    assert rows[0].last_status_change is None


@pytest.mark.asyncio
async def test_identical_status_keeps_one_row_and_one_error(recorder, repos, target):
    unhealthy = status(healthy=False, error={"code": "ECONNREFUSED"}, error_message="refused")

    await recorder.record(target, [unhealthy], now="t1")
    events = await recorder.record(target, [unhealthy], now="t2")

    rows = await repos["dependencies"].find_by_service(target.id)
    assert events == []
    assert len(rows) == 1
    assert len(await repos["latency"].for_dependency(rows[0].id)) == 2
    assert len(await repos["errors"].for_dependency(rows[0].id)) == 1


@pytest.mark.asyncio
async def test_latency_sampled_each_poll_even_when_last_checked_is_stale(recorder, repos, target):
    await recorder.record(target, [status(latency=12)], now="t1")
    await recorder.record(target, [status(latency=15)], now="t1")
    await recorder.record(target, [status(latency=18)], now="t2")

    [row] = await repos["dependencies"].find_by_service(target.id)
    samples = await repos["latency"].for_dependency(row.id)
    assert [(s.latency_ms, s.recorded_at) for s in samples] == [(12, "t1"), (18, "t2")]


@pytest.mark.asyncio
async def test_flip_emits_event_and_marks_change(recorder, repos, target):
    await recorder.record(target, [status(healthy=True)], now="t1")

    events = await recorder.record(
        target,
        [status(healthy=False, checked="2024-05-01T10:00:30+00:00", error_message="timeout")],
        now="t2",
    )

    [row] = await repos["dependencies"].find_by_service(target.id)
    [event] = events
    assert event.previous_healthy is True
    assert event.current_healthy is False
    assert event.dependency_id == row.id
    assert event.dependency_name == "postgres"
    assert event.target_name == "orders"
    assert event.timestamp == "t2"
    assert row.last_status_change == "t2"
    assert row.healthy is False

    history = await repos["errors"].for_dependency(row.id)
    assert [entry.error_message for entry in history] == ["timeout"]


@pytest.mark.asyncio
async def test_recovery_writes_recovery_entry(recorder, repos, target):
    await recorder.record(target, [status(healthy=False)], now="t1")
    [event] = await recorder.record(target, [status(healthy=True, checked="later")], now="t2")

    [row] = await repos["dependencies"].find_by_service(target.id)
    history = await repos["errors"].for_dependency(row.id)
    assert event.current_healthy is True
    assert [entry.error for entry in history] == ['{"unhealthy": true}', None]


@pytest.mark.asyncio
async def test_alias_resolves_to_canonical_name(recorder, repos, target):
    await repos["aliases"].add("pg-primary", "postgres")

    await recorder.record(target, [status("postgres")], now="t1")
    events = await recorder.record(target, [status("pg-primary", healthy=False)], now="t2")

    rows = await repos["dependencies"].find_by_service(target.id)
    assert [row.name for row in rows] == ["postgres"]
    assert events[0].dependency_name == "postgres"


@pytest.mark.asyncio
async def test_duplicate_names_in_one_batch_compare_in_order(recorder, target):
    events = await recorder.record(
        target,
        [status(healthy=True), status(healthy=False, checked="b")],
        now="t1",
    )

    assert len(events) == 1
    assert events[0].previous_healthy is True


@pytest.mark.asyncio
async def test_history_failure_does_not_fail_the_poll(repos, target):
    latency = AsyncMock()
    latency.record.side_effect = RuntimeError("disk full")
    recorder = TransitionRecorder(
        dependencies=repos["dependencies"],
        aliases=repos["aliases"],
        latency_history=latency,
        error_history=ErrorHistoryRecorder(repos["errors"]),
    )

    await recorder.record(target, [status(healthy=True)], now="t1")
    events = await recorder.record(target, [status(healthy=False, checked="x")], now="t2")

    assert len(events) == 1
    [row] = await repos["dependencies"].find_by_service(target.id)
    assert row.healthy is False


@pytest.mark.asyncio
async def test_upsert_failure_propagates(target):
    dependencies = AsyncMock()
    dependencies.find_by_service.return_value = []
    dependencies.upsert.side_effect = RuntimeError("database is locked")
    aliases = AsyncMock()
    aliases.mapping.return_value = {}
    recorder = TransitionRecorder(dependencies, aliases, AsyncMock(), ErrorHistoryRecorder(AsyncMock()))

    with pytest.raises(RuntimeError, match="locked"):
        await recorder.record(target, [status()])


@pytest.mark.asyncio
async def test_removed_target_stops_the_batch(recorder, repos, target):
    checks = iter([True, False])

    await recorder.record(
        target,
        [status("postgres"), status("redis")],
        now="t1",
        still_tracked=lambda: next(checks),
    )

    rows = await repos["dependencies"].find_by_service(target.id)
    assert [row.name for row in rows] == ["postgres"]
