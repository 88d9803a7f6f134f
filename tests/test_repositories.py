import pytest
from sqlalchemy import text

from database.models import PollTargetRow
from database.repositories import (
    DependencyRepository,
    LatencyHistoryRepository,
    PollHistoryRepository,
    SettingsRepository,
    TargetRepository,
)
from exceptions.database import DatabaseConnectionError, DatabaseQueryError
from monitoring.models import DependencyStatus, PollTarget


@pytest.mark.asyncio
async def test_find_active_skips_inactive_and_invalid_rows(db):
    repo = TargetRepository(db)
    await repo.create(PollTarget(id="ok", name="ok", health_endpoint="https://ok.example.com/health"))
    await repo.create(PollTarget(id="off", name="off", health_endpoint="https://off.example.com/health", is_active=False))
    async with db.session() as session:
        session.add(PollTargetRow(id="bad", name="bad", health_endpoint="https://bad.example.com", schema_mapping="{oops"))

    targets = await repo.find_active()

    assert [t.id for t in targets] == ["ok"]


@pytest.mark.asyncio
async def test_target_mapping_is_stored_as_json(db):
    repo = TargetRepository(db)
    await repo.create(PollTarget(
        id="m",
        name="mapped",
        health_endpoint="https://m.example.com/health",
        schema_mapping={"root": "components", "fields": {"name": "$key", "healthy": "status"}},
    ))

    target = await repo.find_by_id("m")

    assert target.schema_mapping.root == "components"
    assert await repo.find_by_id("missing") is None


@pytest.mark.asyncio
async def test_update_poll_result(db):
    repo = TargetRepository(db)
    await repo.create(PollTarget(id="s", name="s", health_endpoint="https://s.example.com/health"))

    await repo.update_poll_result("s", False, "HTTP 502: Bad Gateway")
    row = await repo.get_by_id("s")
    assert row.last_poll_success is False
    assert row.last_poll_error == "HTTP 502: Bad Gateway"

    await repo.update_poll_result("s", True)
    row = await repo.get_by_id("s")
    assert row.last_poll_error is None
    assert row.last_polled_at is not None


@pytest.mark.asyncio
async def test_upsert_keeps_one_row_per_name(db):
    await TargetRepository(db).create(PollTarget(id="s", name="s", health_endpoint="https://s.example.com/health"))
    repo = DependencyRepository(db)

    first = await repo.upsert("s", "db", DependencyStatus(name="db", healthy=True), error_json=None)
    second = await repo.upsert("s", "db", DependencyStatus(name="db", healthy=False), error_json='"x"', status_changed_at="t2")

    assert first.id == second.id
    assert await repo.count() == 1
    [row] = await repo.find_by_service("s")
    assert row.healthy is False
    assert row.last_status_change == "t2"


@pytest.mark.asyncio
async def test_latency_sample_unique_per_timestamp(db):
    repo = LatencyHistoryRepository(db)

    assert await repo.record(1, 12.0, "t1")
    assert not await repo.record(1, 15.0, "t1")
    assert await repo.record(1, 15.0, "t2")

    assert [s.latency_ms for s in await repo.for_dependency(1)] == [12.0, 15.0]


@pytest.mark.asyncio
async def test_poll_history_last_entry(db):
    repo = PollHistoryRepository(db)
    await repo.record("s", "HTTP 500: Internal Server Error", "t1")
    await repo.record("s", None, "t2")

    last = await repo.last_entry("s")

    assert last.error is None
    assert await repo.last_entry("other") is None


@pytest.mark.asyncio
async def test_settings_get_and_set(db):
    repo = SettingsRepository(db)

    assert await repo.get("ssrf_allowlist") is None
    await repo.set("ssrf_allowlist", "10.0.0.0/8")
    await repo.set("ssrf_allowlist", "*.corp.example.com")

    assert await repo.get("ssrf_allowlist") == "*.corp.example.com"


@pytest.mark.asyncio
async def test_session_requires_connection(db):
    await db.disconnect()

    with pytest.raises(DatabaseConnectionError):
        await SettingsRepository(db).get("anything")


@pytest.mark.asyncio
async def test_failed_statement_is_reported_without_literals(db):
    with pytest.raises(DatabaseQueryError) as exc_info:
        async with db.session() as session:
            await session.execute(text("SELECT token FROM missing_table WHERE owner = 'alice'"))

    details = exc_info.value.details
    assert details["operation"] == "SELECT"
    assert details["query"] == "SELECT token FROM missing_table WHERE owner = '***'"
    assert "missing_table" in str(exc_info.value)
