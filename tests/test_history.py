from types import SimpleNamespace

import pytest

from config.constants import Defaults
from monitoring.history import ErrorHistoryRecorder, PollHistoryRecorder, serialize_error
from monitoring.models import DependencyStatus


class InMemoryErrorHistory:
    def __init__(self):
        self.entries = []

    async def last_entry(self, dependency_id):
        matching = [e for e in self.entries if e.dependency_id == dependency_id]
        return matching[-1] if matching else None

    async def record(self, dependency_id, error, error_message, recorded_at):
        self.entries.append(SimpleNamespace(
            dependency_id=dependency_id,
            error=error,
            error_message=error_message,
            recorded_at=recorded_at,
        ))


class InMemoryPollHistory:
    def __init__(self):
        self.entries = []

    async def last_entry(self, service_id):
        matching = [e for e in self.entries if e.service_id == service_id]
        return matching[-1] if matching else None

    async def record(self, service_id, error, recorded_at):
        self.entries.append(SimpleNamespace(service_id=service_id, error=error, recorded_at=recorded_at))


def unhealthy(error=None, message=None):
    return DependencyStatus(name="db", healthy=False, error=error, error_message=message)


def healthy():
    return DependencyStatus(name="db", healthy=True)


def test_serialize_error_sorts_keys():
    assert serialize_error({"b": 1, "a": 2}) == '{"a": 2, "b": 1}'
    assert serialize_error(None) is None
    assert serialize_error("timeout") == '"timeout"'


# ----- dependency error history -----

@pytest.mark.asyncio
async def test_repeated_error_is_recorded_once():
    repo = InMemoryErrorHistory()
    recorder = ErrorHistoryRecorder(repo)

    assert await recorder.record(1, unhealthy({"code": 1}, "down"), "t1")
    assert not await recorder.record(1, unhealthy({"code": 1}, "down"), "t2")

    assert len(repo.entries) == 1
    assert repo.entries[0].error == '{"code": 1}'
    assert repo.entries[0].error_message == "down"


@pytest.mark.asyncio
async def test_changed_error_is_recorded():
    repo = InMemoryErrorHistory()
    recorder = ErrorHistoryRecorder(repo)

    await recorder.record(1, unhealthy({"code": 1}), "t1")
    assert await recorder.record(1, unhealthy({"code": 2}), "t2")

    assert [e.error for e in repo.entries] == ['{"code": 1}', '{"code": 2}']


@pytest.mark.asyncio
async def test_missing_error_uses_marker():
    repo = InMemoryErrorHistory()

    await ErrorHistoryRecorder(repo).record(1, unhealthy(), "t1")

    assert repo.entries[0].error == Defaults.UNHEALTHY_ERROR
    assert repo.entries[0].error_message == Defaults.UNHEALTHY_MESSAGE


@pytest.mark.asyncio
async def test_recovery_closes_error_run_once():
    repo = InMemoryErrorHistory()
    recorder = ErrorHistoryRecorder(repo)

    await recorder.record(1, unhealthy({"code": 1}), "t1")
    assert await recorder.record(1, healthy(), "t2", is_transition=True)
    assert not await recorder.record(1, healthy(), "t3")

    assert [e.error for e in repo.entries] == ['{"code": 1}', None]


@pytest.mark.asyncio
async def test_healthy_without_history():
    repo = InMemoryErrorHistory()
    recorder = ErrorHistoryRecorder(repo)

    assert not await recorder.record(1, healthy(), "t1")
    assert await recorder.record(2, healthy(), "t1", is_transition=True)

    assert [e.dependency_id for e in repo.entries] == [2]


@pytest.mark.asyncio
async def test_error_after_recovery_is_recorded_again():
    repo = InMemoryErrorHistory()
    recorder = ErrorHistoryRecorder(repo)

    await recorder.record(1, unhealthy({"code": 1}), "t1")
    await recorder.record(1, healthy(), "t2")
    assert await recorder.record(1, unhealthy({"code": 1}), "t3")

    assert len(repo.entries) == 3


# ----- poll history -----

@pytest.mark.asyncio
async def test_poll_history_records_first_and_changed_failures():
    repo = InMemoryPollHistory()
    recorder = PollHistoryRecorder(repo)

    assert await recorder.record("svc", False, "HTTP 500: Internal Server Error", "t1")
    assert not await recorder.record("svc", False, "HTTP 500: Internal Server Error", "t2")
    assert await recorder.record("svc", False, "Request timed out after 30s", "t3")

    assert len(repo.entries) == 2


@pytest.mark.asyncio
async def test_poll_history_recovery():
    repo = InMemoryPollHistory()
    recorder = PollHistoryRecorder(repo)

    assert not await recorder.record("svc", True, None, "t0")
    await recorder.record("svc", False, None, "t1")
    assert await recorder.record("svc", True, None, "t2")
    assert not await recorder.record("svc", True, None, "t3")

    assert [e.error for e in repo.entries] == ["Unknown error", None]
