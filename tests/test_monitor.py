"""HTTPChecker and MonitoringEngine with httpx.MockTransport and in-memory doubles."""

import asyncio
import time
from unittest.mock import AsyncMock

import httpx
import pytest

from config.settings import PollingSettings
from exceptions.monitoring import HTTPError, PollConnectionError, PollTimeoutError
from exceptions.validation import InvalidResponseFormatError, SSRFBlockedError
from monitoring.alerts import AlertManager
from monitoring.models import PollTarget, StatusChangeEvent
from monitoring.monitor import HTTPChecker, MonitoringEngine


HEALTHY_PAYLOAD = [{"name": "postgres", "healthy": True, "health": {"state": 0, "code": 200, "latency": 12}}]


class FakeRegistry:
    def __init__(self, targets=()):
        self.targets = list(targets)
        self.results = []

    async def find_active(self):
        return [t for t in self.targets if t.is_active]

    async def update_poll_result(self, target_id, success, error=None):
        self.results.append((target_id, success, error))


class FakeSettings:
    def __init__(self, values=None):
        self.values = values or {}

    async def get(self, key):
        return self.values.get(key)


def make_target(target_id="svc-1", endpoint="https://orders.example.com/health", **kwargs):
    return PollTarget(id=target_id, name=f"service-{target_id}", health_endpoint=endpoint, **kwargs)


def json_transport(payload=HEALTHY_PAYLOAD, status_code=200, requests=None):
    def handler(request):
        if requests is not None:
            requests.append(request)
        return httpx.Response(status_code, json=payload)
    return httpx.MockTransport(handler)


def make_recorder(events=()):
    recorder = AsyncMock()
    recorder.record.return_value = list(events)
    return recorder


def make_engine(validator, transport, targets=(), config=None, **kwargs):
    config = config or PollingSettings()
    registry = kwargs.pop("registry", None) or FakeRegistry(targets)
    kwargs.setdefault("recorder", make_recorder())
    return MonitoringEngine(
        registry=registry,
        validator=validator,
        checker=HTTPChecker(validator, request_timeout=config.request_timeout, transport=transport),
        config=config,
        **kwargs,
    )


# ============================================================================
# HTTP CHECKER
# ============================================================================

@pytest.mark.asyncio
async def test_fetch_returns_json_and_sends_headers(validator):
    requests = []
    checker = HTTPChecker(validator, user_agent="Depwatch/test", transport=json_transport(requests=requests))

    payload = await checker.fetch("https://orders.example.com/health")

    assert payload == HEALTHY_PAYLOAD
    assert requests[0].headers["accept"] == "application/json"
    assert requests[0].headers["user-agent"] == "Depwatch/test"


@pytest.mark.asyncio
async def test_non_2xx_raises_http_error(validator):
    checker = HTTPChecker(validator, transport=json_transport(status_code=500))

    with pytest.raises(HTTPError) as exc_info:
        await checker.fetch("https://orders.example.com/health")

    assert str(exc_info.value) == "HTTP 500: Internal Server Error"
    assert exc_info.value.status_code == 500


@pytest.mark.asyncio
async def test_redirects_are_not_followed(validator):
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(302, headers={"Location": "http://169.254.169.254/"})

    checker = HTTPChecker(validator, transport=httpx.MockTransport(handler))

    with pytest.raises(HTTPError, match="HTTP 302"):
        await checker.fetch("https://orders.example.com/health")
    assert len(requests) == 1


@pytest.mark.asyncio
async def test_invalid_json_body(validator):
    checker = HTTPChecker(validator, transport=httpx.MockTransport(lambda request: httpx.Response(200, text="<html>")))

    with pytest.raises(InvalidResponseFormatError, match="not valid JSON"):
        await checker.fetch("https://orders.example.com/health")


@pytest.mark.asyncio
async def test_connection_error(validator):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    checker = HTTPChecker(validator, transport=httpx.MockTransport(handler))

    with pytest.raises(PollConnectionError, match="connection refused"):
        await checker.fetch("https://orders.example.com/health")


@pytest.mark.asyncio
async def test_transport_timeout(validator):
    def handler(request):
        raise httpx.ReadTimeout("read timed out", request=request)

    checker = HTTPChecker(validator, request_timeout=2.0, transport=httpx.MockTransport(handler))

    with pytest.raises(PollTimeoutError, match="timed out after 2s"):
        await checker.fetch("https://orders.example.com/health")


@pytest.mark.asyncio
async def test_overall_time_budget(validator):
    async def handler(request):
        await asyncio.sleep(1)
        return httpx.Response(200, json=[])

    checker = HTTPChecker(validator, request_timeout=0.05, transport=httpx.MockTransport(handler))

    with pytest.raises(PollTimeoutError):
        await checker.fetch("https://orders.example.com/health")


@pytest.mark.asyncio
async def test_unsafe_url_never_reaches_network(validator):
    requests = []
    checker = HTTPChecker(validator, transport=json_transport(requests=requests))

    with pytest.raises(SSRFBlockedError):
        await checker.fetch("http://10.0.0.8/health")
    assert requests == []


# ============================================================================
# ENGINE: TICKS
# ============================================================================

@pytest.mark.asyncio
async def test_tick_polls_due_target_and_records(validator):
    target = make_target()
    recorder = make_recorder()
    registry = FakeRegistry([target])
    engine = make_engine(validator, json_transport(), registry=registry, recorder=recorder)
    await engine.sync_targets()

    now = time.time() + 1
    [result] = await engine.run_tick(now)

    assert result.success
    assert result.dependencies_updated == 1
    recorded_target, statuses = recorder.record.await_args.args
    assert recorded_target is target
    assert statuses[0].name == "postgres"
    assert statuses[0].latency_ms == 12
    assert registry.results == [("svc-1", True, None)]

    state = engine.get_state("svc-1")
    assert state.next_poll_due == now + 30
    assert not state.is_polling
    assert await engine.run_tick(now + 1) == []


@pytest.mark.asyncio
async def test_three_failed_polls(validator):
    registry = FakeRegistry([make_target(poll_interval_ms=30_000)])
    engine = make_engine(validator, json_transport(status_code=503), registry=registry)
    await engine.sync_targets()

    now = time.time() + 1
    for tick in range(3):
        [result] = await engine.run_tick(now + tick * 30)
        assert not result.success

    state = engine.get_state("svc-1")
    assert state.consecutive_failures == 3
    assert state.is_polling is False
    assert state.last_error == "HTTP 503: Service Unavailable"
    assert registry.results[-1] == ("svc-1", False, "HTTP 503: Service Unavailable")


@pytest.mark.asyncio
async def test_bad_payload_fails_only_that_target(validator):
    def handler(request):
        if request.url.host == "billing.example.com":
            return httpx.Response(200, json={"status": "UP"})
        return httpx.Response(200, json=HEALTHY_PAYLOAD)

    targets = [make_target("a"), make_target("b", "https://billing.example.com/health")]
    engine = make_engine(validator, httpx.MockTransport(handler), targets)
    await engine.sync_targets()

    results = {r.target_id: r for r in await engine.run_tick(time.time() + 1)}

    assert results["a"].success
    assert not results["b"].success
    assert "expected array" in results["b"].error


@pytest.mark.asyncio
async def test_shared_endpoint_is_fetched_once_and_parsed_per_target(validator):
    requests = []
    mapped = make_target(
        "mapped",
        schema_mapping={"fields": {"name": "name", "healthy": {"field": "healthy", "equals": False}}},
    )
    recorder = make_recorder()
    engine = make_engine(validator, json_transport(requests=requests), [make_target("plain"), mapped], recorder=recorder)
    await engine.sync_targets()

    results = await engine.run_tick(time.time() + 1)

    assert len(requests) == 1
    assert all(r.success for r in results)
    parsed = {call.args[0].id: call.args[1][0].healthy for call in recorder.record.await_args_list}
    assert parsed == {"plain": True, "mapped": False}


@pytest.mark.asyncio
async def test_per_host_limit_defers_extra_targets(validator):
    targets = [make_target("a", "https://orders.example.com/a"), make_target("b", "https://orders.example.com/b")]
    engine = make_engine(validator, json_transport(), targets, config=PollingSettings(max_per_host=1))
    await engine.sync_targets()
    now = time.time() + 1

    first = await engine.run_tick(now)
    second = await engine.run_tick(now)

    assert len(first) == 1
    assert len(second) == 1
    assert {first[0].target_id, second[0].target_id} == {"a", "b"}
    assert engine.host_limiter.active_count("https://orders.example.com/") == 0


@pytest.mark.asyncio
async def test_blocked_endpoint_is_scheduled_and_fails(validator):
    requests = []
    engine = make_engine(validator, json_transport(requests=requests), [make_target(endpoint="http://127.0.0.1/health")])
    await engine.sync_targets()

    [result] = await engine.run_tick(time.time() + 1)

    assert not result.success
    assert result.error == "Blocked private IP: 127.0.0.1"
    assert requests == []


@pytest.mark.asyncio
async def test_result_for_removed_target_is_discarded(validator):
    started = asyncio.Event()
    release = asyncio.Event()

    async def handler(request):
        started.set()
        await release.wait()
        return httpx.Response(200, json=HEALTHY_PAYLOAD)

    registry = FakeRegistry([make_target()])
    recorder = make_recorder()
    engine = make_engine(validator, httpx.MockTransport(handler), registry=registry, recorder=recorder)
    await engine.sync_targets()

    tick = asyncio.create_task(engine.run_tick(time.time() + 1))
    await asyncio.wait_for(started.wait(), timeout=1)
    assert engine.remove_target("svc-1")
    release.set()

    assert await tick == []
    recorder.record.assert_not_awaited()
    assert registry.results == []


@pytest.mark.asyncio
async def test_removal_during_recording_is_visible_to_recorder(validator):
    registry = FakeRegistry([make_target()])
    recorder = make_recorder()
    engine = make_engine(validator, json_transport(), registry=registry, recorder=recorder)
    await engine.sync_targets()
    seen = []

    async def record(target, statuses, still_tracked):
        seen.append(still_tracked())
        engine.remove_target(target.id)
        seen.append(still_tracked())
        return []

    recorder.record.side_effect = record

    assert await engine.run_tick(time.time() + 1) == []
    assert seen == [True, False]
    assert registry.results == []


@pytest.mark.asyncio
async def test_status_changes_reach_alert_manager_and_history(validator):
    event = StatusChangeEvent("svc-1", "orders", 7, "postgres", True, False, "2024-05-01T10:00:00+00:00")
    alerts = AlertManager()
    poll_history = AsyncMock()
    engine = make_engine(
        validator,
        json_transport(),
        [make_target()],
        recorder=make_recorder([event]),
        alert_manager=alerts,
        poll_history=poll_history,
    )
    await engine.sync_targets()

    [result] = await engine.run_tick(time.time() + 1)

    assert result.status_changes == [event]
    assert alerts.get_stats()["queue_size"] == 1
    poll_history.record.assert_awaited_once()
    assert poll_history.record.await_args.args[:3] == ("svc-1", True, None)


@pytest.mark.asyncio
async def test_registry_write_failure_does_not_fail_poll(validator):
    registry = FakeRegistry([make_target()])
    registry.update_poll_result = AsyncMock(side_effect=RuntimeError("database is locked"))
    engine = make_engine(validator, json_transport(), registry=registry)
    await engine.sync_targets()

    [result] = await engine.run_tick(time.time() + 1)

    assert result.success
    assert engine.get_state("svc-1").consecutive_failures == 0


# ============================================================================
# ENGINE: TARGET MANAGEMENT
# ============================================================================

@pytest.mark.asyncio
async def test_sync_adds_removes_and_updates(validator):
    registry = FakeRegistry([make_target("a"), make_target("b")])
    engine = make_engine(validator, json_transport(), registry=registry)
    await engine.sync_targets()
    assert sorted(engine.scheduler.target_ids()) == ["a", "b"]

    registry.targets = [
        make_target("a", poll_interval_ms=60_000),
        make_target("b", is_active=False),
        make_target("c"),
    ]
    await engine.sync_targets()

    assert sorted(engine.scheduler.target_ids()) == ["a", "c"]
    assert engine.get_state("a").poll_interval_ms == 60_000


@pytest.mark.asyncio
async def test_allowlist_comes_from_runtime_setting(validator):
    engine = make_engine(
        validator,
        json_transport(),
        settings_repository=FakeSettings({"ssrf_allowlist": "127.0.0.0/8"}),
        default_allowlist="",
    )

    await engine.sync_targets()

    assert validator.validate_hostname("http://127.0.0.1/health") == "127.0.0.1"


@pytest.mark.asyncio
async def test_allowlist_falls_back_to_environment_default(validator):
    engine = make_engine(
        validator,
        json_transport(),
        settings_repository=FakeSettings(),
        default_allowlist="10.0.0.0/8",
    )

    await engine.sync_targets()

    assert validator.validate_hostname("http://10.1.2.3/health") == "10.1.2.3"
    with pytest.raises(SSRFBlockedError):
        validator.validate_hostname("http://127.0.0.1/health")


@pytest.mark.asyncio
async def test_poll_now(validator):
    engine = make_engine(validator, json_transport())
    engine.add_target(make_target())

    before = time.time()
    result = await engine.poll_now("svc-1")

    assert result.success
    assert engine.get_state("svc-1").next_poll_due >= before + 30
    assert await engine.poll_now("unknown") is None


@pytest.mark.asyncio
async def test_poll_now_refuses_while_polling(validator):
    requests = []
    engine = make_engine(validator, json_transport(requests=requests))
    engine.add_target(make_target())
    engine.scheduler.mark_polling("svc-1")

    assert await engine.poll_now("svc-1") is None
    assert requests == []


# ============================================================================
# ENGINE: LIFECYCLE
# ============================================================================

@pytest.mark.asyncio
async def test_start_and_stop(validator):
    polled = asyncio.Event()

    def handler(request):
        polled.set()
        return httpx.Response(200, json=HEALTHY_PAYLOAD)

    engine = make_engine(
        validator,
        httpx.MockTransport(handler),
        [make_target()],
        config=PollingSettings(tick_interval=0.01, shutdown_timeout=1.0),
    )

    await engine.start()
    assert engine.is_running
    await asyncio.wait_for(polled.wait(), timeout=2)
    await engine.stop()

    assert not engine.is_running
    assert engine.get_stats()["polling"] == 0
