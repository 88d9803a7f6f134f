"""
============================================================================
DEPWATCH - POLLING ENGINE
============================================================================
Polls the health endpoint of every registered service on its own
interval, normalizes the responses, records transitions and history,
and hands transitions to the AlertManager.

Architecture
------------
MonitoringEngine            ← top-level orchestrator, owns all poll state
├── sync_targets()          ← reconciles tracked targets with the registry
├── _dispatch_due()         ← starts a task per due target (per-host capped)
├── _poll_target()          ← one poll: fetch → normalize → record
│   ├── FetchDeduplicator   ← one in-flight request per endpoint URL
│   └── HTTPChecker         ← URL safety check + GET via httpx
├── TransitionRecorder      ← upsert, transitions, history
└── _after_poll()           ← registry poll result, poll history, alerts

A failed poll (unsafe URL, network error, bad payload) only fails that
target's attempt; it is retried one interval later.

The engine runs inside an asyncio.Task created by the main application.
It wakes every POLL_TICK_INTERVAL seconds.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import asyncio
import time
from typing import Any, Dict, List, Optional, Set

import httpx

from config.constants import SettingKeys
from config.settings import PollingSettings
from exceptions.base import DepwatchException
from exceptions.monitoring import HTTPError, PollConnectionError, PollTimeoutError
from exceptions.validation import InvalidResponseFormatError, InvalidURLError, SSRFBlockedError
from monitoring.alerts import AlertManager
from monitoring.dedup import FetchDeduplicator
from monitoring.history import PollHistoryRecorder
from monitoring.limiter import HostRateLimiter
from monitoring.models import PollResult, PollTarget, StatusChangeEvent, utc_now_iso
from monitoring.parsers import ResponseNormalizer
from monitoring.recorder import TransitionRecorder
from monitoring.scheduler import PollScheduler, PollState
from utils.allowlist import Allowlist
from utils.logger import get_logger
from utils.validators import URLValidator


logger = get_logger("Polling")


# ============================================================================
# HTTP CHECKER
# ============================================================================

class HTTPChecker:
    """
    Fetches a health endpoint and decodes its JSON body.

    Features
    --------
    • Validates the URL (including DNS resolution) before any request
    • Never follows redirects, so a 3xx cannot lead to a private target
    • One overall time budget per fetch
    """

    def __init__(
        self,
        validator: URLValidator,
        request_timeout: float = 30.0,
        user_agent: str = "Depwatch/1.0",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.validator = validator
        self.request_timeout = request_timeout
        self.user_agent = user_agent
        self._transport = transport

    async def fetch(self, url: str) -> Any:
        """
        Validate ``url`` and GET it.

        Returns
        -------
        Any
            The decoded JSON payload.

        Raises
        ------
        InvalidURLError, SSRFBlockedError, DNSResolutionError
            The URL failed the safety check; no request was made.
        PollTimeoutError, PollConnectionError, HTTPError
            The request failed.
        InvalidResponseFormatError
            The body is not JSON.
        """
        await self.validator.validate_url_not_private(url)

        try:
            return await asyncio.wait_for(self._get(url), timeout=self.request_timeout)
        except asyncio.TimeoutError as e:
            raise PollTimeoutError(
                f"Request timed out after {self.request_timeout:g}s",
                url=url,
                timeout=self.request_timeout,
                cause=e,
            )

    async def _get(self, url: str) -> Any:
        headers = {"Accept": "application/json", "User-Agent": self.user_agent}
        start_time = time.perf_counter()

        async with httpx.AsyncClient(
            timeout=self.request_timeout,
            follow_redirects=False,
            transport=self._transport,
        ) as client:
            try:
                response = await client.get(url, headers=headers)
            except httpx.TimeoutException as e:
                raise PollTimeoutError(
                    f"Request timed out after {self.request_timeout:g}s",
                    url=url,
                    timeout=self.request_timeout,
                    cause=e,
                )
            except httpx.RequestError as e:
                raise PollConnectionError(f"Connection error: {str(e)[:200] or e.__class__.__name__}", url=url, cause=e)

        elapsed = time.perf_counter() - start_time

        if not response.is_success:
            logger.debug(f"[HTTP] {url} → {response.status_code} in {elapsed:.3f}s")
            raise HTTPError(
                f"HTTP {response.status_code}: {response.reason_phrase}",
                status_code=response.status_code,
                url=url,
            )

        logger.debug(f"[HTTP] {url} → {response.status_code} in {elapsed:.3f}s")

        try:
            return response.json()
        except ValueError as e:
            raise InvalidResponseFormatError("Invalid response: body is not valid JSON", cause=e)


# ============================================================================
# POLLING ENGINE
# ============================================================================

class MonitoringEngine:
    """
    Async polling engine.

    Lifecycle
    ---------
    1.  ``await engine.start()``   — syncs targets, launches the tick loop
    2.  ``await engine.stop()``    — stops the loop and waits up to
                                     POLL_SHUTDOWN_TIMEOUT for in-flight polls

    ``run_tick()`` runs one tick to completion and is what tests drive.

    Parameters
    ----------
    registry : TargetRepository-like
        ``find_active()`` and ``update_poll_result(id, success, error)``.
    recorder : TransitionRecorder
    validator : URLValidator
    checker : HTTPChecker | None
        Built from ``validator`` and ``config`` if omitted.
    alert_manager : AlertManager | None
    poll_history : PollHistoryRecorder | None
    settings_repository : SettingsRepository-like | None
        Source of the runtime ``ssrf_allowlist`` setting.
    config : PollingSettings | None
    default_allowlist : str
        Allowlist used when no runtime setting exists (SSRF_ALLOWLIST).
    """

    def __init__(
        self,
        registry: Any,
        recorder: TransitionRecorder,
        validator: URLValidator,
        checker: Optional[HTTPChecker] = None,
        alert_manager: Optional[AlertManager] = None,
        poll_history: Optional[PollHistoryRecorder] = None,
        settings_repository: Any = None,
        config: Optional[PollingSettings] = None,
        default_allowlist: str = "",
    ):
        self.config = config or PollingSettings()
        self.registry = registry
        self.recorder = recorder
        self.validator = validator
        self.checker = checker or HTTPChecker(
            validator,
            request_timeout=self.config.request_timeout,
            user_agent=self.config.user_agent,
        )
        self.alert_manager = alert_manager
        self.poll_history = poll_history
        self.settings_repository = settings_repository
        self.default_allowlist = default_allowlist

        # --- pipeline state ---
        self.scheduler = PollScheduler()
        self.deduplicator = FetchDeduplicator()
        self.normalizer = ResponseNormalizer()
        self.host_limiter = HostRateLimiter(self.config.max_per_host)
        self._targets: Dict[str, PollTarget] = {}
        self._allowlist_raw: Optional[str] = None

        # --- concurrency control ---
        self._semaphore = asyncio.Semaphore(self.config.max_concurrent)
        self._inflight: Set[asyncio.Task] = set()

        # --- lifecycle ---
        self._running = False
        self._loop_task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._last_sync: float = 0.0

        logger.info(
            f"MonitoringEngine created — "
            f"max_concurrent={self.config.max_concurrent}, "
            f"max_per_host={self.config.max_per_host}, "
            f"tick={self.config.tick_interval}s"
        )

    # ------------------------------------------------------------------
    # PUBLIC API
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Sync targets and start the background tick loop."""
        if self._running:
            logger.warning("MonitoringEngine is already running")
            return

        await self.sync_targets()
        self._last_sync = time.monotonic()

        self._running = True
        self._stop_event = asyncio.Event()
        self._loop_task = asyncio.create_task(self._poll_loop())
        logger.info(f"✓ MonitoringEngine started — tracking {len(self.scheduler)} targets")

    async def stop(self) -> None:
        """
        Stop the tick loop. In-flight polls get POLL_SHUTDOWN_TIMEOUT
        seconds to finish before they are cancelled.
        """
        self._running = False
        if self._stop_event is not None:
            self._stop_event.set()

        if self._loop_task is not None:
            try:
                await asyncio.wait_for(self._loop_task, timeout=self.config.shutdown_timeout)
            except asyncio.TimeoutError:
                logger.warning("[Polling] Tick loop did not exit in time, cancelled")
            except asyncio.CancelledError:
                pass
            self._loop_task = None

        pending = set(self._inflight)
        if pending:
            logger.info(f"[Polling] Waiting for {len(pending)} in-flight polls")
            _, still_running = await asyncio.wait(pending, timeout=self.config.shutdown_timeout)
            for task in still_running:
                task.cancel()
            if still_running:
                await asyncio.gather(*still_running, return_exceptions=True)
                logger.warning(f"[Polling] Cancelled {len(still_running)} polls at shutdown")

        logger.info("✓ MonitoringEngine stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    def add_target(self, target: PollTarget) -> PollState:
        """
        Start polling a target; its first poll is due immediately.

        An endpoint that fails the synchronous URL check is still
        scheduled, so the rejection shows up as that target's poll error.
        """
        try:
            self.validator.validate_hostname(target.health_endpoint)
        except (InvalidURLError, SSRFBlockedError) as e:
            logger.warning(f"[Polling] {target.name}: endpoint rejected: {e}")

        self._targets[target.id] = target
        return self.scheduler.add_target(target)

    def remove_target(self, target_id: str) -> bool:
        """Stop polling a target. A poll in flight finishes but its result is discarded."""
        self._targets.pop(target_id, None)
        return self.scheduler.remove_target(target_id)

    def get_state(self, target_id: str) -> Optional[PollState]:
        return self.scheduler.get_state(target_id)

    async def refresh_allowlist(self) -> None:
        """Reload the allowlist from the runtime setting, falling back to SSRF_ALLOWLIST."""
        raw: Optional[str] = None
        if self.settings_repository is not None:
            try:
                raw = await self.settings_repository.get(SettingKeys.SSRF_ALLOWLIST)
            except Exception as e:
                logger.warning(f"[Polling] Could not read allowlist setting: {e}")
        if raw is None:
            raw = self.default_allowlist

        if raw != self._allowlist_raw:
            self.validator.set_allowlist(Allowlist.parse(raw))
            self._allowlist_raw = raw
            logger.info(f"[Polling] Allowlist updated ({len(raw.split(',')) if raw else 0} entries)")

    async def sync_targets(self) -> None:
        """
        Reconcile tracked targets with the registry: add new active
        targets, drop deleted or deactivated ones, pick up changes.
        """
        await self.refresh_allowlist()

        active = {t.id: t for t in await self.registry.find_active() if t.is_active}

        for target_id in list(self._targets):
            if target_id not in active:
                logger.info(f"[Polling] Target {target_id} no longer active, removing")
                self.remove_target(target_id)

        added = 0
        for target in active.values():
            current = self._targets.get(target.id)
            if current is None:
                self.add_target(target)
                added += 1
            elif current != target:
                self._targets[target.id] = target
                self.scheduler.update_target(target)

        if added:
            logger.info(f"[Polling] Added {added} targets ({len(self._targets)} tracked)")

    async def run_tick(self, now: Optional[float] = None) -> List[PollResult]:
        """Poll every due target and wait for all of them."""
        tasks = self._dispatch_due(time.time() if now is None else now)
        if not tasks:
            return []
        results = await asyncio.gather(*tasks)
        return [result for result in results if result is not None]

    async def poll_now(self, target_id: str) -> Optional[PollResult]:
        """
        Poll a target immediately, outside its schedule.

        Returns None if the target is unknown or already being polled.
        The next scheduled poll is one interval after this one.
        """
        target = self._targets.get(target_id)
        state = self.scheduler.get_state(target_id)
        if target is None or state is None:
            return None
        if state.is_polling:
            logger.info(f"[Polling] {target.name} is already being polled")
            return None

        self.scheduler.mark_polling(target_id, True)
        return await self._poll_target(target, time.time(), holds_host_slot=False)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "targets": len(self.scheduler),
            "polling": self.scheduler.active_polling_count(),
            "inflight_fetches": self.deduplicator.size,
            "is_running": self._running,
        }

    # ------------------------------------------------------------------
    # TICK LOOP
    # ------------------------------------------------------------------

    async def _poll_loop(self) -> None:
        logger.info("[Polling] Tick loop started")
        while self._running:
            try:
                if time.monotonic() - self._last_sync >= self.config.sync_interval:
                    await self.sync_targets()
                    self._last_sync = time.monotonic()
                self._dispatch_due(time.time())
            except Exception as e:
                logger.opt(exception=e).error(f"[Polling] Unhandled error in tick: {e}")

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.config.tick_interval)
            except asyncio.TimeoutError:
                pass

        logger.info("[Polling] Tick loop exited")

    def _dispatch_due(self, now: float) -> List[asyncio.Task]:
        tasks: List[asyncio.Task] = []
        for state in self.scheduler.due_targets(now):
            target = self._targets.get(state.target_id)
            if target is None:
                continue

            if not self.host_limiter.acquire(target.health_endpoint):
                logger.debug(f"[Polling] Host limit reached, deferring {target.name}")
                continue

            self.scheduler.mark_polling(target.id, True)
            task = asyncio.create_task(self._poll_target(target, now))
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)
            tasks.append(task)

        if tasks:
            logger.debug(f"[Polling] Tick dispatched {len(tasks)} polls")
        return tasks

    # ------------------------------------------------------------------
    # SINGLE POLL
    # ------------------------------------------------------------------

    async def _poll_target(
        self,
        target: PollTarget,
        now: float,
        holds_host_slot: bool = True,
    ) -> Optional[PollResult]:
        """
        Fetch, normalize and record one target. Never raises except on
        cancellation; errors become the target's failed outcome.

        Returns None if the target was removed while the poll ran.
        """
        url = target.health_endpoint
        started = time.perf_counter()
        error: Optional[str] = None
        events: List[StatusChangeEvent] = []
        updated = 0

        try:
            payload = await self.deduplicator.deduplicate(url, lambda: self._limited_fetch(url))

            if not self.scheduler.has_target(target.id):
                logger.debug(f"[Polling] Discarding result for removed target {target.name}")
                return None

            statuses = self.normalizer.normalize(payload, target.schema_mapping)
            events = await self.recorder.record(
                target,
                statuses,
                still_tracked=lambda: self.scheduler.has_target(target.id),
            )
            updated = len(statuses)

        except DepwatchException as e:
            error = str(e)
            logger.warning(f"[Polling] {target.name}: {error}")

        except Exception as e:
            error = str(e) or e.__class__.__name__
            logger.opt(exception=e).error(f"[Polling] Unexpected error polling {target.name}: {error}")

        finally:
            if holds_host_slot:
                self.host_limiter.release(url)

        if not self.scheduler.has_target(target.id):
            return None

        success = error is None
        latency_ms = round((time.perf_counter() - started) * 1000, 2)
        state = self.scheduler.record_outcome(target.id, success, now=now, error=error)

        if state is not None and not success:
            logger.debug(
                f"[Polling] {target.name} failed {state.consecutive_failures} time(s) in a row"
            )

        await self._after_poll(target, success, error, events)

        return PollResult(
            target_id=target.id,
            success=success,
            dependencies_updated=updated,
            status_changes=events,
            error=error,
            latency_ms=latency_ms,
        )

    async def _limited_fetch(self, url: str) -> Any:
        async with self._semaphore:
            return await self.checker.fetch(url)

    async def _after_poll(
        self,
        target: PollTarget,
        success: bool,
        error: Optional[str],
        events: List[StatusChangeEvent],
    ) -> None:
        """Best-effort follow-up writes; failures are logged only."""
        try:
            await self.registry.update_poll_result(target.id, success, error)
        except Exception as e:
            logger.error(f"[Polling] Failed to store poll result for {target.name}: {e}")

        if self.poll_history is not None:
            try:
                await self.poll_history.record(target.id, success, error, utc_now_iso())
            except Exception as e:
                logger.error(f"[Polling] Failed to write poll history for {target.name}: {e}")

        if self.alert_manager is not None:
            for event in events:
                self.alert_manager.enqueue(event)
