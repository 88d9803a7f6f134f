"""
============================================================================
DEPWATCH - POLL SCHEDULER
============================================================================
Per-target scheduling state for the polling engine.

Each registered target gets a PollState holding its next due time, an
in-flight flag and its consecutive failure count. The engine asks for the
due set on every tick, marks the chosen targets as polling, and reports
each outcome back, which re-arms the target one interval later.

Failures are retried at the regular interval; there is no backoff.

All mutation goes through one lock so that mark_polling / record_outcome
stay atomic relative to due_targets even if called from worker threads.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import threading
import time
from dataclasses import dataclass, replace
from typing import Dict, List, Optional

from monitoring.models import PollTarget
from utils.logger import get_logger


logger = get_logger("Scheduler")


# ============================================================================
# STATE
# ============================================================================

@dataclass
class PollState:
    """
    Scheduling state of one target.

    Attributes
    ----------
    target_id : str
        Registry id of the target.
    target_name : str
        Display name (used in logs).
    health_endpoint : str
        URL polled for this target.
    poll_interval_ms : int
        Period between polls.
    next_poll_due : float
        Epoch timestamp when the target next becomes due.
    is_polling : bool
        True while a poll for this target is in flight.
    consecutive_failures : int
        Failed polls since the last success.
    last_polled : Optional[float]
        Epoch timestamp of the last finished poll.
    last_error : Optional[str]
        Error message of the last failed poll, cleared on success.
    """
    target_id: str
    target_name: str
    health_endpoint: str
    poll_interval_ms: int
    next_poll_due: float
    is_polling: bool = False
    consecutive_failures: int = 0
    last_polled: Optional[float] = None
    last_error: Optional[str] = None

    @property
    def interval_seconds(self) -> float:
        return self.poll_interval_ms / 1000.0


# ============================================================================
# SCHEDULER
# ============================================================================

class PollScheduler:
    """
    Table of PollState keyed by target id.

    Usage
    -----
        scheduler = PollScheduler()
        scheduler.add_target(target)
        for state in scheduler.due_targets():
            scheduler.mark_polling(state.target_id, True)
            ...
            scheduler.record_outcome(state.target_id, success=True)
    """

    def __init__(self):
        self._states: Dict[str, PollState] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # MEMBERSHIP
    # ------------------------------------------------------------------

    def add_target(self, target: PollTarget, now: Optional[float] = None) -> PollState:
        """
        Start tracking a target. It becomes due immediately.

        Adding an id that is already tracked leaves its state untouched.
        """
        now = time.time() if now is None else now
        with self._lock:
            existing = self._states.get(target.id)
            if existing is not None:
                return replace(existing)

            state = PollState(
                target_id=target.id,
                target_name=target.name,
                health_endpoint=target.health_endpoint,
                poll_interval_ms=target.poll_interval_ms,
                next_poll_due=now,
            )
            self._states[target.id] = state

        logger.debug(f"[Scheduler] Tracking '{target.name}' every {target.poll_interval_ms}ms")
        return replace(state)

    def remove_target(self, target_id: str) -> bool:
        """Stop tracking a target. Returns False if it was not tracked."""
        with self._lock:
            removed = self._states.pop(target_id, None)

        if removed is None:
            return False

        logger.debug(f"[Scheduler] Removed '{removed.target_name}'")
        return True

    def update_target(self, target: PollTarget) -> bool:
        """
        Apply endpoint, name or interval changes from the registry.

        The due time is kept, so a changed interval takes effect after
        the next poll. Returns False if the target is not tracked.
        """
        with self._lock:
            state = self._states.get(target.id)
            if state is None:
                return False
            state.target_name = target.name
            state.health_endpoint = target.health_endpoint
            state.poll_interval_ms = target.poll_interval_ms
        return True

    def has_target(self, target_id: str) -> bool:
        with self._lock:
            return target_id in self._states

    def target_ids(self) -> List[str]:
        with self._lock:
            return list(self._states)

    def get_state(self, target_id: str) -> Optional[PollState]:
        """Return a snapshot of a target's state."""
        with self._lock:
            state = self._states.get(target_id)
            return replace(state) if state is not None else None

    def clear(self) -> None:
        with self._lock:
            self._states.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._states)

    # ------------------------------------------------------------------
    # SCHEDULING
    # ------------------------------------------------------------------

    def due_targets(self, now: Optional[float] = None) -> List[PollState]:
        """Snapshots of every idle target whose due time has passed, earliest first."""
        now = time.time() if now is None else now
        with self._lock:
            due = [
                replace(state)
                for state in self._states.values()
                if not state.is_polling and state.next_poll_due <= now
            ]
        due.sort(key=lambda s: s.next_poll_due)
        return due

    def mark_polling(self, target_id: str, polling: bool = True) -> bool:
        with self._lock:
            state = self._states.get(target_id)
            if state is None:
                return False
            state.is_polling = polling
            return True

    def record_outcome(
        self,
        target_id: str,
        success: bool,
        now: Optional[float] = None,
        error: Optional[str] = None,
    ) -> Optional[PollState]:
        """
        Record a finished poll and re-arm the target one interval later.

        Returns:
            Snapshot of the updated state, or None if the target was
            removed while the poll was in flight
        """
        now = time.time() if now is None else now
        with self._lock:
            state = self._states.get(target_id)
            if state is None:
                return None

            if success:
                state.consecutive_failures = 0
                state.last_error = None
            else:
                state.consecutive_failures += 1
                state.last_error = error

            state.is_polling = False
            state.last_polled = now
            state.next_poll_due = max(state.next_poll_due, now + state.interval_seconds)
            return replace(state)

    def reschedule(self, target_id: str, due: float) -> bool:
        """Set the next due time explicitly, earlier or later."""
        with self._lock:
            state = self._states.get(target_id)
            if state is None:
                return False
            state.next_poll_due = due
            return True

    def active_polling_count(self) -> int:
        with self._lock:
            return sum(1 for state in self._states.values() if state.is_polling)
