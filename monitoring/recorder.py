"""
============================================================================
DEPWATCH - TRANSITION RECORDER
============================================================================
Persists a poll's normalized statuses and reports health flips.

For every status, in order:
    1. resolve the reported name to its canonical name (alias table)
    2. compare with the stored row for (target, canonical name)
    3. emit a StatusChangeEvent if ``healthy`` flipped
    4. upsert the row
    5. append latency history (latency > 0, one sample per poll timestamp)
    6. append error / recovery history (deduplicated)

Steps 5 and 6 are best-effort: failures are logged and never undo the
upsert. A failing upsert propagates and fails the poll.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

from typing import Callable, Dict, List, Optional

from monitoring.history import ErrorHistoryRecorder, serialize_error
from monitoring.models import DependencyStatus, PollTarget, StatusChangeEvent, utc_now_iso
from utils.logger import get_logger


logger = get_logger("Recorder")


class TransitionRecorder:
    """
    Writes dependency state and history for one target at a time.

    Args:
        dependencies: DependencyRepository (find_by_service / upsert)
        aliases: AliasRepository (mapping)
        latency_history: LatencyHistoryRepository (record)
        error_history: ErrorHistoryRecorder
    """

    def __init__(self, dependencies, aliases, latency_history, error_history: ErrorHistoryRecorder):
        self.dependencies = dependencies
        self.aliases = aliases
        self.latency_history = latency_history
        self.error_history = error_history

    async def record(
        self,
        target: PollTarget,
        statuses: List[DependencyStatus],
        now: Optional[str] = None,
        still_tracked: Optional[Callable[[], bool]] = None,
    ) -> List[StatusChangeEvent]:
        """
        Persist ``statuses`` for ``target``.

        Args:
            still_tracked: checked before each write; once it returns False
                the rest of the batch is dropped (target removed mid-poll)

        Returns:
            The transitions detected in this batch, in input order
        """
        timestamp = now or utc_now_iso()
        alias_map: Dict[str, str] = await self.aliases.mapping()
        known = {row.name: row for row in await self.dependencies.find_by_service(target.id)}

        events: List[StatusChangeEvent] = []
        for status in statuses:
            if still_tracked is not None and not still_tracked():
                logger.debug(f"[Recorder] {target.name} removed mid-batch, dropping remaining statuses")
                break

            canonical = alias_map.get(status.name, status.name)
            previous = known.get(canonical)
            previous_healthy = previous.healthy if previous is not None else None
            changed = previous_healthy is not None and previous_healthy != status.healthy

            row = await self.dependencies.upsert(
                target.id,
                canonical,
                status,
                error_json=serialize_error(status.error),
                status_changed_at=timestamp if changed else None,
            )
            known[canonical] = row

            if changed:
                events.append(StatusChangeEvent(
                    target_id=target.id,
                    target_name=target.name,
                    dependency_id=row.id,
                    dependency_name=canonical,
                    previous_healthy=previous_healthy,
                    current_healthy=status.healthy,
                    timestamp=timestamp,
                ))
                logger.info(
                    f"[Recorder] {target.name}/{canonical}: "
                    f"{'healthy' if status.healthy else 'unhealthy'} "
                    f"(was {'healthy' if previous_healthy else 'unhealthy'})"
                )

            await self._record_history(row.id, status, timestamp, changed)

        return events

    async def _record_history(
        self,
        dependency_id: int,
        status: DependencyStatus,
        timestamp: str,
        changed: bool,
    ) -> None:
        if status.latency_ms > 0:
            try:
                await self.latency_history.record(dependency_id, status.latency_ms, timestamp)
            except Exception as e:
                logger.error(f"[Recorder] Latency history write failed for dependency {dependency_id}: {e}")

        try:
            await self.error_history.record(dependency_id, status, timestamp, is_transition=changed)
        except Exception as e:
            logger.error(f"[Recorder] Error history write failed for dependency {dependency_id}: {e}")
