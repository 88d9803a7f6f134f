"""
============================================================================
DEPWATCH - ERROR HISTORY
============================================================================
Deduplicating writers for error / recovery history.

A run of identical errors is stored once: a new entry is written only
when the error differs from the last stored one, and a single recovery
entry (null error) closes the run once things are healthy again.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import json
from typing import Any, Optional

from config.constants import Defaults
from monitoring.models import DependencyStatus
from utils.logger import get_logger


logger = get_logger("History")


def serialize_error(error: Any) -> Optional[str]:
    """JSON-encode an error payload with stable key order; None stays None."""
    if error is None:
        return None
    return json.dumps(error, sort_keys=True, default=str)


class ErrorHistoryRecorder:
    """
    Per-dependency error history.

    Args:
        repository: object with ``last_entry(dependency_id)`` and
            ``record(dependency_id, error, error_message, recorded_at)``
    """

    def __init__(self, repository):
        self.repository = repository

    async def record(
        self,
        dependency_id: int,
        status: DependencyStatus,
        timestamp: str,
        is_transition: bool = False,
    ) -> bool:
        """
        Write an entry for ``status`` if it starts or ends an error run.

        Returns:
            True if an entry was written
        """
        last = await self.repository.last_entry(dependency_id)

        if status.healthy:
            if last is not None and last.error is not None:
                await self.repository.record(dependency_id, None, None, timestamp)
                return True
            if last is None and is_transition:
                await self.repository.record(dependency_id, None, None, timestamp)
                return True
            return False

        error = serialize_error(status.error) or Defaults.UNHEALTHY_ERROR
        message = status.error_message or Defaults.UNHEALTHY_MESSAGE

        if last is None or last.error is None or last.error != error:
            await self.repository.record(dependency_id, error, message, timestamp)
            logger.debug(f"[History] Dependency {dependency_id} error recorded: {message}")
            return True
        return False


class PollHistoryRecorder:
    """
    Per-target history of failed polls.

    Args:
        repository: object with ``last_entry(target_id)`` and
            ``record(target_id, error, recorded_at)``
    """

    def __init__(self, repository):
        self.repository = repository

    async def record(
        self,
        target_id: str,
        success: bool,
        error: Optional[str],
        timestamp: str,
    ) -> bool:
        last = await self.repository.last_entry(target_id)

        if success:
            if last is not None and last.error is not None:
                await self.repository.record(target_id, None, timestamp)
                return True
            return False

        message = error or "Unknown error"
        if last is None or last.error != message:
            await self.repository.record(target_id, message, timestamp)
            return True
        return False
