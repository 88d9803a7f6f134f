"""
============================================================================
DEPWATCH - FETCH DEDUPLICATION
============================================================================
Single-flight execution keyed by endpoint URL: while a fetch for a key
is pending, every further request for that key joins it and receives
the same result or the same exception. The entry is dropped once the
fetch settles, so the next request starts a fresh fetch.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, TypeVar

from utils.logger import get_logger


logger = get_logger("Dedup")

T = TypeVar("T")


class FetchDeduplicator:
    """
    Collapses concurrent fetches of the same key into one task.

    Lookup and registration run without an intervening await, which
    makes them atomic on the event loop. Callers wait through
    ``asyncio.shield`` so one cancelled caller does not cancel the
    fetch the others are waiting on.
    """

    def __init__(self):
        self._inflight: Dict[str, "asyncio.Task[Any]"] = {}

    async def deduplicate(self, key: str, fetch_fn: Callable[[], Awaitable[T]]) -> T:
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._run(key, fetch_fn))
            self._inflight[key] = task
        else:
            logger.debug(f"[Dedup] Joining in-flight fetch for {key}")

        return await asyncio.shield(task)

    async def _run(self, key: str, fetch_fn: Callable[[], Awaitable[T]]) -> T:
        try:
            return await fetch_fn()
        finally:
            if self._inflight.get(key) is asyncio.current_task():
                del self._inflight[key]

    def is_inflight(self, key: str) -> bool:
        return key in self._inflight

    @property
    def size(self) -> int:
        return len(self._inflight)

    def clear(self) -> None:
        """Forget all entries. Running fetches are left to finish."""
        self._inflight.clear()
