"""
============================================================================
DEPWATCH - ALERT MANAGER
============================================================================
Hands health transitions from the polling engine to alerting.

Design
------
AlertManager uses an internal asyncio.Queue. The engine calls
``enqueue()`` which is non-blocking; it only pushes the event onto the
queue. A separate ``_dispatch_loop()`` task pulls events off the queue
one at a time, persists them, and calls every registered handler.

This keeps a slow alert channel off the polling path. Delivery,
retries and channel formatting are the handlers' business.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional

from monitoring.models import StatusChangeEvent
from utils.logger import get_logger


logger = get_logger("AlertManager")

AlertHandler = Callable[[StatusChangeEvent], Awaitable[None]]


class AlertManager:
    """
    Fire-and-forget transition dispatcher.

    Parameters
    ----------
    repository : optional
        StatusChangeRepository used to persist every event. If None,
        events are only passed to handlers.
    queue_size : int
        Maximum number of pending events before new ones are dropped.
    """

    def __init__(self, repository: Any = None, queue_size: int = 10_000):
        self.repository = repository
        self._queue: "asyncio.Queue[StatusChangeEvent]" = asyncio.Queue(maxsize=queue_size)
        self._handlers: List[AlertHandler] = []

        self._running = False
        self._dispatch_task: Optional[asyncio.Task] = None

        self._dispatched = 0
        self._dropped = 0

    # ------------------------------------------------------------------
    # PUBLIC API
    # ------------------------------------------------------------------

    def add_handler(self, handler: AlertHandler) -> None:
        """Register an async callable that receives every event."""
        self._handlers.append(handler)

    async def start(self) -> None:
        """Start the background dispatch loop."""
        if self._running:
            logger.warning("AlertManager is already running")
            return
        self._running = True
        self._dispatch_task = asyncio.create_task(self._dispatch_loop())
        logger.info("✓ AlertManager started")

    async def stop(self) -> None:
        """Stop the dispatch loop and persist anything still queued."""
        self._running = False
        if self._dispatch_task:
            self._dispatch_task.cancel()
            try:
                await self._dispatch_task
            except asyncio.CancelledError:
                pass
            self._dispatch_task = None

        drained = 0
        while not self._queue.empty():
            event = self._queue.get_nowait()
            await self._persist(event)
            drained += 1
        if drained:
            logger.info(f"[AlertManager] Persisted {drained} undelivered events on shutdown")
        logger.info("✓ AlertManager stopped")

    def enqueue(self, event: StatusChangeEvent) -> bool:
        """
        Non-blocking enqueue of a transition.

        Returns
        -------
        bool
            True if the event was queued, False if the queue is full.
        """
        try:
            self._queue.put_nowait(event)
            return True
        except asyncio.QueueFull:
            self._dropped += 1
            logger.warning(
                f"[AlertManager] Queue is full ({self._queue.maxsize}). "
                f"Dropping event for {event.target_name}/{event.dependency_name}"
            )
            return False

    async def process(self, event: StatusChangeEvent) -> None:
        """Persist one event and pass it to every handler."""
        await self._persist(event)

        for handler in self._handlers:
            try:
                await handler(event)
            except Exception as e:
                logger.error(f"[AlertManager] Handler {getattr(handler, '__name__', handler)!r} failed: {e}")

        self._dispatched += 1

    # ------------------------------------------------------------------
    # DISPATCH LOOP
    # ------------------------------------------------------------------

    async def _dispatch_loop(self) -> None:
        logger.debug("[AlertManager] Dispatch loop started")
        while self._running:
            try:
                event = await self._queue.get()
            except asyncio.CancelledError:
                break

            try:
                await self.process(event)
            except Exception as e:
                logger.opt(exception=e).error(f"[AlertManager] Unhandled error in dispatch loop: {e}")
            finally:
                self._queue.task_done()

        logger.debug("[AlertManager] Dispatch loop exited")

    async def _persist(self, event: StatusChangeEvent) -> None:
        if self.repository is None:
            return
        try:
            await self.repository.record(event)
        except Exception as e:
            logger.error(f"[AlertManager] Failed to persist status change event: {e}")

    # ------------------------------------------------------------------
    # DIAGNOSTIC
    # ------------------------------------------------------------------

    def get_stats(self) -> Dict[str, Any]:
        return {
            "queue_size": self._queue.qsize(),
            "handlers": len(self._handlers),
            "dispatched": self._dispatched,
            "dropped": self._dropped,
            "is_running": self._running,
        }
