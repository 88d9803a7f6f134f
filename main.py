"""
============================================================================
DEPWATCH - MAIN APPLICATION
============================================================================
Wires the persistence layer, the URL validator, the polling engine and
the alert manager together and runs them until a signal arrives.

Startup Order
-------------
1.  Load settings & configure logging
2.  Connect the database (create tables if needed)
3.  Build repositories, recorders and the URL validator
4.  Start AlertManager dispatch loop
5.  Start MonitoringEngine tick loop

Shutdown Order (reverse)
-------------------------
On KeyboardInterrupt or SIGTERM:
    Stop monitoring engine → stop alert manager → close DB → exit

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import asyncio
import signal
import sys
from typing import Optional

from config.settings import Settings, get_settings
from database.connection import DatabaseManager
from database.repositories import (
    AliasRepository,
    DependencyRepository,
    ErrorHistoryRepository,
    LatencyHistoryRepository,
    PollHistoryRepository,
    SettingsRepository,
    StatusChangeRepository,
    TargetRepository,
)
from monitoring.alerts import AlertManager
from monitoring.history import ErrorHistoryRecorder, PollHistoryRecorder
from monitoring.models import StatusChangeEvent
from monitoring.monitor import MonitoringEngine
from monitoring.recorder import TransitionRecorder
from utils.allowlist import Allowlist
from utils.logger import get_logger, setup_logging
from utils.validators import URLValidator


logger = get_logger("Main")


async def log_status_change(event: StatusChangeEvent) -> None:
    """Default alert handler: one log line per transition."""
    state = "RECOVERED" if event.current_healthy else "DOWN"
    logger.warning(f"[Alert] {event.target_name}/{event.dependency_name} {state} at {event.timestamp}")


# ============================================================================
# APPLICATION CLASS
# ============================================================================

class PollerApplication:
    """
    Top-level application orchestrator.

    Owns every subsystem and is the single place that knows the startup /
    shutdown order.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

        # --- subsystems (populated during startup) ---
        self.db_manager: Optional[DatabaseManager] = None
        self.alert_manager: Optional[AlertManager] = None
        self.monitoring_engine: Optional[MonitoringEngine] = None

        self._is_running = False
        self._stop_event = asyncio.Event()

    # ==================================================================
    # PHASE 1 — DATABASE
    # ==================================================================

    async def _init_database(self) -> bool:
        logger.info("── Phase 1: Database ─────────────────────────────")
        try:
            self.db_manager = DatabaseManager(self.settings.database)
            await self.db_manager.connect()

            if not await self.db_manager.check_connection():
                logger.error("✗ Database connection check failed")
                return False

            logger.info(f"  ✓ Connected to {self.settings.database.type.value}")
            return True

        except Exception as e:
            logger.opt(exception=e).error(f"  ✗ Database init failed: {e}")
            return False

    # ==================================================================
    # PHASE 2 — POLLING
    # ==================================================================

    def _init_monitoring(self) -> bool:
        logger.info("── Phase 2: Polling Engine ───────────────────────")
        try:
            db = self.db_manager
            polling = self.settings.polling

            validator = URLValidator(
                allowlist=Allowlist.parse(self.settings.security.allowlist),
                dns_timeout=polling.dns_timeout,
            )
            recorder = TransitionRecorder(
                dependencies=DependencyRepository(db),
                aliases=AliasRepository(db),
                latency_history=LatencyHistoryRepository(db),
                error_history=ErrorHistoryRecorder(ErrorHistoryRepository(db)),
            )

            self.alert_manager = AlertManager(
                repository=StatusChangeRepository(db),
                queue_size=polling.alert_queue_size,
            )
            self.alert_manager.add_handler(log_status_change)

            self.monitoring_engine = MonitoringEngine(
                registry=TargetRepository(db),
                recorder=recorder,
                validator=validator,
                alert_manager=self.alert_manager,
                poll_history=PollHistoryRecorder(PollHistoryRepository(db)),
                settings_repository=SettingsRepository(db),
                config=polling,
                default_allowlist=self.settings.security.allowlist,
            )

            logger.info("  ✓ AlertManager and MonitoringEngine created")
            return True

        except Exception as e:
            logger.opt(exception=e).error(f"  ✗ Monitoring init failed: {e}")
            return False

    # ==================================================================
    # FULL STARTUP SEQUENCE
    # ==================================================================

    async def startup(self) -> bool:
        """Returns False (and logs errors) if any phase fails."""
        logger.info("=" * 74)
        logger.info(f"  STARTING {self.settings.app_name} v{self.settings.app_version} …")
        logger.info("=" * 74)

        if not await self._init_database():
            return False

        if not self._init_monitoring():
            return False

        logger.info("── Starting background services ───────────────────")
        await self.alert_manager.start()
        await self.monitoring_engine.start()

        self._is_running = True

        polling = self.settings.polling
        logger.info("=" * 74)
        logger.info("  ✓ ALL SYSTEMS OPERATIONAL")
        logger.info(
            f"  Polling: {polling.max_concurrent} concurrent, "
            f"{polling.max_per_host} per host, "
            f"{polling.default_interval_ms} ms default interval"
        )
        logger.info("=" * 74)
        return True

    # ==================================================================
    # SHUTDOWN SEQUENCE
    # ==================================================================

    async def shutdown(self) -> None:
        """
        Graceful shutdown in reverse order. A failure in one subsystem
        doesn't prevent the others from cleaning up.
        """
        if not self._is_running and self.db_manager is None:
            return

        logger.info("=" * 74)
        logger.info("  SHUTTING DOWN …")
        logger.info("=" * 74)

        self._is_running = False

        if self.monitoring_engine:
            try:
                await self.monitoring_engine.stop()
            except Exception as e:
                logger.error(f"  ✗ MonitoringEngine stop error: {e}")

        if self.alert_manager:
            try:
                await self.alert_manager.stop()
            except Exception as e:
                logger.error(f"  ✗ AlertManager stop error: {e}")

        if self.db_manager:
            try:
                await self.db_manager.disconnect()
                logger.info("  ✓ Database connections closed")
            except Exception as e:
                logger.error(f"  ✗ Database close error: {e}")
            self.db_manager = None

        logger.info("  ✓ SHUTDOWN COMPLETE")

    # ==================================================================
    # RUN
    # ==================================================================

    def request_stop(self) -> None:
        self._stop_event.set()

    async def run(self) -> None:
        """Block until ``request_stop()`` is called."""
        await self._stop_event.wait()


# ============================================================================
# SIGNAL HANDLER SETUP
# ============================================================================

def _install_signal_handlers(app: PollerApplication) -> None:
    """SIGTERM / SIGINT end ``app.run()`` so shutdown runs in order."""
    loop = asyncio.get_running_loop()

    def _handle_signal() -> None:
        logger.info("  ⚡ Signal received — initiating graceful shutdown…")
        app.request_stop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, _handle_signal)
        except (NotImplementedError, OSError):
            # Windows and some restricted environments; KeyboardInterrupt still works
            pass


# ============================================================================
# MAIN ENTRY POINT
# ============================================================================

async def run_app() -> int:
    settings = get_settings()
    setup_logging(settings.logging)

    app = PollerApplication(settings)
    _install_signal_handlers(app)

    try:
        if not await app.startup():
            logger.error("  ✗ Startup failed — exiting")
            return 1
        await app.run()
        return 0
    finally:
        await app.shutdown()


def main() -> None:
    try:
        sys.exit(asyncio.run(run_app()))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
