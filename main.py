"""
============================================================================
UPTIMEKIT - MAIN APPLICATION
============================================================================
Wires every layer of the monitoring daemon:

    Core & Database
        • Settings (pydantic-settings)
        • SQLAlchemy async engine + models
        • DatabaseManager + Repositories
        • Logging

    Monitoring
        • AlertManager       — local + webhook notifications
        • CheckExecutor      — HTTP/ICMP/DNS probes, SSL inspection
        • MonitorScheduler   — one recurring check task per monitor
        • StatsAggregator    — status snapshots
        • HealthServer       — aiohttp status server

Startup Order
-------------
1.  Load settings & configure logging
2.  Initialize DatabaseManager (create tables if needed); fatal on failure
3.  Wire up AlertManager, CheckExecutor, MonitorScheduler, StatsAggregator
4.  Start HealthServer (if WEB_ENABLED)
5.  Start AlertManager dispatch loop
6.  Start MonitorScheduler (first reconciliation runs immediately)

Shutdown Order (reverse)
-------------------------
On SIGINT or SIGTERM:
    stop scheduler (in-flight checks finish) → stop alert manager (queue
    drained) → stop health server → close DB → exit
============================================================================
"""

import asyncio
import signal
import sys
from typing import Optional

from config.settings import Settings, get_settings
from database.manager import (
    DatabaseManager,
    HeartbeatRepository,
    MonitorRepository,
    SslCertificateRepository,
)
from exceptions import ConfigurationError, InitializationError, UptimeKitException
from monitoring.alerts import AlertManager
from monitoring.health import HealthServer
from monitoring.monitor import CheckExecutor
from monitoring.scheduler import MonitorScheduler
from monitoring.stats import StatsAggregator
from utils.logger import get_logger, setup_logging


logger = get_logger("Main")


# ============================================================================
# APPLICATION CLASS
# ============================================================================

class UptimeKitApplication:
    """
    Top-level application orchestrator.

    Owns every subsystem and is the single place that knows the startup /
    shutdown order. Subsystems receive their collaborators through their
    constructors; only Settings is cached globally.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

        # --- subsystems (populated during startup) ---
        self.db_manager: Optional[DatabaseManager] = None
        self.monitors: Optional[MonitorRepository] = None
        self.heartbeats: Optional[HeartbeatRepository] = None
        self.certificates: Optional[SslCertificateRepository] = None
        self.alert_manager: Optional[AlertManager] = None
        self.executor: Optional[CheckExecutor] = None
        self.scheduler: Optional[MonitorScheduler] = None
        self.stats: Optional[StatsAggregator] = None
        self.health_server: Optional[HealthServer] = None

        # --- lifecycle ---
        self._is_running = False
        self._stop_event = asyncio.Event()

    def _print_banner(self) -> None:
        db = self.settings.database
        location = db.sqlite_path if db.is_sqlite else f"{db.host}:{db.port}/{db.name}"
        logger.info("=" * 74)
        logger.info(f"  🚀  {self.settings.app_name} v{self.settings.app_version}")
        logger.info(f"  Database : {db.type.value} ({location})")
        logger.info(f"  Reconcile every {self.settings.monitoring.reconcile_interval}s")
        logger.debug(f"  Settings : {self.settings.to_dict()}")
        logger.info("=" * 74)

    # ==================================================================
    # PHASE 1: DATABASE
    # ==================================================================

    async def _init_database(self) -> None:
        """Initialize the database manager and verify connectivity."""
        logger.info("── Phase 1: Database ─────────────────────────────")
        try:
            self.db_manager = DatabaseManager(self.settings)
            await self.db_manager.initialize()
        except (UptimeKitException, OSError) as e:
            raise InitializationError(f"Database init failed: {e}", component="database", cause=e)

        if not await self.db_manager.check_connection():
            raise InitializationError("Database connection check failed", component="database")

        self.monitors = MonitorRepository(self.db_manager)
        self.heartbeats = HeartbeatRepository(self.db_manager)
        self.certificates = SslCertificateRepository(self.db_manager)
        logger.info("  ✓ Database ready")

    # ==================================================================
    # PHASE 2: MONITORING
    # ==================================================================

    def _init_monitoring(self) -> None:
        """Wire up AlertManager, CheckExecutor, MonitorScheduler, StatsAggregator."""
        logger.info("── Phase 2: Monitoring ───────────────────────────")
        self.alert_manager = AlertManager(self.settings)
        self.executor = CheckExecutor(
            self.settings,
            heartbeats=self.heartbeats,
            certificates=self.certificates,
            alert_manager=self.alert_manager,
        )
        self.scheduler = MonitorScheduler(self.settings, self.monitors, self.executor)
        self.stats = StatsAggregator(self.settings, self.monitors, self.heartbeats)

        if self.settings.web_enabled:
            self.health_server = HealthServer(self.settings, self.scheduler, self.stats)
        logger.info("  ✓ Monitoring components created")

    # ==================================================================
    # FULL STARTUP SEQUENCE
    # ==================================================================

    async def startup(self) -> bool:
        """
        Execute the complete startup sequence.
        Returns False (and logs errors) if the store cannot be opened.
        """
        self._print_banner()

        try:
            await self._init_database()
        except InitializationError as e:
            logger.error(f"  ✗ {e.log_format()}")
            return False

        self._init_monitoring()

        logger.info("── Starting background services ───────────────────")

        if self.health_server:
            try:
                await self.health_server.start()
            except OSError as e:
                # The daemon keeps monitoring without its status endpoint
                logger.error(f"  ✗ HealthServer failed to bind: {e}")
                self.health_server = None

        await self.alert_manager.start()
        await self.scheduler.start()

        self._is_running = True
        logger.info("  ✓ ALL SYSTEMS OPERATIONAL")
        return True

    # ==================================================================
    # SHUTDOWN SEQUENCE
    # ==================================================================

    async def shutdown(self) -> None:
        """
        Graceful shutdown in reverse order. A failure in one subsystem does
        not prevent the others from cleaning up.
        """
        if not self._is_running and self.db_manager is None:
            return

        logger.info("  SHUTTING DOWN …")
        self._is_running = False

        # In-flight checks finish and are recorded before the store closes
        steps = [
            ("MonitorScheduler", self.scheduler),
            ("AlertManager", self.alert_manager),
            ("HealthServer", self.health_server),
        ]
        for name, component in steps:
            if component is None:
                continue
            try:
                await component.stop()
            except Exception:
                logger.exception(f"  ✗ {name} stop error")

        if self.db_manager:
            try:
                await self.db_manager.close()
            except Exception:
                logger.exception("  ✗ Database close error")
            self.db_manager = None

        logger.info("  ✓ SHUTDOWN COMPLETE")

    # ==================================================================
    # RUN
    # ==================================================================

    def request_stop(self) -> None:
        self._stop_event.set()

    async def run(self) -> None:
        """Block until a stop is requested."""
        await self._stop_event.wait()


# ============================================================================
# SIGNAL HANDLER SETUP
# ============================================================================

def _install_signal_handlers(app: UptimeKitApplication) -> None:
    """
    SIGTERM / SIGINT request a graceful shutdown instead of killing the
    loop mid-check.
    """
    loop = asyncio.get_running_loop()

    def _handle_signal(sig: signal.Signals) -> None:
        logger.info(f"  ⚡ {sig.name} received, initiating graceful shutdown…")
        app.request_stop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, _handle_signal, sig)
        except (NotImplementedError, RuntimeError):
            # Not supported on Windows; KeyboardInterrupt still applies
            pass


# ============================================================================
# MAIN ENTRY POINT
# ============================================================================

async def run_daemon(settings: Optional[Settings] = None) -> int:
    """Create the app, start it, and run until shutdown. Returns the exit code."""
    app = UptimeKitApplication(settings)
    _install_signal_handlers(app)

    try:
        if not await app.startup():
            logger.error("  ✗ Startup failed, exiting")
            return 1
        await app.run()
    finally:
        await app.shutdown()
    return 0


def main() -> None:
    try:
        settings = get_settings()
    except ConfigurationError as e:
        logger.error(e.log_format())
        sys.exit(1)
    setup_logging(settings)
    try:
        exit_code = asyncio.run(run_daemon(settings))
    except KeyboardInterrupt:
        exit_code = 0
    sys.exit(exit_code)


# ============================================================================
# SCRIPT ENTRY POINT
# ============================================================================

if __name__ == "__main__":
    main()
