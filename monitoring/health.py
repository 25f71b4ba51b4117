"""
============================================================================
UPTIMEKIT - STATUS HTTP SERVER
============================================================================
A lightweight aiohttp server exposing the daemon's state to dashboards
and external checkers:

    GET /          → 200 "OK"  (basic liveness)
    GET /health    → 200 JSON  { status, uptime, active_tasks, ... }
    GET /status    → 200 JSON  [ status snapshot per monitor ]

/status answers 503 while the registry cannot be read.
============================================================================
"""

import time
from typing import Optional

from aiohttp import web

from config.settings import Settings
from exceptions import DatabaseException
from monitoring.scheduler import MonitorScheduler
from monitoring.stats import StatsAggregator
from utils.helpers import TimeHelper
from utils.logger import get_logger


logger = get_logger("HealthServer")


class HealthServer:
    """
    aiohttp server bound to ``WEB_HOST:WEB_PORT``.

    Attributes
    ----------
    app : aiohttp.web.Application
    _runner : aiohttp.web.AppRunner
    _site : aiohttp.web.TCPSite
    _start_time : float          — epoch seconds when the server started
    _request_count : int         — total requests served
    """

    def __init__(
        self,
        settings: Settings,
        scheduler: Optional[MonitorScheduler] = None,
        stats: Optional[StatsAggregator] = None,
    ):
        self.settings = settings
        self.scheduler = scheduler
        self.stats = stats
        self._host = settings.web_host
        self._port = settings.web_port
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None
        self._start_time: float = time.time()
        self._request_count: int = 0

        self.app = web.Application()
        self.app.router.add_get("/", self._handle_root)
        self.app.router.add_get("/health", self._handle_health)
        self.app.router.add_get("/status", self._handle_status)

    async def start(self) -> None:
        """Bind and start serving."""
        self._start_time = time.time()
        self._runner = web.AppRunner(self.app)
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self._host, self._port)
        await self._site.start()
        logger.info(f"✓ HealthServer listening on http://{self._host}:{self._port}")

    async def stop(self) -> None:
        """Gracefully shut down the server."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            self._site = None
        logger.info("✓ HealthServer stopped")

    # ------------------------------------------------------------------
    # ROUTE HANDLERS
    # ------------------------------------------------------------------

    async def _handle_root(self, request: web.Request) -> web.Response:
        """GET / — simple liveness probe."""
        self._request_count += 1
        return web.Response(text="OK", status=200)

    async def _handle_health(self, request: web.Request) -> web.Response:
        """GET /health — detailed health JSON."""
        self._request_count += 1
        uptime_seconds = max(0, int(time.time() - self._start_time))

        health = {
            "status": "healthy",
            "uptime_seconds": uptime_seconds,
            "uptime_human": TimeHelper.seconds_to_human_readable(uptime_seconds),
            "requests_served": self._request_count,
            "timestamp": TimeHelper.to_iso(),
            "app_name": self.settings.app_name,
            "app_version": self.settings.app_version,
        }
        if self.scheduler is not None:
            health["scheduler_running"] = self.scheduler.is_running
            health["active_tasks"] = len(self.scheduler.active_monitor_ids)
            health["in_flight_checks"] = self.scheduler.in_flight_checks
            health["scheduler"] = self.scheduler.get_stats()

        return web.json_response(health, status=200)

    async def _handle_status(self, request: web.Request) -> web.Response:
        """GET /status — one status snapshot per monitor."""
        self._request_count += 1
        if self.stats is None:
            return web.json_response([], status=200)

        try:
            snapshots = await self.stats.snapshot_all()
        except DatabaseException as e:
            logger.error(f"[HealthServer] /status unavailable: {e}")
            return web.json_response(
                {"error": e.message, "error_code": e.error_code}, status=503
            )

        return web.json_response(snapshots, status=200)


# ============================================================================
# END OF STATUS SERVER MODULE
# ============================================================================
