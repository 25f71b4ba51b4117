"""
============================================================================
UPTIMEKIT - STATS AGGREGATOR
============================================================================
Derives a point-in-time status snapshot from a monitor's heartbeat
history. Nothing is cached; every read recomputes from the store.
============================================================================
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from config.constants import (
    HeartbeatStatus,
    MonitorStatus,
    NEVER_CHECKED_TEXT,
    NO_DOWNTIME_TEXT,
)
from config.settings import Settings
from database.manager import HeartbeatRepository, MonitorRepository
from database.models import Heartbeat
from utils.helpers import TimeHelper
from utils.logger import get_logger, log_execution_time


logger = get_logger("Stats")


class StatusSnapshot:
    """Derived status of one monitor."""
    __slots__ = (
        "monitor_id", "status", "latency", "uptime",
        "downtime", "downtime_since", "last_check", "total_checks",
    )

    def __init__(
        self,
        monitor_id: int,
        status: MonitorStatus,
        latency: int,
        uptime: float,
        downtime: str,
        last_check: str,
        downtime_since: Optional[datetime] = None,
        total_checks: int = 0,
    ):
        self.monitor_id = monitor_id
        self.status = status
        self.latency = latency
        self.uptime = uptime
        self.downtime = downtime
        self.downtime_since = downtime_since
        self.last_check = last_check
        self.total_checks = total_checks

    def to_dict(self) -> Dict[str, Any]:
        return {
            "monitor_id": self.monitor_id,
            "status": self.status.value,
            "latency": self.latency,
            "uptime": self.uptime,
            "downtime": self.downtime,
            "downtime_since": (
                TimeHelper.to_iso(self.downtime_since) if self.downtime_since else None
            ),
            "last_check": self.last_check,
            "total_checks": self.total_checks,
        }

    def __repr__(self):
        return (
            f"<StatusSnapshot(monitor_id={self.monitor_id}, status={self.status.value}, "
            f"uptime={self.uptime})>"
        )


def uptime_percentage(heartbeats: Sequence[Any]) -> float:
    """round(100 * up / total, 2); 0 for an empty history."""
    total = len(heartbeats)
    if total == 0:
        return 0.0
    up = sum(1 for hb in heartbeats if hb.status == HeartbeatStatus.UP.value)
    return round(100 * up / total, 2)


def downtime_start(heartbeats: Sequence[Any]) -> Optional[Any]:
    """
    Oldest heartbeat of the unbroken down streak that includes the newest
    sample, or None when the newest sample is up or there is none.

    ``heartbeats`` must be ordered newest first.
    """
    if not heartbeats or heartbeats[0].status != HeartbeatStatus.DOWN.value:
        return None

    start = heartbeats[0]
    for heartbeat in heartbeats[1:]:
        if heartbeat.status != HeartbeatStatus.DOWN.value:
            break
        start = heartbeat
    return start


def last_down(heartbeats: Sequence[Any]) -> Optional[Any]:
    """Most recent down heartbeat anywhere in the history."""
    for heartbeat in heartbeats:
        if heartbeat.status == HeartbeatStatus.DOWN.value:
            return heartbeat
    return None


def build_snapshot(
    monitor_id: int,
    heartbeats: Sequence[Any],
    now: Optional[datetime] = None,
) -> StatusSnapshot:
    """
    Derive a status snapshot.

    Args:
        monitor_id: Monitor the history belongs to
        heartbeats: History ordered newest first (objects with
            ``status``, ``latency`` and ``timestamp``)
        now: Reference time for relative texts (defaults to now)
    """
    now = TimeHelper.ensure_utc(now) if now else TimeHelper.get_utc_now()

    if not heartbeats:
        return StatusSnapshot(
            monitor_id=monitor_id,
            status=MonitorStatus.UNKNOWN,
            latency=0,
            uptime=0.0,
            downtime=NO_DOWNTIME_TEXT,
            last_check=NEVER_CHECKED_TEXT,
        )

    newest = heartbeats[0]
    status = MonitorStatus(newest.status)
    downtime_since = None

    if status == MonitorStatus.DOWN:
        start = downtime_start(heartbeats)
        downtime_since = TimeHelper.ensure_utc(start.timestamp)
        downtime = f"down for {TimeHelper.time_distance(downtime_since, now)}"
    else:
        down = last_down(heartbeats)
        if down is None:
            downtime = NO_DOWNTIME_TEXT
        else:
            downtime_since = TimeHelper.ensure_utc(down.timestamp)
            downtime = TimeHelper.get_time_ago(downtime_since, now)

    return StatusSnapshot(
        monitor_id=monitor_id,
        status=status,
        latency=newest.latency or 0,
        uptime=uptime_percentage(heartbeats),
        downtime=downtime,
        downtime_since=downtime_since,
        last_check=TimeHelper.get_time_ago(newest.timestamp, now),
        total_checks=len(heartbeats),
    )


class StatsAggregator:
    """
    Reads heartbeat history on demand and builds snapshots.

    ``snapshot`` uses the full history for uptime math; ``recent`` returns
    the bounded window shown by displays.
    """

    def __init__(
        self,
        settings: Settings,
        registry: MonitorRepository,
        heartbeats: HeartbeatRepository,
    ):
        self.settings = settings
        self.registry = registry
        self.heartbeats = heartbeats
        self.display_limit = settings.monitoring.heartbeat_display_limit

    async def snapshot(self, monitor_id: int, now: Optional[datetime] = None) -> StatusSnapshot:
        history = await self.heartbeats.read(monitor_id)
        return build_snapshot(monitor_id, history, now)

    async def recent(self, monitor_id: int, limit: Optional[int] = None) -> List[Heartbeat]:
        return await self.heartbeats.read(monitor_id, limit=limit or self.display_limit)

    @log_execution_time
    async def snapshot_all(self, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """
        Snapshot of every registry monitor merged with its definition.

        Raises:
            RegistryReadError: If the registry cannot be read
        """
        now = now or TimeHelper.get_utc_now()
        results = []
        for monitor in await self.registry.list_monitors():
            snapshot = await self.snapshot(monitor.id, now)
            entry = monitor.to_dict()
            entry.update(snapshot.to_dict())
            entry["display_name"] = monitor.display_name
            results.append(entry)

        logger.debug(f"[Stats] Built {len(results)} snapshot(s)")
        return results
