"""
============================================================================
UPTIMEKIT - RECONCILIATION SCHEDULER
============================================================================
Keeps exactly one recurring check task alive per monitor in the registry.

Every reconciliation tick (MONITOR_RECONCILE_INTERVAL, default 10s) the
registry is read and diffed by monitor id against the active tasks:

*   stop     monitor gone from the registry → trigger cancelled, task retired
*   start    monitor without a task → first check now, then every interval
*   restart  target, type or interval changed → old task retired, new one
             started with the new snapshot

Unchanged tasks are left alone so their cadence is preserved.

Each trigger fires on a fixed cadence measured from the task's start. A
check runs as its own asyncio task, so a slow probe never delays any
trigger or the reconciliation tick. A trigger that fires while its
previous check is still running is skipped (IDLE / CHECKING guard).
============================================================================
"""

import asyncio
from typing import Any, Dict, List, Optional, Set

from config.constants import CheckState
from config.settings import Settings
from database.manager import MonitorRepository
from exceptions import RegistryReadError
from monitoring.monitor import CheckExecutor, MonitorSnapshot
from utils.logger import get_logger


logger = get_logger("Scheduler")


# ============================================================================
# SCHEDULER STATE
# ============================================================================

class ActiveCheckTask:
    """
    Scheduler-owned record of one monitor's recurring check.

    Attributes
    ----------
    snapshot : MonitorSnapshot
        Configuration the task was started with.
    trigger : asyncio.Task
        The repeating trigger loop.
    state : CheckState
        IDLE, or CHECKING while a check is outstanding.
    check : asyncio.Task | None
        The outstanding check, if any.
    retired : bool
        Set when the task is stopped or replaced; results of checks that
        finish afterwards are discarded.
    """

    def __init__(self, snapshot: MonitorSnapshot):
        self.snapshot = snapshot
        self.trigger: Optional[asyncio.Task] = None
        self.state = CheckState.IDLE
        self.check: Optional[asyncio.Task] = None
        self.retired = False
        self.checks_started = 0
        self.checks_skipped = 0

    @property
    def monitor_id(self) -> int:
        return self.snapshot.monitor_id

    def is_current(self) -> bool:
        return not self.retired

    def to_dict(self) -> Dict[str, Any]:
        return {
            "monitor_id": self.monitor_id,
            "type": self.snapshot.type,
            "target": self.snapshot.target,
            "interval": self.snapshot.interval,
            "state": self.state.value,
            "checks_started": self.checks_started,
            "checks_skipped": self.checks_skipped,
        }


class SchedulerState:
    """
    Mutable state of one scheduler instance.

    ``tasks`` maps monitor id to its active task. ``in_flight`` holds every
    running check, including those of retired tasks, so shutdown can wait
    for them.
    """

    def __init__(self):
        self.tasks: Dict[int, ActiveCheckTask] = {}
        self.in_flight: Set[asyncio.Task] = set()
        self.ticks = 0
        self.failed_ticks = 0


# ============================================================================
# SCHEDULER
# ============================================================================

class MonitorScheduler:
    """
    Reconciliation loop plus per-monitor triggers.

    Usage
    -----
        scheduler = MonitorScheduler(settings, monitor_repo, executor)
        await scheduler.start()
        # ... later ...
        await scheduler.stop()
    """

    def __init__(
        self,
        settings: Settings,
        registry: MonitorRepository,
        executor: CheckExecutor,
        state: Optional[SchedulerState] = None,
    ):
        self.settings = settings
        self.registry = registry
        self.executor = executor
        self.state = state or SchedulerState()

        self._reconcile_interval = settings.monitoring.reconcile_interval
        self._running = False
        self._loop_task: Optional[asyncio.Task] = None
        self._reconcile_lock = asyncio.Lock()

        logger.info(f"Scheduler created (reconcile_interval={self._reconcile_interval}s)")

    # ------------------------------------------------------------------
    # LIFECYCLE
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start the reconciliation loop; the first tick runs immediately."""
        if self._running:
            logger.warning("Scheduler is already running")
            return
        self._running = True
        self._loop_task = asyncio.create_task(self._reconcile_loop(), name="reconcile-loop")
        logger.info("✓ Scheduler started")

    async def stop(self) -> None:
        """
        Cancel the loop and every trigger, then wait for outstanding checks
        to finish on their own. Their results are still recorded. Certificate
        inspections started by those checks are awaited as well.
        """
        self._running = False
        if self._loop_task:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None

        triggers = [task.trigger for task in self.state.tasks.values() if task.trigger]
        for trigger in triggers:
            trigger.cancel()
        if triggers:
            await asyncio.gather(*triggers, return_exceptions=True)

        in_flight = list(self.state.in_flight)
        if in_flight:
            logger.info(f"[Scheduler] Waiting for {len(in_flight)} in-flight check(s)")
            await asyncio.gather(*in_flight, return_exceptions=True)
        await self.executor.drain()

        self.state.tasks.clear()
        logger.info("✓ Scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def active_monitor_ids(self) -> List[int]:
        return sorted(self.state.tasks)

    @property
    def in_flight_checks(self) -> int:
        return len(self.state.in_flight)

    def get_task(self, monitor_id: int) -> Optional[ActiveCheckTask]:
        return self.state.tasks.get(monitor_id)

    # ------------------------------------------------------------------
    # RECONCILIATION
    # ------------------------------------------------------------------

    async def _reconcile_loop(self) -> None:
        logger.info("[Scheduler] Reconcile loop started")
        while self._running:
            try:
                await self.reconcile()
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("[Scheduler] Unhandled error during reconciliation")

            try:
                await asyncio.sleep(self._reconcile_interval)
            except asyncio.CancelledError:
                break

        logger.info("[Scheduler] Reconcile loop exited")

    async def reconcile(self) -> Optional[Dict[str, List[int]]]:
        """
        One reconciliation tick.

        Returns:
            Ids that were started, stopped and restarted, or None when the
            registry could not be read (the task set is left as it was)
        """
        async with self._reconcile_lock:
            self.state.ticks += 1
            try:
                monitors = await self.registry.list_monitors()
            except RegistryReadError as e:
                self.state.failed_ticks += 1
                logger.error(f"[Scheduler] Registry unavailable, keeping {len(self.state.tasks)} task(s): {e.log_format()}")
                return None

            current = {monitor.id: MonitorSnapshot.from_monitor(monitor) for monitor in monitors}
            changes: Dict[str, List[int]] = {"started": [], "stopped": [], "restarted": []}

            for monitor_id in list(self.state.tasks):
                if monitor_id not in current:
                    self._stop_task(monitor_id)
                    self.executor.forget(monitor_id)
                    changes["stopped"].append(monitor_id)

            for monitor_id, snapshot in current.items():
                task = self.state.tasks.get(monitor_id)
                if task is None:
                    self._start_task(snapshot)
                    changes["started"].append(monitor_id)
                elif task.snapshot.drift_key != snapshot.drift_key:
                    self._stop_task(monitor_id)
                    self._start_task(snapshot)
                    changes["restarted"].append(monitor_id)
                else:
                    # Name and webhook edits apply without a restart
                    task.snapshot = snapshot

            if any(changes.values()):
                logger.info(
                    f"[Scheduler] Reconciled: started={changes['started']} "
                    f"stopped={changes['stopped']} restarted={changes['restarted']}"
                )
            return changes

    def _start_task(self, snapshot: MonitorSnapshot) -> ActiveCheckTask:
        task = ActiveCheckTask(snapshot)
        task.trigger = asyncio.create_task(
            self._trigger_loop(task), name=f"monitor-{snapshot.monitor_id}"
        )
        self.state.tasks[snapshot.monitor_id] = task
        logger.debug(f"[Scheduler] Started {snapshot}")
        return task

    def _stop_task(self, monitor_id: int) -> None:
        task = self.state.tasks.pop(monitor_id, None)
        if task is None:
            return
        task.retired = True
        if task.trigger:
            task.trigger.cancel()
        logger.debug(f"[Scheduler] Stopped task of monitor {monitor_id}")

    # ------------------------------------------------------------------
    # TRIGGERS
    # ------------------------------------------------------------------

    async def _trigger_loop(self, task: ActiveCheckTask) -> None:
        """
        Fire immediately, then every ``interval`` seconds on a fixed grid.
        Fire times missed while the loop was blocked are skipped.
        """
        loop = asyncio.get_running_loop()
        interval = task.snapshot.interval
        next_fire = loop.time()

        while not task.retired:
            self._fire(task)

            next_fire += interval
            now = loop.time()
            if next_fire < now:
                missed = int((now - next_fire) // interval) + 1
                next_fire += missed * interval
            await asyncio.sleep(next_fire - now)

    def _fire(self, task: ActiveCheckTask) -> None:
        if task.state == CheckState.CHECKING:
            task.checks_skipped += 1
            logger.debug(
                f"[Scheduler] Monitor {task.monitor_id} still checking, skipping this trigger"
            )
            return

        task.state = CheckState.CHECKING
        task.checks_started += 1
        check = asyncio.create_task(self._run_check(task, task.snapshot))
        task.check = check
        self.state.in_flight.add(check)
        check.add_done_callback(self.state.in_flight.discard)

    async def _run_check(self, task: ActiveCheckTask, snapshot: MonitorSnapshot) -> None:
        try:
            await self.executor.execute(snapshot, is_current=task.is_current)
        except Exception:
            # One monitor's failure must never reach another task
            logger.exception(f"[Scheduler] Check of monitor {snapshot.monitor_id} failed")
        finally:
            task.state = CheckState.IDLE
            task.check = None

    # ------------------------------------------------------------------
    # DIAGNOSTICS
    # ------------------------------------------------------------------

    def get_stats(self) -> Dict[str, Any]:
        return {
            "running": self._running,
            "active_tasks": len(self.state.tasks),
            "in_flight_checks": self.in_flight_checks,
            "ticks": self.state.ticks,
            "failed_ticks": self.state.failed_ticks,
            "tasks": [task.to_dict() for task in self.state.tasks.values()],
        }


# ============================================================================
# END OF SCHEDULER MODULE
# ============================================================================
