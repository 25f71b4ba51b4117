"""Tests for the reconciliation scheduler."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from config.constants import CheckState, MonitorType
from exceptions import RegistryReadError
from monitoring.monitor import CertificateInfo, CheckExecutor, ProbeOk
from monitoring.scheduler import MonitorScheduler, SchedulerState


def monitor(id, url="http://example.com", type="http", interval=30, name=None):
    return SimpleNamespace(id=id, url=url, type=type, interval=interval, name=name, webhook_url=None)


class FakeRegistry:
    def __init__(self, *monitors):
        self.monitors = list(monitors)
        self.fail = False

    async def list_monitors(self):
        if self.fail:
            raise RegistryReadError()
        return list(self.monitors)


class FakeExecutor:
    """Records executions; each check takes ``delay`` seconds."""

    def __init__(self, delay=0.0):
        self.delay = delay
        self.started = []
        self.finished = []
        self.forgotten = []

    async def execute(self, snapshot, is_current=None):
        self.started.append(snapshot.monitor_id)
        await asyncio.sleep(self.delay)
        self.finished.append((snapshot.monitor_id, is_current() if is_current else True))

    def forget(self, monitor_id):
        self.forgotten.append(monitor_id)

    async def drain(self):
        pass


class SlowChecker:
    def __init__(self, delay):
        self.delay = delay

    async def probe(self, target):
        await asyncio.sleep(self.delay)
        return ProbeOk(1)


def real_executor(settings, heartbeats, delay=0.0):
    checker = SlowChecker(delay)
    return CheckExecutor(
        settings, heartbeats,
        checkers={MonitorType.HTTP: checker, MonitorType.ICMP: checker, MonitorType.DNS: checker},
    )


@pytest.fixture
async def scheduler_factory(settings):
    created = []

    def factory(registry, executor):
        scheduler = MonitorScheduler(settings, registry, executor, SchedulerState())
        created.append(scheduler)
        return scheduler

    yield factory
    for scheduler in created:
        await scheduler.stop()


class TestReconcile:
    async def test_starts_one_task_per_monitor(self, scheduler_factory):
        executor = FakeExecutor()
        scheduler = scheduler_factory(FakeRegistry(monitor(1), monitor(2)), executor)

        changes = await scheduler.reconcile()
        await asyncio.sleep(0.05)

        assert changes["started"] == [1, 2]
        assert scheduler.active_monitor_ids == [1, 2]
        # First check runs immediately
        assert sorted(executor.started) == [1, 2]

    async def test_idempotent(self, scheduler_factory):
        scheduler = scheduler_factory(FakeRegistry(monitor(1)), FakeExecutor())

        await scheduler.reconcile()
        task = scheduler.get_task(1)
        changes = await scheduler.reconcile()

        assert changes == {"started": [], "stopped": [], "restarted": []}
        assert scheduler.get_task(1) is task

    async def test_stops_removed_monitor(self, scheduler_factory):
        registry = FakeRegistry(monitor(1), monitor(2))
        executor = FakeExecutor()
        scheduler = scheduler_factory(registry, executor)
        await scheduler.reconcile()
        task = scheduler.get_task(2)

        registry.monitors = [monitor(1)]
        changes = await scheduler.reconcile()
        await asyncio.sleep(0)

        assert changes["stopped"] == [2]
        assert scheduler.active_monitor_ids == [1]
        assert task.retired
        assert task.trigger.cancelled() or task.trigger.done()
        assert executor.forgotten == [2]

    async def test_restarts_on_drift(self, scheduler_factory):
        registry = FakeRegistry(monitor(1, interval=30))
        scheduler = scheduler_factory(registry, FakeExecutor())
        await scheduler.reconcile()
        old = scheduler.get_task(1)

        registry.monitors = [monitor(1, url="http://example.org")]
        changes = await scheduler.reconcile()

        assert changes["restarted"] == [1]
        assert old.retired
        assert scheduler.get_task(1) is not old
        assert scheduler.get_task(1).snapshot.target == "http://example.org"

    async def test_name_change_is_not_drift(self, scheduler_factory):
        registry = FakeRegistry(monitor(1, name="old"))
        scheduler = scheduler_factory(registry, FakeExecutor())
        await scheduler.reconcile()
        task = scheduler.get_task(1)

        registry.monitors = [monitor(1, name="new")]
        changes = await scheduler.reconcile()

        assert changes["restarted"] == []
        assert scheduler.get_task(1) is task
        assert task.snapshot.name == "new"

    async def test_registry_error_keeps_tasks(self, scheduler_factory):
        registry = FakeRegistry(monitor(1), monitor(2))
        scheduler = scheduler_factory(registry, FakeExecutor())
        await scheduler.reconcile()

        registry.fail = True
        assert await scheduler.reconcile() is None
        assert scheduler.active_monitor_ids == [1, 2]
        assert scheduler.state.failed_ticks == 1

        registry.fail = False
        registry.monitors = [monitor(1)]
        changes = await scheduler.reconcile()
        assert changes["stopped"] == [2]

    async def test_start_runs_loop(self, scheduler_factory):
        scheduler = scheduler_factory(FakeRegistry(monitor(1)), FakeExecutor())
        await scheduler.start()
        await asyncio.sleep(0.25)

        assert scheduler.is_running
        assert scheduler.active_monitor_ids == [1]
        assert scheduler.state.ticks >= 2

        await scheduler.stop()
        assert not scheduler.is_running
        assert scheduler.active_monitor_ids == []


class TestTriggers:
    async def test_skip_if_busy(self, scheduler_factory):
        executor = FakeExecutor(delay=1.5)
        scheduler = scheduler_factory(FakeRegistry(monitor(1, interval=1)), executor)

        await scheduler.reconcile()
        task = scheduler.get_task(1)
        await asyncio.sleep(0.5)
        assert task.state == CheckState.CHECKING

        # t=1 is skipped while the first check runs; t=2 starts the second
        await asyncio.sleep(1.7)
        assert task.checks_skipped == 1
        assert task.checks_started == 2
        assert executor.started == [1, 1]

    async def test_stop_waits_for_in_flight_checks(self, scheduler_factory):
        executor = FakeExecutor(delay=0.3)
        scheduler = scheduler_factory(FakeRegistry(monitor(1)), executor)

        await scheduler.reconcile()
        await asyncio.sleep(0.05)
        assert scheduler.in_flight_checks == 1

        await scheduler.stop()

        assert executor.finished == [(1, True)]
        assert scheduler.in_flight_checks == 0

    async def test_check_failure_does_not_stop_trigger(self, scheduler_factory):
        executor = FakeExecutor()
        executor.execute = AsyncMock(side_effect=RuntimeError("boom"))
        scheduler = scheduler_factory(FakeRegistry(monitor(1, interval=1)), executor)

        await scheduler.reconcile()
        await asyncio.sleep(1.3)

        task = scheduler.get_task(1)
        assert executor.execute.await_count == 2
        assert task.state == CheckState.IDLE


class TestScenarios:
    async def test_always_up_monitor_records_every_interval(
        self, settings, monitors, heartbeats, scheduler_factory
    ):
        record = await monitors.add_monitor("http", "http://example.com", interval=1)
        scheduler = scheduler_factory(monitors, real_executor(settings, heartbeats))

        await scheduler.reconcile()
        await asyncio.sleep(2.5)
        await scheduler.stop()

        history = await heartbeats.read(record.id)
        assert len(history) == 3
        assert {hb.status for hb in history} == {"up"}

    async def test_deleted_monitor_records_nothing_more(
        self, settings, monitors, heartbeats, scheduler_factory
    ):
        record = await monitors.add_monitor("http", "http://example.com", interval=1)
        heartbeats.append = AsyncMock(wraps=heartbeats.append)
        scheduler = scheduler_factory(monitors, real_executor(settings, heartbeats, delay=0.3))

        await scheduler.reconcile()
        await asyncio.sleep(0.1)
        await monitors.delete_monitor(record.id)
        changes = await scheduler.reconcile()
        await asyncio.sleep(1.5)

        assert changes["stopped"] == [record.id]
        assert scheduler.in_flight_checks == 0
        heartbeats.append.assert_not_awaited()

    async def test_interval_change_restarts_task(
        self, settings, monitors, heartbeats, scheduler_factory
    ):
        record = await monitors.add_monitor("http", "http://example.com", interval=30)
        scheduler = scheduler_factory(monitors, real_executor(settings, heartbeats))

        await scheduler.reconcile()
        await asyncio.sleep(0.1)
        old = scheduler.get_task(record.id)
        assert old.checks_started == 1

        await monitors.update_monitor(record.id, interval=5)
        changes = await scheduler.reconcile()
        await asyncio.sleep(0.1)

        assert changes["restarted"] == [record.id]
        assert old.trigger.done()
        assert old.checks_started == 1
        new = scheduler.get_task(record.id)
        assert new.snapshot.interval == 5
        assert new.checks_started == 1
        assert await heartbeats.count_for(record.id) == 2

    async def test_slow_certificate_inspection_keeps_cadence(
        self, settings, monitors, heartbeats, certificates, scheduler_factory
    ):
        settings.monitoring.ssl_check_enabled = True
        record = await monitors.add_monitor("http", "https://example.com", interval=1)

        async def slow_inspect(target):
            await asyncio.sleep(2)
            return CertificateInfo(days_remaining=90)

        executor = real_executor(settings, heartbeats)
        executor.certificates = certificates
        executor._ssl_checker = SimpleNamespace(inspect=slow_inspect)
        scheduler = scheduler_factory(monitors, executor)

        await scheduler.reconcile()
        await asyncio.sleep(2.5)
        assert scheduler.get_task(record.id).checks_skipped == 0

        await scheduler.stop()

        assert await heartbeats.count_for(record.id) == 3
        # Stop waited for the inspection as well
        assert (await certificates.get(record.id)).days_remaining == 90

    async def test_restart_while_reading_last_status_discards_old_result(
        self, settings, monitors, heartbeats, scheduler_factory
    ):
        record = await monitors.add_monitor("http", "http://example.com", interval=30)
        read_latest = heartbeats.latest

        async def slow_latest(monitor_id):
            await asyncio.sleep(0.3)
            return await read_latest(monitor_id)

        heartbeats.latest = slow_latest
        scheduler = scheduler_factory(monitors, real_executor(settings, heartbeats))

        await scheduler.reconcile()
        await asyncio.sleep(0.1)
        old = scheduler.get_task(record.id)
        assert old.state == CheckState.CHECKING

        await monitors.update_monitor(record.id, url="http://example.org")
        await scheduler.reconcile()
        await asyncio.sleep(0.8)

        history = await heartbeats.read(record.id)
        assert len(history) == 1
        assert old.retired
