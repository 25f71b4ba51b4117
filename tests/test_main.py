"""Tests for application startup and shutdown."""

from __future__ import annotations

import asyncio

import pytest

from config.constants import MonitorType
from config.settings import DatabaseSettings, get_settings
from exceptions import ConfigurationError
from main import UptimeKitApplication, run_daemon
from monitoring.monitor import ProbeOk


class AlwaysUp:
    async def probe(self, target):
        return ProbeOk(1)


async def test_startup_and_shutdown(settings):
    app = UptimeKitApplication(settings)

    assert await app.startup() is True
    app.executor._checkers = {monitor_type: AlwaysUp() for monitor_type in MonitorType}
    monitor = await app.monitors.add_monitor("dns", "localhost", interval=60)
    await asyncio.sleep(0.3)

    assert app.scheduler.is_running
    assert app.scheduler.active_monitor_ids == [monitor.id]
    assert app.health_server is None
    assert await app.heartbeats.count_for(monitor.id) == 1

    await app.shutdown()

    assert not app.scheduler.is_running
    assert app.db_manager is None


async def test_unopenable_store_is_fatal(settings, tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("")
    settings.database = DatabaseSettings(sqlite_path=blocker / "uptimekit.db")

    assert await run_daemon(settings) == 1


async def test_stop_request_ends_run(settings):
    async def stop_soon(app):
        await asyncio.sleep(0.2)
        app.request_stop()

    app = UptimeKitApplication(settings)
    assert await app.startup()
    stopper = asyncio.create_task(stop_soon(app))

    await asyncio.wait_for(app.run(), timeout=5)
    await stopper
    await app.shutdown()


def test_invalid_environment_is_a_configuration_error(monkeypatch):
    monkeypatch.setenv("MONITOR_RECONCILE_INTERVAL", "0")
    get_settings.cache_clear()
    try:
        with pytest.raises(ConfigurationError) as exc:
            get_settings()
    finally:
        get_settings.cache_clear()

    assert exc.value.details["config_key"].endswith("reconcile_interval")
