"""Tests for the status HTTP server."""

from __future__ import annotations

from aiohttp import test_utils

from config.constants import HeartbeatStatus
from exceptions import DatabaseQueryError, RegistryReadError
from monitoring.health import HealthServer
from monitoring.monitor import CheckExecutor
from monitoring.scheduler import MonitorScheduler
from monitoring.stats import StatsAggregator


def client_for(server: HealthServer) -> test_utils.TestClient:
    return test_utils.TestClient(test_utils.TestServer(server.app))


class BrokenRegistry:
    async def list_monitors(self):
        raise RegistryReadError()


class BrokenHistory:
    async def read(self, monitor_id, limit=None):
        raise DatabaseQueryError("Failed to read heartbeats", operation="read", table="heartbeats")


async def test_root(settings):
    async with client_for(HealthServer(settings)) as client:
        response = await client.get("/")
        assert response.status == 200
        assert await response.text() == "OK"


async def test_health(settings):
    async with client_for(HealthServer(settings)) as client:
        response = await client.get("/health")
        data = await response.json()

    assert data["status"] == "healthy"
    assert data["app_name"] == settings.app_name
    assert "active_tasks" not in data


async def test_status_lists_snapshots(settings, monitors, heartbeats):
    monitor = await monitors.add_monitor("http", "https://example.com", interval=30, name="Example")
    await heartbeats.append(monitor.id, HeartbeatStatus.UP, 20)
    stats = StatsAggregator(settings, monitors, heartbeats)

    async with client_for(HealthServer(settings, stats=stats)) as client:
        response = await client.get("/status")
        data = await response.json()

    assert response.status == 200
    assert len(data) == 1
    assert data[0]["display_name"] == "Example"
    assert data[0]["status"] == "up"
    assert data[0]["uptime"] == 100.0
    assert data[0]["latency"] == 20


async def test_status_unavailable_when_registry_fails(settings, heartbeats):
    stats = StatsAggregator(settings, BrokenRegistry(), heartbeats)

    async with client_for(HealthServer(settings, stats=stats)) as client:
        response = await client.get("/status")
        data = await response.json()

    assert response.status == 503
    assert data["error"] == "Failed to read monitor registry"


async def test_health_reports_scheduler(settings, monitors, heartbeats):
    scheduler = MonitorScheduler(settings, monitors, CheckExecutor(settings, heartbeats=heartbeats))

    async with client_for(HealthServer(settings, scheduler=scheduler)) as client:
        response = await client.get("/health")
        data = await response.json()

    assert data["scheduler_running"] is False
    assert data["active_tasks"] == 0
    assert data["scheduler"]["ticks"] == 0
    assert data["scheduler"]["tasks"] == []


async def test_status_unavailable_when_history_fails(settings, monitors):
    await monitors.add_monitor("http", "https://example.com", interval=30)
    stats = StatsAggregator(settings, monitors, BrokenHistory())

    async with client_for(HealthServer(settings, stats=stats)) as client:
        response = await client.get("/status")
        data = await response.json()

    assert response.status == 503
    assert data["error"] == "Failed to read heartbeats"
