"""Shared fixtures: a throwaway SQLite store per test."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from config.settings import (
    DatabaseSettings,
    Environment,
    MonitoringSettings,
    NotifierSettings,
    Settings,
)
from database.manager import (
    DatabaseManager,
    HeartbeatRepository,
    MonitorRepository,
    SslCertificateRepository,
)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        environment=Environment.TESTING,
        web_enabled=False,
        database=DatabaseSettings(sqlite_path=tmp_path / "uptimekit.db"),
        monitoring=MonitoringSettings(
            reconcile_interval=0.1,
            ssl_check_enabled=False,
        ),
        notifier=NotifierSettings(queue_size=10, webhook_timeout=2.0, desktop_enabled=False),
    )


@pytest.fixture
async def db_manager(settings):
    manager = DatabaseManager(settings)
    await manager.initialize()
    yield manager
    await manager.close()


@pytest.fixture
def monitors(db_manager) -> MonitorRepository:
    return MonitorRepository(db_manager)


@pytest.fixture
def heartbeats(db_manager) -> HeartbeatRepository:
    return HeartbeatRepository(db_manager)


@pytest.fixture
def certificates(db_manager) -> SslCertificateRepository:
    return SslCertificateRepository(db_manager)


@pytest.fixture
def now() -> datetime:
    return datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def make_history(statuses, now, step_seconds=60, latency=10):
    """
    Heartbeat-like objects newest first from statuses listed oldest first,
    spaced ``step_seconds`` apart and ending at ``now``.
    """
    count = len(statuses)
    history = [
        SimpleNamespace(
            status=status,
            latency=latency,
            timestamp=now - timedelta(seconds=step_seconds * (count - 1 - index)),
        )
        for index, status in enumerate(statuses)
    ]
    return list(reversed(history))


class RecordingAlerts:
    """Stands in for AlertManager; remembers every enqueued event."""

    def __init__(self):
        self.events = []

    def enqueue(self, event, monitor, days_remaining=None):
        self.events.append((event, monitor.monitor_id, days_remaining))
        return True


@pytest.fixture
def alerts() -> RecordingAlerts:
    return RecordingAlerts()
