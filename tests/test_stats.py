"""Tests for status snapshot derivation."""

from __future__ import annotations

from datetime import timedelta

import pytest

from config.constants import HeartbeatStatus, MonitorStatus
from conftest import make_history
from monitoring.stats import (
    StatsAggregator,
    build_snapshot,
    downtime_start,
    uptime_percentage,
)
from utils.helpers import TimeHelper


class TestBuildSnapshot:
    def test_empty_history(self, now):
        snap = build_snapshot(1, [], now)
        assert snap.status == MonitorStatus.UNKNOWN
        assert snap.uptime == 0
        assert snap.latency == 0
        assert snap.downtime == "no downtime"
        assert snap.last_check == "never"

    def test_trailing_down_streak(self, now):
        # oldest → newest: up, down, down, down
        history = make_history(["up", "down", "down", "down"], now)
        snap = build_snapshot(1, history, now)

        assert snap.status == MonitorStatus.DOWN
        assert snap.uptime == 25.0
        # streak begins at the second heartbeat, two minutes before now
        assert snap.downtime_since == history[2].timestamp
        assert snap.downtime == "down for 2 minutes"

    def test_recovered_after_single_down(self, now):
        history = make_history(["down", "up", "up"], now, step_seconds=600)
        snap = build_snapshot(1, history, now)

        assert snap.status == MonitorStatus.UP
        assert snap.uptime == 66.67
        assert snap.downtime_since == history[-1].timestamp
        assert snap.downtime == "20 minutes ago"

    def test_single_down(self, now):
        history = make_history(["down"], now)
        snap = build_snapshot(1, history, now)

        assert snap.status == MonitorStatus.DOWN
        assert snap.uptime == 0.0
        assert snap.downtime_since == history[0].timestamp
        assert snap.downtime == "down for less than a minute"

    def test_all_up_has_no_downtime(self, now):
        history = make_history(["up"] * 5, now)
        snap = build_snapshot(1, history, now)
        assert snap.status == MonitorStatus.UP
        assert snap.uptime == 100.0
        assert snap.downtime == "no downtime"
        assert snap.downtime_since is None

    def test_last_check_and_latency_from_newest(self, now):
        history = make_history(["up", "up"], now - timedelta(minutes=5), latency=42)
        snap = build_snapshot(7, history, now)
        assert snap.monitor_id == 7
        assert snap.latency == 42
        assert snap.last_check == "5 minutes ago"
        assert snap.total_checks == 2

    def test_down_streak_broken_by_up(self, now):
        history = make_history(["down", "down", "up", "down"], now)
        assert downtime_start(history) is history[0]

    def test_to_dict_is_serializable(self, now):
        snap = build_snapshot(1, make_history(["up", "down"], now), now)
        data = snap.to_dict()
        assert data["status"] == "down"
        assert data["downtime_since"].endswith("Z")


class TestUptime:
    @pytest.mark.parametrize(
        "statuses, expected",
        [
            (["up"], 100.0),
            (["down"], 0.0),
            (["up", "down", "up"], 66.67),
            (["up", "down", "down"], 33.33),
        ],
    )
    def test_formula(self, statuses, expected, now):
        assert uptime_percentage(make_history(statuses, now)) == expected

    def test_bounds(self, now):
        history = make_history(["up", "down"] * 50, now)
        assert 0 <= uptime_percentage(history) <= 100


class TestTimeDistance:
    @pytest.mark.parametrize(
        "delta, expected",
        [
            (timedelta(seconds=10), "less than a minute"),
            (timedelta(minutes=1), "1 minute"),
            (timedelta(minutes=30), "30 minutes"),
            (timedelta(minutes=60), "about 1 hour"),
            (timedelta(hours=5), "about 5 hours"),
            (timedelta(hours=30), "1 day"),
            (timedelta(days=3), "3 days"),
            (timedelta(days=400), "about 1 year"),
        ],
    )
    def test_buckets(self, delta, expected, now):
        assert TimeHelper.time_distance(now - delta, now) == expected

    def test_naive_datetimes_are_utc(self, now):
        naive = (now - timedelta(minutes=3)).replace(tzinfo=None)
        assert TimeHelper.get_time_ago(naive, now) == "3 minutes ago"


class TestStatsAggregator:
    async def test_snapshot_reads_full_history(self, settings, monitors, heartbeats):
        monitor = await monitors.add_monitor("http", "https://example.com", interval=30)
        for status in ("up", "down", "up", "up"):
            await heartbeats.append(monitor.id, HeartbeatStatus(status), 12)

        stats = StatsAggregator(settings, monitors, heartbeats)
        snap = await stats.snapshot(monitor.id)

        assert snap.status == MonitorStatus.UP
        assert snap.uptime == 75.0
        assert snap.total_checks == 4
        assert snap.downtime.endswith("ago")

    async def test_recent_caps_to_display_limit(self, settings, monitors, heartbeats):
        monitor = await monitors.add_monitor("dns", "example.com", interval=30)
        for _ in range(5):
            await heartbeats.append(monitor.id, HeartbeatStatus.UP, 1)

        stats = StatsAggregator(settings, monitors, heartbeats)
        stats.display_limit = 3
        assert len(await stats.recent(monitor.id)) == 3
        assert len(await stats.recent(monitor.id, limit=4)) == 4

    async def test_snapshot_all(self, settings, monitors, heartbeats):
        first = await monitors.add_monitor("http", "https://example.com", interval=30, name="Site")
        await monitors.add_monitor("icmp", "10.0.0.1", interval=30)
        await heartbeats.append(first.id, HeartbeatStatus.DOWN, 0)

        stats = StatsAggregator(settings, monitors, heartbeats)
        entries = await stats.snapshot_all()

        assert [entry["id"] for entry in entries] == sorted(entry["id"] for entry in entries)
        assert entries[0]["display_name"] == "Site"
        assert entries[0]["status"] == "down"
        assert entries[1]["status"] == "unknown"
        assert entries[1]["display_name"] == "10.0.0.1"
