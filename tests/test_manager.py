"""Tests for the monitor registry and the heartbeat store."""

from __future__ import annotations

import asyncio

import pytest
from sqlalchemy.exc import SQLAlchemyError

from config.constants import HeartbeatStatus
from exceptions import (
    DatabaseDuplicateError,
    DatabaseNotFoundError,
    InvalidIntervalError,
    InvalidMonitorTypeError,
    InvalidURLError,
    ValidationException,
)


class TestMonitorRegistry:
    async def test_add_and_list(self, monitors):
        first = await monitors.add_monitor("http", "https://example.com", interval=30, name="Example")
        second = await monitors.add_monitor("dns", "example.org")

        listed = await monitors.list_monitors()

        assert [m.id for m in listed] == [first.id, second.id]
        assert second.interval == 60
        assert second.name is None
        assert first.display_name == "Example"
        assert second.display_name == "example.org"

    @pytest.mark.parametrize(
        "kwargs, error",
        [
            ({"monitor_type": "tcp", "url": "example.com"}, InvalidMonitorTypeError),
            ({"monitor_type": "http", "url": "example.com"}, InvalidURLError),
            ({"monitor_type": "icmp", "url": "http://example.com"}, InvalidURLError),
            ({"monitor_type": "http", "url": "https://example.com", "interval": 0}, InvalidIntervalError),
            ({"monitor_type": "http", "url": "https://example.com", "interval": 2.5}, InvalidIntervalError),
        ],
    )
    async def test_add_rejects_invalid(self, monitors, kwargs, error):
        with pytest.raises(error):
            await monitors.add_monitor(**kwargs)
        assert await monitors.list_monitors() == []

    async def test_duplicate_name_is_case_insensitive(self, monitors):
        await monitors.add_monitor("http", "https://example.com", name="API")
        with pytest.raises(DatabaseDuplicateError) as exc:
            await monitors.add_monitor("http", "https://example.org", name="api")
        assert exc.value.message == "Monitor with name 'api' already exists."

    async def test_update_partial(self, monitors):
        monitor = await monitors.add_monitor("http", "https://example.com", interval=30, name="A")

        updated = await monitors.update_monitor(monitor.id, interval=5, webhook_url="https://hooks.example.com/x")

        assert updated.interval == 5
        assert updated.name == "A"
        assert updated.webhook_url == "https://hooks.example.com/x"

    async def test_update_name_conflict_excludes_self(self, monitors):
        a = await monitors.add_monitor("http", "https://a.example.com", name="A")
        await monitors.add_monitor("http", "https://b.example.com", name="B")

        assert (await monitors.update_monitor(a.id, name="a")).name == "a"
        with pytest.raises(DatabaseDuplicateError):
            await monitors.update_monitor(a.id, name="b")

    async def test_update_unknown(self, monitors):
        with pytest.raises(DatabaseNotFoundError):
            await monitors.update_monitor(999, interval=5)
        with pytest.raises(ValidationException):
            await monitors.update_monitor(1, created_at=None)

    async def test_lookup_order(self, monitors):
        by_name = await monitors.add_monitor("http", "https://shop.example.com", name="Shop")
        by_url = await monitors.add_monitor("dns", "shop.example.org")

        assert (await monitors.get_by_id_or_name(str(by_url.id))).id == by_url.id
        assert (await monitors.get_by_id_or_name("SHOP")).id == by_name.id
        assert (await monitors.get_by_id_or_name("Shop.Example.org")).id == by_url.id
        assert (await monitors.get_by_id_or_name("example.org")).id == by_url.id
        assert await monitors.get_by_id_or_name("nothing") is None
        assert await monitors.get_by_id_or_name("%") is None

    async def test_delete_cascades(self, monitors, heartbeats, certificates):
        monitor = await monitors.add_monitor("http", "https://example.com")
        await heartbeats.append(monitor.id, HeartbeatStatus.UP, 5)
        await certificates.upsert(monitor.id, days_remaining=30)

        assert await monitors.delete_monitor(monitor.id) is True

        assert await heartbeats.read(monitor.id) == []
        assert await certificates.get(monitor.id) is None
        assert await monitors.delete_monitor(monitor.id) is False

    async def test_children_are_never_loaded_implicitly(self, monitors):
        monitor = await monitors.add_monitor("http", "https://example.com")
        loaded = await monitors.get_monitor(monitor.id)

        with pytest.raises(SQLAlchemyError):
            loaded.heartbeats

    async def test_reset(self, db_manager, monitors):
        await monitors.add_monitor("http", "https://example.com")
        await db_manager.reset()
        assert await monitors.list_monitors() == []


class TestGroups:
    @pytest.fixture
    async def grouped(self, monitors):
        await monitors.add_monitor("http", "https://a.example.com", group_name="prod")
        await monitors.add_monitor("http", "https://b.example.com", group_name="Prod")
        await monitors.add_monitor("http", "https://c.example.com", group_name="alpha")
        await monitors.add_monitor("http", "https://d.example.com", group_name="  ")
        await monitors.add_monitor("http", "https://e.example.com")
        return monitors

    async def test_get_groups(self, grouped):
        groups = await grouped.get_groups()
        names = [g["group_name"] for g in groups]
        assert names[0] == "alpha"
        assert sum(g["count"] for g in groups) == 3

    async def test_group_exists(self, grouped):
        assert await grouped.group_exists("PROD")
        assert not await grouped.group_exists("staging")
        assert not await grouped.group_exists("")

    async def test_monitors_by_group(self, grouped):
        assert len(await grouped.get_monitors_by_group("prod")) == 2
        assert len(await grouped.get_monitors_by_group(None)) == 2
        assert len(await grouped.get_monitors_by_group("Ungrouped")) == 2

    async def test_rename(self, grouped):
        assert await grouped.rename_group("prod", "production") == 2
        assert not await grouped.group_exists("prod")
        assert len(await grouped.get_monitors_by_group("production")) == 2

    async def test_rename_case_only(self, grouped):
        assert await grouped.rename_group("alpha", "Alpha") == 1

    async def test_rename_errors(self, grouped):
        with pytest.raises(DatabaseNotFoundError) as missing:
            await grouped.rename_group("staging", "x")
        assert missing.value.message == "Group 'staging' does not exist."

        with pytest.raises(DatabaseDuplicateError) as taken:
            await grouped.rename_group("prod", "alpha")
        assert taken.value.message == "Group 'alpha' already exists."

    async def test_delete_group_ungroups(self, grouped):
        assert await grouped.delete_group("PROD") == 2
        assert len(await grouped.list_monitors()) == 5
        assert len(await grouped.get_monitors_by_group(None)) == 4

    async def test_delete_group_with_monitors(self, grouped, heartbeats):
        member = (await grouped.get_monitors_by_group("alpha"))[0]
        await heartbeats.append(member.id, HeartbeatStatus.DOWN, 0)

        assert await grouped.delete_group("alpha", delete_monitors=True) == 1

        assert len(await grouped.list_monitors()) == 4
        assert await heartbeats.count_for(member.id) == 0

    async def test_delete_missing_group(self, grouped):
        with pytest.raises(DatabaseNotFoundError):
            await grouped.delete_group("staging")


class TestHeartbeatStore:
    async def test_read_newest_first(self, monitors, heartbeats):
        monitor = await monitors.add_monitor("icmp", "10.0.0.1")
        for latency in (1, 2, 3):
            await heartbeats.append(monitor.id, HeartbeatStatus.UP, latency)

        history = await heartbeats.read(monitor.id)

        assert [hb.latency for hb in history] == [3, 2, 1]
        assert [hb.latency for hb in await heartbeats.read(monitor.id, limit=2)] == [3, 2]
        assert (await heartbeats.latest(monitor.id)).latency == 3

    async def test_latency_is_clamped(self, monitors, heartbeats):
        monitor = await monitors.add_monitor("icmp", "10.0.0.1")
        heartbeat = await heartbeats.append(monitor.id, "down", -5)
        assert heartbeat.latency == 0
        assert heartbeat.status == "down"

    async def test_concurrent_appends_all_land(self, monitors, heartbeats):
        a = await monitors.add_monitor("icmp", "10.0.0.1")
        b = await monitors.add_monitor("icmp", "10.0.0.2")

        await asyncio.gather(*(
            heartbeats.append(monitor_id, HeartbeatStatus.UP, 1)
            for monitor_id in (a.id, b.id) * 5
        ))

        assert await heartbeats.count_for(a.id) == 5
        assert await heartbeats.count_for(b.id) == 5
        assert heartbeats.lock_for(a.id) is not heartbeats.lock_for(b.id)

    async def test_latest_of_empty_history(self, heartbeats):
        assert await heartbeats.latest(42) is None

    async def test_release_drops_idle_lock(self, heartbeats):
        heartbeats.lock_for(1)
        busy = heartbeats.lock_for(2)

        async with busy:
            heartbeats.release(1)
            heartbeats.release(2)

        assert 1 not in heartbeats._locks
        assert heartbeats.lock_for(2) is busy
        heartbeats.release(3)
