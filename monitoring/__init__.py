"""
============================================================================
UPTIMEKIT - MONITORING PACKAGE
============================================================================
Runtime monitoring infrastructure:
    • CheckExecutor      — runs one probe, records the heartbeat
    • MonitorScheduler   — reconciles registry monitors with check tasks
    • StatsAggregator    — derives status snapshots from heartbeats
    • AlertManager       — local + webhook notification delivery
    • HealthServer       — aiohttp status server

File layout
-----------
monitoring/
├── __init__.py          ← this file
├── monitor.py           ← probes (HTTP/ICMP/DNS/SSL) + CheckExecutor
├── scheduler.py         ← MonitorScheduler
├── stats.py             ← StatsAggregator + build_snapshot
├── alerts.py            ← AlertManager
└── health.py            ← HealthServer
============================================================================
"""

from monitoring.monitor import (
    CheckExecutor,
    MonitorSnapshot,
    ProbeOk,
    ProbeErr,
    HTTPChecker,
    ICMPChecker,
    DNSChecker,
    SSLChecker,
    CertificateInfo,
)
from monitoring.alerts import AlertManager, AlertPayload
from monitoring.scheduler import MonitorScheduler, SchedulerState, ActiveCheckTask
from monitoring.stats import StatsAggregator, StatusSnapshot, build_snapshot
from monitoring.health import HealthServer

__all__ = [
    # Probes & executor
    "CheckExecutor",
    "MonitorSnapshot",
    "ProbeOk",
    "ProbeErr",
    "HTTPChecker",
    "ICMPChecker",
    "DNSChecker",
    "SSLChecker",
    "CertificateInfo",

    # Alerts
    "AlertManager",
    "AlertPayload",

    # Scheduler
    "MonitorScheduler",
    "SchedulerState",
    "ActiveCheckTask",

    # Stats
    "StatsAggregator",
    "StatusSnapshot",
    "build_snapshot",

    # Status server
    "HealthServer",
]
