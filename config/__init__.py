"""
Configuration Package for UptimeKit

This package contains all configuration-related modules including:
- Settings management with environment variable support
- Constants and enums used throughout the application
"""

from config.settings import (
    Settings,
    DatabaseSettings,
    MonitoringSettings,
    NotifierSettings,
    LoggingSettings,
    Environment,
    get_settings,
)

from config.constants import (
    MonitorType,
    HeartbeatStatus,
    MonitorStatus,
    CheckState,
    NotificationEvent,
    CertificateState,
    UNGROUPED,
)

__all__ = [
    # Settings
    "Settings",
    "DatabaseSettings",
    "MonitoringSettings",
    "NotifierSettings",
    "LoggingSettings",
    "Environment",
    "get_settings",

    # Constants
    "MonitorType",
    "HeartbeatStatus",
    "MonitorStatus",
    "CheckState",
    "NotificationEvent",
    "CertificateState",
    "UNGROUPED",
]
