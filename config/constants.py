"""
Constants Module for UptimeKit

Contains the enumerations and static values shared by the
registry, the scheduler, the executor and the notifier.
"""

from __future__ import annotations

from enum import Enum
from typing import Final, List


class MonitorType(str, Enum):
    """
    Monitor Type Enumeration

    Protocol used to probe a monitor's target.
    """

    HTTP = "http"
    ICMP = "icmp"
    DNS = "dns"

    @classmethod
    def values(cls) -> List[str]:
        """Get all type values."""
        return [member.value for member in cls]

    @classmethod
    def parse(cls, value: str) -> "MonitorType":
        """Parse a type name case-insensitively."""
        return cls(str(value).strip().lower())


class HeartbeatStatus(str, Enum):
    """Outcome recorded for a single check."""

    UP = "up"
    DOWN = "down"


class MonitorStatus(str, Enum):
    """
    Status reported in a status snapshot.

    UNKNOWN is only ever derived, never stored.
    """

    UP = "up"
    DOWN = "down"
    UNKNOWN = "unknown"


class CheckState(str, Enum):
    """Per-monitor check state owned by the scheduler."""

    IDLE = "idle"
    CHECKING = "checking"


class NotificationEvent(str, Enum):
    """
    Notification Event Enumeration

    Transition events delivered by the notifier.
    """

    MONITOR_DOWN = "monitor_down"
    MONITOR_UP = "monitor_up"
    SSL_EXPIRING = "ssl_expiring"
    SSL_EXPIRED = "ssl_expired"
    SSL_VALID = "ssl_valid"


class CertificateState(str, Enum):
    """Health of a tracked TLS certificate."""

    VALID = "valid"
    EXPIRING = "expiring"
    EXPIRED = "expired"


# Group name that selects monitors without a group
UNGROUPED: Final[str] = "ungrouped"

# Downtime / last-check texts
NO_DOWNTIME_TEXT: Final[str] = "no downtime"
NEVER_CHECKED_TEXT: Final[str] = "never"
