"""
Monitoring Exception Classes for UptimeKit

Probe faults. These never escape the check executor: every probe
converts them into a failed result, and the executor turns that into
a `down` heartbeat.
"""

from __future__ import annotations

from typing import Any, Optional

from exceptions.base import UptimeKitException


class MonitoringException(UptimeKitException):
    """Base class for monitoring errors."""

    default_error_code = 4000
    default_recoverable = True


class ProbeError(MonitoringException):
    """
    Probe Error

    Base class for a failed health check against a target.

    Attributes:
        target: URL or hostname that was probed
        monitor_type: Protocol of the probe (http, icmp, dns)
    """

    default_error_code = 4100

    def __init__(
        self,
        message: str = "Probe failed",
        target: Optional[str] = None,
        monitor_type: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        self.target = target
        self.monitor_type = monitor_type

        if target:
            self.details["target"] = target

        if monitor_type:
            self.details["monitor_type"] = monitor_type


class ProbeTimeout(ProbeError):
    """The target did not answer within the probe timeout."""

    default_error_code = 4101

    def __init__(
        self,
        message: str = "Probe timed out",
        timeout: Optional[float] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        if timeout is not None:
            self.details["timeout"] = timeout


class ProbeConnectionError(ProbeError):
    """The connection was refused, reset or could not be routed."""

    default_error_code = 4102


class ProbeProtocolError(ProbeError):
    """
    The target answered but not successfully: a non-2xx HTTP status,
    a DNS resolution failure, or an unreachable ICMP reply.
    """

    default_error_code = 4103

    def __init__(
        self,
        message: str = "Protocol error",
        status_code: Optional[int] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        self.status_code = status_code
        if status_code is not None:
            self.details["status_code"] = status_code
