"""
Validation Exception Classes for UptimeKit

Provides specialized exceptions for monitor definitions that
fail validation: bad targets, intervals, and monitor types.
"""

from __future__ import annotations

from typing import Any, Optional

from exceptions.base import UptimeKitException


class ValidationException(UptimeKitException):
    """
    Base Validation Exception

    Parent class for all validation-related exceptions.
    """

    default_error_code = 3000
    default_recoverable = True

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        **kwargs: Any
    ) -> None:
        """
        Initialize validation exception.

        Args:
            message: Error message
            field: The field that failed validation
            value: The invalid value (sanitized)
            **kwargs: Additional arguments
        """
        super().__init__(message, **kwargs)

        if field:
            self.details["field"] = field

        if value is not None:
            self.details["value"] = self._sanitize_value(value)

    @staticmethod
    def _sanitize_value(value: Any) -> str:
        """
        Sanitize value for logging.

        Args:
            value: The value to sanitize

        Returns:
            Sanitized string representation
        """
        str_value = str(value)

        if len(str_value) > 100:
            str_value = str_value[:100] + "..."

        return str_value


class InvalidURLError(ValidationException):
    """
    Invalid URL Error

    Raised when a monitor target is not a usable URL or hostname
    for its monitor type.
    """

    default_error_code = 3001

    def __init__(
        self,
        message: str = "Invalid target",
        url: Optional[str] = None,
        reason: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, field="url", value=url, **kwargs)

        if reason:
            self.details["reason"] = reason


class InvalidIntervalError(ValidationException):
    """
    Invalid Interval Error

    Raised when a monitor interval is not a positive integer
    number of seconds.
    """

    default_error_code = 3002

    def __init__(
        self,
        message: str = "Interval must be a positive integer number of seconds",
        interval: Optional[Any] = None,
        min_value: Optional[int] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, field="interval", value=interval, **kwargs)

        if min_value is not None:
            self.details["min_value"] = min_value


class InvalidMonitorTypeError(ValidationException):
    """
    Invalid Monitor Type Error

    Raised when a monitor type is not one of http, icmp or dns.
    """

    default_error_code = 3003

    def __init__(
        self,
        message: str = "Unsupported monitor type",
        monitor_type: Optional[Any] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, field="type", value=monitor_type, **kwargs)
