"""
============================================================================
UPTIMEKIT - VALIDATORS UTILITY
============================================================================
Validation of monitor definitions before they reach the registry:
monitor type, check interval, target URL or hostname, webhook URL and
display name.
============================================================================
"""

import ipaddress
from typing import Any, Optional
from urllib.parse import urlparse

import validators as external_validators

from config.constants import MonitorType
from exceptions import (
    InvalidIntervalError,
    InvalidMonitorTypeError,
    InvalidURLError,
    ValidationException,
)
from utils.logger import get_logger


logger = get_logger(__name__)

MAX_NAME_LENGTH = 100


# ============================================================================
# URL / HOST VALIDATORS
# ============================================================================

class URLValidator:
    """
    URL and hostname checks backed by the ``validators`` package.
    """

    @staticmethod
    def is_valid_ip(ip: str) -> bool:
        """Check if IP address is valid."""
        try:
            ipaddress.ip_address(ip)
            return True
        except ValueError:
            return False

    @staticmethod
    def is_valid_hostname(host: str) -> bool:
        """
        Check if a bare hostname is probeable.

        Accepts IP literals, ``localhost`` and fully qualified domains.
        """
        if not host:
            return False

        if host.lower() == "localhost" or URLValidator.is_valid_ip(host):
            return True

        return bool(external_validators.domain(host))

    @staticmethod
    def is_valid_url(url: str) -> bool:
        """
        Check if URL is a usable http(s) URL.

        Args:
            url: URL to validate

        Returns:
            True if valid, False otherwise
        """
        try:
            parsed = urlparse(url)
        except ValueError as e:
            logger.debug(f"URL validation error: {e}")
            return False

        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            return False

        if URLValidator.is_valid_hostname(parsed.hostname):
            return True

        return bool(external_validators.url(url))


# ============================================================================
# MONITOR VALIDATORS
# ============================================================================

class MonitorValidator:
    """
    Validation rules for monitor definitions.

    Each ``validate_*`` method returns the normalized value or raises a
    ``ValidationException`` subclass.
    """

    @staticmethod
    def validate_type(monitor_type: Any) -> MonitorType:
        try:
            return MonitorType.parse(monitor_type)
        except ValueError:
            raise InvalidMonitorTypeError(
                f"Unsupported monitor type '{monitor_type}', "
                f"expected one of: {', '.join(MonitorType.values())}",
                monitor_type=monitor_type,
            )

    @staticmethod
    def validate_interval(interval: Any, min_value: int = 1) -> int:
        """
        Validate a check interval.

        Args:
            interval: Interval in seconds
            min_value: Smallest accepted interval

        Returns:
            Interval as int
        """
        if isinstance(interval, bool):
            raise InvalidIntervalError(interval=interval, min_value=min_value)

        try:
            value = int(interval)
        except (TypeError, ValueError):
            raise InvalidIntervalError(interval=interval, min_value=min_value)

        if value != interval and str(value) != str(interval).strip():
            raise InvalidIntervalError(interval=interval, min_value=min_value)

        if value < min_value:
            raise InvalidIntervalError(
                f"Interval must be at least {min_value} second(s)",
                interval=interval,
                min_value=min_value,
            )

        return value

    @staticmethod
    def validate_target(monitor_type: MonitorType, target: Any) -> str:
        """
        Validate a probe target for its monitor type.

        HTTP monitors need an http(s) URL. ICMP and DNS monitors need a
        bare hostname or IP address.
        """
        if not isinstance(target, str) or not target.strip():
            raise InvalidURLError("Target must not be empty", url=target, reason="empty")

        target = target.strip()

        if monitor_type == MonitorType.HTTP:
            if not URLValidator.is_valid_url(target):
                raise InvalidURLError(
                    f"Invalid HTTP URL: {target}",
                    url=target,
                    reason="expected an http:// or https:// URL",
                )
            return target

        if not URLValidator.is_valid_hostname(target):
            raise InvalidURLError(
                f"Invalid hostname: {target}",
                url=target,
                reason="expected a hostname or IP address",
            )
        return target

    @staticmethod
    def validate_webhook(webhook_url: Optional[str]) -> Optional[str]:
        if webhook_url is None or not webhook_url.strip():
            return None

        webhook_url = webhook_url.strip()
        if not URLValidator.is_valid_url(webhook_url):
            raise InvalidURLError(
                f"Invalid webhook URL: {webhook_url}",
                url=webhook_url,
                reason="expected an http:// or https:// URL",
            )
        return webhook_url

    @staticmethod
    def validate_name(name: Optional[str]) -> Optional[str]:
        """Blank names are stored as no name."""
        if name is None:
            return None

        name = str(name).strip()
        if not name:
            return None

        if len(name) > MAX_NAME_LENGTH:
            raise ValidationException(
                f"Name cannot exceed {MAX_NAME_LENGTH} characters",
                field="name",
                value=name,
            )
        return name

    @staticmethod
    def validate_group(group_name: Optional[str]) -> Optional[str]:
        if group_name is None:
            return None

        group_name = str(group_name).strip()
        return group_name or None


# ============================================================================
# END OF VALIDATORS MODULE
# ============================================================================
