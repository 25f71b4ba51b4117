"""
Exceptions Package for UptimeKit

Provides the exception hierarchy for error handling
throughout the application.
"""

from exceptions.base import (
    UptimeKitException,
    ConfigurationError,
    InitializationError,
)

from exceptions.database import (
    DatabaseException,
    DatabaseConnectionError,
    DatabaseQueryError,
    DatabaseNotFoundError,
    DatabaseDuplicateError,
    PersistenceWriteError,
    RegistryReadError,
)

from exceptions.validation import (
    ValidationException,
    InvalidURLError,
    InvalidIntervalError,
    InvalidMonitorTypeError,
)

from exceptions.monitoring import (
    MonitoringException,
    ProbeError,
    ProbeTimeout,
    ProbeConnectionError,
    ProbeProtocolError,
)

__all__ = [
    # Base exceptions
    "UptimeKitException",
    "ConfigurationError",
    "InitializationError",

    # Database exceptions
    "DatabaseException",
    "DatabaseConnectionError",
    "DatabaseQueryError",
    "DatabaseNotFoundError",
    "DatabaseDuplicateError",
    "PersistenceWriteError",
    "RegistryReadError",

    # Validation exceptions
    "ValidationException",
    "InvalidURLError",
    "InvalidIntervalError",
    "InvalidMonitorTypeError",

    # Monitoring exceptions
    "MonitoringException",
    "ProbeError",
    "ProbeTimeout",
    "ProbeConnectionError",
    "ProbeProtocolError",
]
