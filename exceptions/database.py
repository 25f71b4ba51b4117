"""
Database Exception Classes for UptimeKit

Provides specialized exceptions for the monitor registry and the
heartbeat store: connection issues, query errors, missing or
duplicate records, and the two failures the scheduler tolerates
(a dropped heartbeat write and an unreadable registry).
"""

from __future__ import annotations

import re
from typing import Any, Optional

from exceptions.base import UptimeKitException


class DatabaseException(UptimeKitException):
    """
    Base Database Exception

    Parent class for all database-related exceptions.
    """

    default_error_code = 2000
    default_recoverable = False

    def __init__(
        self,
        message: str,
        query: Optional[str] = None,
        table: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        """
        Initialize database exception.

        Args:
            message: Error message
            query: The SQL query that caused the error (sanitized)
            table: The database table involved
            **kwargs: Additional arguments
        """
        super().__init__(message, **kwargs)

        if query:
            self.details["query"] = self._sanitize_query(query)

        if table:
            self.details["table"] = table

    @staticmethod
    def _sanitize_query(query: str) -> str:
        """
        Sanitize SQL query by removing literal values.

        Args:
            query: The original SQL query

        Returns:
            Sanitized query string
        """
        query = re.sub(r"'[^']*'", "'***'", query)
        query = re.sub(r"= \d+", "= ***", query)

        if len(query) > 500:
            query = query[:500] + "..."

        return query


class DatabaseConnectionError(DatabaseException):
    """
    Database Connection Error

    Raised when unable to establish or maintain database connection.
    """

    default_error_code = 2001

    def __init__(
        self,
        message: str = "Unable to connect to database",
        url: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        if url:
            self.details["url"] = url


class DatabaseQueryError(DatabaseException):
    """
    Database Query Error

    Raised when a database query fails to execute.
    """

    default_error_code = 2002

    def __init__(
        self,
        message: str = "Database query failed",
        operation: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        if operation:
            self.details["operation"] = operation


class DatabaseNotFoundError(DatabaseException):
    """
    Database Not Found Error

    Raised when a requested monitor or group does not exist.
    """

    default_error_code = 2003
    default_recoverable = True

    def __init__(
        self,
        message: str = "Record not found",
        entity_type: Optional[str] = None,
        entity_id: Optional[Any] = None,
        **kwargs: Any
    ) -> None:
        """
        Initialize not found error.

        Args:
            message: Error message
            entity_type: Type of entity not found (Monitor, Group, ...)
            entity_id: ID or name of the entity
            **kwargs: Additional arguments
        """
        super().__init__(message, **kwargs)

        if entity_type:
            self.details["entity_type"] = entity_type

        if entity_id is not None:
            self.details["entity_id"] = str(entity_id)


class DatabaseDuplicateError(DatabaseException):
    """
    Database Duplicate Error

    Raised when a monitor name or group name is already taken.
    """

    default_error_code = 2004
    default_recoverable = True

    def __init__(
        self,
        message: str = "Record already exists",
        entity_type: Optional[str] = None,
        field: Optional[str] = None,
        value: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        if entity_type:
            self.details["entity_type"] = entity_type

        if field:
            self.details["field"] = field

        if value:
            self.details["value"] = value[:50] if len(value) > 50 else value


class PersistenceWriteError(DatabaseException):
    """
    Persistence Write Error

    Raised by the heartbeat store when an append fails. The executor
    logs it and drops the sample; it is never retried.
    """

    default_error_code = 2010
    default_recoverable = True

    def __init__(
        self,
        message: str = "Failed to persist heartbeat",
        monitor_id: Optional[int] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, table="heartbeats", **kwargs)

        if monitor_id is not None:
            self.details["monitor_id"] = monitor_id


class RegistryReadError(DatabaseException):
    """
    Registry Read Error

    Raised when the monitor registry cannot be listed. The
    reconciliation loop keeps its last-known task set and retries.
    """

    default_error_code = 2011
    default_recoverable = True

    def __init__(
        self,
        message: str = "Failed to read monitor registry",
        **kwargs: Any
    ) -> None:
        super().__init__(message, table="monitors", **kwargs)
