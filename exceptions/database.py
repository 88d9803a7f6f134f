"""
Database Exception Classes for Depwatch

Provides specialized exceptions for database-related errors
including connection issues and query errors.
"""

from __future__ import annotations

import re
from typing import Any, Optional

from config.constants import ErrorCodes
from exceptions.base import DepwatchException


class DatabaseException(DepwatchException):
    """
    Base Database Exception

    Parent class for all database-related exceptions.
    """

    default_error_code = ErrorCodes.DB_ERROR

    def __init__(
        self,
        message: str,
        query: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        """
        Initialize database exception.

        Args:
            message: Error message
            query: The SQL statement that failed; literals are masked
            **kwargs: Additional arguments
        """
        super().__init__(message, **kwargs)

        if query:
            self.details["query"] = self._sanitize_query(query)

    @staticmethod
    def _sanitize_query(query: str) -> str:
        """Strip literal values from a SQL query before logging it."""
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

    default_error_code = ErrorCodes.DB_CONNECTION_ERROR

    def __init__(
        self,
        message: str = "Unable to connect to database",
        database: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        if database:
            self.details["database"] = database


class DatabaseQueryError(DatabaseException):
    """
    Database Query Error

    Raised when a database query fails to execute.
    """

    default_error_code = ErrorCodes.DB_QUERY_ERROR

    def __init__(
        self,
        message: str = "Database query failed",
        operation: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        if operation:
            self.details["operation"] = operation
