"""
Exceptions Package for Depwatch

Provides the exception hierarchy used for error handling
throughout the application.
"""

from exceptions.base import (
    DepwatchException,
)

from exceptions.database import (
    DatabaseException,
    DatabaseConnectionError,
    DatabaseQueryError,
)

from exceptions.validation import (
    ValidationException,
    InvalidURLError,
    SSRFBlockedError,
    DNSResolutionError,
    InvalidIntervalError,
    InvalidResponseFormatError,
    SchemaMappingError,
)

from exceptions.monitoring import (
    MonitoringException,
    PollException,
    PollTimeoutError,
    PollConnectionError,
    HTTPError,
)

__all__ = [
    # Base exceptions
    "DepwatchException",

    # Database exceptions
    "DatabaseException",
    "DatabaseConnectionError",
    "DatabaseQueryError",

    # Validation exceptions
    "ValidationException",
    "InvalidURLError",
    "SSRFBlockedError",
    "DNSResolutionError",
    "InvalidIntervalError",
    "InvalidResponseFormatError",
    "SchemaMappingError",

    # Monitoring exceptions
    "MonitoringException",
    "PollException",
    "PollTimeoutError",
    "PollConnectionError",
    "HTTPError",
]
