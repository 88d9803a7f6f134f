"""
Validation Exception Classes for Depwatch

Provides specialized exceptions for data validation errors including
endpoint URL safety checks, poll interval bounds, schema mappings and
health response formats.
"""

from __future__ import annotations

from typing import Any, List, Optional

from config.constants import ErrorCodes
from exceptions.base import DepwatchException


class ValidationException(DepwatchException):
    """
    Base Validation Exception

    Parent class for all validation-related exceptions.
    """

    default_error_code = ErrorCodes.VALIDATION_ERROR

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
        """Truncate a value for logging."""
        str_value = str(value)

        if len(str_value) > 100:
            str_value = str_value[:100] + "..."

        return str_value


class InvalidURLError(ValidationException):
    """
    Invalid URL Error

    Raised when an endpoint URL is malformed or uses an
    unsupported scheme.
    """

    default_error_code = ErrorCodes.INVALID_URL

    def __init__(
        self,
        message: str = "Invalid URL format",
        url: Optional[str] = None,
        reason: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, field="url", value=url, **kwargs)

        if reason:
            self.details["reason"] = reason


class SSRFBlockedError(ValidationException):
    """
    SSRF Blocked Error

    Raised when an endpoint URL points at a blocked hostname or
    resolves to a private, loopback, link-local or metadata address.
    """

    default_error_code = ErrorCodes.SSRF_BLOCKED

    def __init__(
        self,
        message: str,
        hostname: Optional[str] = None,
        address: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, field="url", **kwargs)

        if hostname:
            self.details["hostname"] = hostname

        if address:
            self.details["address"] = address


class DNSResolutionError(ValidationException):
    """
    DNS Resolution Error

    Raised when an endpoint hostname cannot be resolved while
    checking where it points.
    """

    default_error_code = ErrorCodes.DNS_RESOLUTION_FAILED

    def __init__(
        self,
        message: str,
        hostname: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, field="url", **kwargs)

        if hostname:
            self.details["hostname"] = hostname


class InvalidIntervalError(ValidationException):
    """
    Invalid Interval Error

    Raised when a poll interval falls outside the allowed range.
    """

    default_error_code = ErrorCodes.INVALID_INTERVAL

    def __init__(
        self,
        message: str = "Invalid poll interval",
        interval: Optional[int] = None,
        min_interval: Optional[int] = None,
        max_interval: Optional[int] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, field="poll_interval_ms", value=interval, **kwargs)

        if min_interval is not None:
            self.details["min_interval"] = min_interval

        if max_interval is not None:
            self.details["max_interval"] = max_interval


class InvalidResponseFormatError(ValidationException):
    """
    Invalid Response Format Error

    Raised when a health payload does not have the expected shape.
    """

    default_error_code = ErrorCodes.INVALID_RESPONSE_FORMAT

    def __init__(
        self,
        message: str = "Invalid health response format",
        index: Optional[int] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, field="response", **kwargs)

        if index is not None:
            self.details["index"] = index


class SchemaMappingError(ValidationException):
    """
    Schema Mapping Error

    Raised when an admin-supplied schema mapping cannot be parsed.
    """

    default_error_code = ErrorCodes.INVALID_SCHEMA_MAPPING

    def __init__(
        self,
        message: str = "Invalid schema mapping",
        errors: Optional[List[str]] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, field="schema_mapping", **kwargs)

        if errors:
            self.details["errors"] = errors
