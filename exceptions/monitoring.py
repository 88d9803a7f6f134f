"""
Monitoring Exception Classes for Depwatch

Exceptions raised while fetching a target's health endpoint.
"""

from __future__ import annotations

from typing import Any, Optional

from config.constants import ErrorCodes
from exceptions.base import DepwatchException


class MonitoringException(DepwatchException):
    """
    Base Monitoring Exception

    Parent class for all polling-related exceptions.
    """

    default_error_code = ErrorCodes.POLL_ERROR

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        if url:
            self.details["url"] = url


class PollException(MonitoringException):
    """Generic failure of one poll attempt."""

    default_error_code = ErrorCodes.POLL_ERROR


class PollTimeoutError(PollException):
    """
    Poll Timeout Error

    Raised when a health fetch exceeds its time budget.
    """

    default_error_code = ErrorCodes.POLL_TIMEOUT

    def __init__(
        self,
        message: str = "Health check timed out",
        timeout: Optional[float] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        if timeout is not None:
            self.details["timeout"] = timeout


class PollConnectionError(PollException):
    """Raised when the endpoint cannot be reached."""

    default_error_code = ErrorCodes.POLL_CONNECTION_ERROR


class HTTPError(PollException):
    """
    HTTP Error

    Raised when a health endpoint answers with a non-2xx status.
    """

    default_error_code = ErrorCodes.HTTP_ERROR

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        self.status_code = status_code
        if status_code is not None:
            self.details["status_code"] = status_code
