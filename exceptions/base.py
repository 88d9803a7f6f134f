"""
Base Exception Classes for Depwatch

Every error raised by the poller derives from DepwatchException so the
engine can tell expected poll failures apart from programming errors.
"""

from __future__ import annotations

from typing import Any, Dict, Optional
from datetime import datetime, timezone

from config.constants import ErrorCodes


class DepwatchException(Exception):
    """
    Base Exception Class

    The message is what ends up in ``last_poll_error`` and the poll
    history, so subclasses keep it short and stable.

    Attributes:
        message: Human-readable error message
        error_code: Numeric error code for categorization
        details: Additional error details as dictionary
        cause: The underlying exception, if any
        timestamp: When the exception occurred
    """

    default_error_code: int = ErrorCodes.UNKNOWN_ERROR

    def __init__(
        self,
        message: str = "An error occurred",
        error_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)

        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None,
        }

    def log_format(self) -> str:
        parts = [
            f"Exception: {self.__class__.__name__}",
            f"Code: {self.error_code}",
            f"Message: {self.message}",
        ]
        if self.details:
            parts.append(f"Details: {self.details}")
        if self.cause:
            parts.append(f"Cause: {self.cause}")
        return " | ".join(parts)

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code}, "
            f"details={self.details})"
        )
