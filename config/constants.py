"""
Constants Module for Depwatch

Contains constant values, enumerations, and static network tables
used throughout the polling pipeline.
"""

from __future__ import annotations

from enum import Enum, IntEnum
from typing import FrozenSet, Final, Optional, Tuple


class HealthState(IntEnum):
    """
    Health State Enumeration

    Numeric classification of a dependency's health. Ordered so that
    larger values are worse.
    """

    OK = 0
    WARNING = 1
    CRITICAL = 2

    @classmethod
    def from_healthy(cls, healthy: bool) -> "HealthState":
        """Derive a state from the boolean health flag."""
        return cls.OK if healthy else cls.CRITICAL

    @classmethod
    def coerce(cls, value: object) -> Optional["HealthState"]:
        """Return the matching state for an int value, or None."""
        if isinstance(value, bool) or not isinstance(value, int):
            return None
        try:
            return cls(value)
        except ValueError:
            return None


class DependencyType(str, Enum):
    """Supported dependency categories."""

    DATABASE = "database"
    REST = "rest"
    SOAP = "soap"
    GRPC = "grpc"
    GRAPHQL = "graphql"
    MESSAGE_QUEUE = "message_queue"
    CACHE = "cache"
    FILE_SYSTEM = "file_system"
    SMTP = "smtp"
    OTHER = "other"

    @classmethod
    def parse(cls, value: object) -> "DependencyType":
        """Map a raw payload value to a type, falling back to OTHER."""
        if isinstance(value, str):
            try:
                return cls(value)
            except ValueError:
                pass
        return cls.OTHER


class StatusCodes:
    """HTTP-style codes used for derived dependency status."""

    OK: Final[int] = 200
    SERVER_ERROR: Final[int] = 500


class Defaults:
    """
    Default Values

    Fallbacks applied while normalizing health payloads.
    """

    HEALTH_CODE: Final[int] = 200
    LATENCY_MS: Final[float] = 0
    USER_AGENT: Final[str] = "Depwatch/1.0 (Health Poller)"

    # Error marker recorded for unhealthy statuses that carry no error
    UNHEALTHY_ERROR: Final[str] = '{"unhealthy": true}'
    UNHEALTHY_MESSAGE: Final[str] = "Unhealthy"


class Limits:
    """
    Polling Limits

    Bounds on per-target poll intervals, in milliseconds.
    """

    MIN_POLL_INTERVAL_MS: Final[int] = 5_000
    MAX_POLL_INTERVAL_MS: Final[int] = 3_600_000
    DEFAULT_POLL_INTERVAL_MS: Final[int] = 30_000


class HealthyValues:
    """String values accepted for a mapped ``healthy`` field."""

    TRUTHY: Final[FrozenSet[str]] = frozenset({"true", "ok", "healthy", "up"})
    FALSY: Final[FrozenSet[str]] = frozenset(
        {"false", "error", "unhealthy", "down", "critical"}
    )


class NetworkRules:
    """
    Outbound Network Rules

    Hostnames and address ranges that health polling must never reach
    unless explicitly allowlisted.
    """

    BLOCKED_HOSTNAMES: Final[FrozenSet[str]] = frozenset({"localhost"})
    BLOCKED_SUFFIXES: Final[Tuple[str, ...]] = (".local", ".internal", ".localhost")

    PRIVATE_IPV4: Final[Tuple[str, ...]] = (
        "0.0.0.0/8",
        "10.0.0.0/8",
        "100.64.0.0/10",
        "127.0.0.0/8",
        "169.254.0.0/16",
        "172.16.0.0/12",
        "192.0.0.0/24",
        "192.0.2.0/24",
        "192.168.0.0/16",
        "198.18.0.0/15",
        "198.51.100.0/24",
        "203.0.113.0/24",
        "224.0.0.0/4",
        "240.0.0.0/4",
    )

    PRIVATE_IPV6: Final[Tuple[str, ...]] = (
        "::/128",
        "::1/128",
        "fc00::/7",
        "fe80::/10",
        "ff00::/8",
        "2001:db8::/32",
    )

    # Cloud metadata endpoints
    METADATA_IPS: Final[FrozenSet[str]] = frozenset({
        "169.254.169.254",
        "169.254.170.2",
        "100.100.100.200",
        "fd00:ec2::254",
    })


class ErrorCodes:
    """Application error codes."""

    # General errors (1xxx)
    UNKNOWN_ERROR: Final[int] = 1000

    # Database errors (2xxx)
    DB_ERROR: Final[int] = 2000
    DB_CONNECTION_ERROR: Final[int] = 2001
    DB_QUERY_ERROR: Final[int] = 2002

    # Validation errors (3xxx)
    VALIDATION_ERROR: Final[int] = 3000
    INVALID_URL: Final[int] = 3001
    INVALID_INTERVAL: Final[int] = 3002
    SSRF_BLOCKED: Final[int] = 3003
    DNS_RESOLUTION_FAILED: Final[int] = 3004
    INVALID_RESPONSE_FORMAT: Final[int] = 3005
    INVALID_SCHEMA_MAPPING: Final[int] = 3006

    # Monitoring errors (5xxx)
    POLL_ERROR: Final[int] = 5000
    POLL_TIMEOUT: Final[int] = 5001
    POLL_CONNECTION_ERROR: Final[int] = 5002
    HTTP_ERROR: Final[int] = 5003


class SettingKeys:
    """Keys of runtime settings stored in the database."""

    SSRF_ALLOWLIST: Final[str] = "ssrf_allowlist"
