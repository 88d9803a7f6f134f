"""
============================================================================
DEPWATCH - POLLING DATA MODEL
============================================================================
In-memory types that flow through the polling pipeline:

    PollTarget         a registered service and its health endpoint
    SchemaMapping      admin-supplied extraction rules (pydantic)
    DependencyStatus   one normalized dependency entry
    StatusChangeEvent  a healthy/unhealthy flip, handed to alerting
    PollResult         summary of a single poll attempt

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictFloat, StrictInt, StrictStr, ValidationError

from config.constants import DependencyType, HealthState, Limits
from exceptions.validation import InvalidIntervalError, SchemaMappingError


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


# ============================================================================
# SCHEMA MAPPING
# ============================================================================

# Pseudo-path that maps a dependency's name to its key in an object root
KEY_SENTINEL = "$key"

FieldPath = Annotated[str, Field(min_length=1)]


class BooleanComparison(BaseModel):
    """``healthy`` is true when the value at ``field`` equals ``equals`` (case-insensitive)."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    field: FieldPath
    equals: Union[StrictBool, StrictInt, StrictFloat, StrictStr]


FieldMapping = Union[FieldPath, BooleanComparison]


class SchemaFields(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    name: FieldMapping
    healthy: FieldMapping
    latency: Optional[FieldMapping] = None
    impact: Optional[FieldMapping] = None
    description: Optional[FieldMapping] = None


class SchemaMapping(BaseModel):
    """
    Extraction rules for a non-default health payload.

    ``root`` is a dot path to the collection of dependencies; an empty
    root means the payload itself.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    root: str = ""
    fields: SchemaFields

    @classmethod
    def from_json(cls, raw: Union[str, Dict[str, Any], "SchemaMapping", None]) -> Optional["SchemaMapping"]:
        """
        Build a mapping from its stored JSON form.

        Returns:
            The mapping, or None when ``raw`` is empty

        Raises:
            SchemaMappingError: if the JSON or its structure is invalid
        """
        if raw is None or isinstance(raw, SchemaMapping):
            return raw

        if isinstance(raw, str):
            if not raw.strip():
                return None
            try:
                raw = json.loads(raw)
            except json.JSONDecodeError as e:
                raise SchemaMappingError(f"Schema mapping is not valid JSON: {e.msg}", cause=e)

        if not isinstance(raw, dict):
            raise SchemaMappingError("Schema mapping must be a JSON object")

        try:
            return cls.model_validate(raw)
        except ValidationError as e:
            errors = [
                f"{'.'.join(str(loc) for loc in err['loc'])}: {err['msg']}"
                for err in e.errors()
            ]
            raise SchemaMappingError("Invalid schema mapping", errors=errors, cause=e)

    def to_json(self) -> str:
        return self.model_dump_json(exclude_none=True)


# ============================================================================
# POLL TARGET
# ============================================================================

@dataclass
class PollTarget:
    """
    A registered service to poll.

    ``poll_interval_ms`` must lie within the allowed interval bounds;
    ``schema_mapping`` may be given as a mapping, a dict or a JSON string.
    """
    id: str
    name: str
    health_endpoint: str
    poll_interval_ms: int = Limits.DEFAULT_POLL_INTERVAL_MS
    schema_mapping: Optional[SchemaMapping] = None
    is_active: bool = True

    def __post_init__(self) -> None:
        if not Limits.MIN_POLL_INTERVAL_MS <= self.poll_interval_ms <= Limits.MAX_POLL_INTERVAL_MS:
            raise InvalidIntervalError(
                f"Poll interval {self.poll_interval_ms}ms is outside "
                f"[{Limits.MIN_POLL_INTERVAL_MS}, {Limits.MAX_POLL_INTERVAL_MS}]",
                interval=self.poll_interval_ms,
                min_interval=Limits.MIN_POLL_INTERVAL_MS,
                max_interval=Limits.MAX_POLL_INTERVAL_MS,
            )
        if not isinstance(self.schema_mapping, (SchemaMapping, type(None))):
            self.schema_mapping = SchemaMapping.from_json(self.schema_mapping)

    @property
    def interval_seconds(self) -> float:
        return self.poll_interval_ms / 1000.0


# ============================================================================
# NORMALIZED STATUS
# ============================================================================

@dataclass
class DependencyStatus:
    """One dependency entry after normalization."""
    name: str
    healthy: bool
    health_state: HealthState = HealthState.OK
    code: int = 200
    latency_ms: float = 0
    description: Optional[str] = None
    impact: Optional[str] = None
    type: DependencyType = DependencyType.OTHER
    contact: Optional[Dict[str, Any]] = None
    check_details: Optional[Dict[str, Any]] = None
    error: Any = None
    error_message: Optional[str] = None
    last_checked: str = field(default_factory=utc_now_iso)


@dataclass(frozen=True)
class StatusChangeEvent:
    """A dependency's ``healthy`` flag flipped between two polls."""
    target_id: str
    target_name: str
    dependency_id: int
    dependency_name: str
    previous_healthy: bool
    current_healthy: bool
    timestamp: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target_id": self.target_id,
            "target_name": self.target_name,
            "dependency_id": self.dependency_id,
            "dependency_name": self.dependency_name,
            "previous_healthy": self.previous_healthy,
            "current_healthy": self.current_healthy,
            "timestamp": self.timestamp,
        }


@dataclass
class PollResult:
    """Outcome of polling one target once."""
    target_id: str
    success: bool
    dependencies_updated: int = 0
    status_changes: List[StatusChangeEvent] = field(default_factory=list)
    error: Optional[str] = None
    latency_ms: Optional[float] = None
