"""
============================================================================
DEPWATCH - HEALTH RESPONSE NORMALIZATION
============================================================================
Turns a decoded health payload into an ordered list of DependencyStatus.

Two strategies share the same output:

DefaultFormatParser
    The payload is a list of objects, each with a string ``name`` and a
    boolean ``healthy``. State, code and latency come from a nested
    ``health`` object or from the flat ``healthState`` / ``healthCode`` /
    ``latencyMs`` fields. One malformed item rejects the whole batch.

        [{"name": "postgres", "healthy": true,
          "health": {"state": 0, "code": 200, "latency": 12}}]

SchemaMappedParser
    Follows an admin-supplied SchemaMapping. Items that cannot be mapped
    are skipped with a warning; the rest of the batch is kept.

        root "components", fields {"name": "$key",
                                   "healthy": {"field": "status", "equals": "UP"}}
        {"components": {"db": {"status": "UP"}}}  ->  db healthy

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import numbers
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from config.constants import Defaults, DependencyType, HealthState, HealthyValues, StatusCodes
from exceptions.validation import InvalidResponseFormatError
from monitoring.models import (
    KEY_SENTINEL,
    BooleanComparison,
    DependencyStatus,
    FieldMapping,
    SchemaMapping,
    utc_now_iso,
)
from utils.logger import get_logger


logger = get_logger("Parser")


class _Missing:
    def __repr__(self) -> str:
        return "<missing>"


MISSING = _Missing()


# ============================================================================
# HELPERS
# ============================================================================

def resolve_field_path(data: Any, path: str) -> Any:
    """
    Walk a dot path through nested objects and lists.

    Numeric segments index into lists. Returns MISSING when any
    segment cannot be followed.
    """
    if not path:
        return data

    current = data
    for segment in path.split("."):
        if isinstance(current, dict):
            if segment not in current:
                return MISSING
            current = current[segment]
        elif isinstance(current, list) and segment.isdigit():
            index = int(segment)
            if index >= len(current):
                return MISSING
            current = current[index]
        else:
            return MISSING
    return current


def _is_number(value: Any) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


# ============================================================================
# DEFAULT FORMAT
# ============================================================================

class DefaultFormatParser:
    """Parser for the built-in health response format."""

    def parse(self, payload: Any) -> List[DependencyStatus]:
        if not isinstance(payload, list):
            raise InvalidResponseFormatError(
                f"Invalid response: expected array of dependencies, got {_type_name(payload)}"
            )

        return [self._parse_item(item, index) for index, item in enumerate(payload)]

    def _parse_item(self, item: Any, index: int) -> DependencyStatus:
        if not isinstance(item, dict):
            raise InvalidResponseFormatError(
                f"Invalid dependency at index {index}: expected object", index=index
            )

        name = item.get("name")
        if not isinstance(name, str) or not name.strip():
            raise InvalidResponseFormatError(
                f"Invalid dependency at index {index}: missing or invalid name", index=index
            )

        healthy = item.get("healthy")
        if not isinstance(healthy, bool):
            raise InvalidResponseFormatError(
                f"Invalid dependency at index {index}: missing or invalid healthy field",
                index=index,
            )

        state, code, latency = self._health_triple(item, healthy)

        description = item.get("description")
        impact = item.get("impact")
        check_details = item.get("checkDetails")
        contact = item.get("contact")
        error_message = item.get("errorMessage")
        last_checked = item.get("lastChecked")

        return DependencyStatus(
            name=name.strip(),
            healthy=healthy,
            health_state=state,
            code=code,
            latency_ms=latency,
            description=description if isinstance(description, str) else None,
            impact=impact if isinstance(impact, str) else None,
            type=DependencyType.parse(item.get("type")),
            contact=contact if isinstance(contact, dict) else None,
            check_details=check_details if isinstance(check_details, dict) else None,
            error=item.get("error"),
            error_message=error_message if isinstance(error_message, str) else None,
            last_checked=last_checked if isinstance(last_checked, str) else utc_now_iso(),
        )

    @staticmethod
    def _health_triple(item: Dict[str, Any], healthy: bool) -> Tuple[HealthState, int, float]:
        health = item.get("health")
        if isinstance(health, dict):
            raw_state = health.get("state")
            raw_code = health.get("code")
            raw_latency = health.get("latency")
        else:
            raw_state = item.get("healthState")
            raw_code = item.get("healthCode")
            raw_latency = item.get("latencyMs")

        state = HealthState.coerce(raw_state)
        if state is None:
            state = HealthState.from_healthy(healthy)

        code = raw_code if _is_int(raw_code) else Defaults.HEALTH_CODE
        latency = raw_latency if _is_number(raw_latency) else Defaults.LATENCY_MS
        return state, code, latency


# ============================================================================
# SCHEMA-MAPPED FORMAT
# ============================================================================

class SchemaMappedParser:
    """Parser driven by an admin-supplied SchemaMapping."""

    def __init__(self, mapping: SchemaMapping):
        self.mapping = mapping

    def parse(self, payload: Any) -> List[DependencyStatus]:
        if not isinstance(payload, (dict, list)):
            raise InvalidResponseFormatError(
                f"Invalid response: expected object, got {_type_name(payload)}"
            )

        root = resolve_field_path(payload, self.mapping.root)
        if not isinstance(root, (dict, list)):
            raise InvalidResponseFormatError(
                f"Schema mapping root '{self.mapping.root}' did not resolve "
                f"to an array or object"
            )

        statuses: List[DependencyStatus] = []
        for key, item in self._iter_items(root):
            status = self._map_item(key, item)
            if status is not None:
                statuses.append(status)
        return statuses

    @staticmethod
    def _iter_items(root: Union[Dict[str, Any], List[Any]]) -> Iterator[Tuple[Optional[str], Any]]:
        if isinstance(root, list):
            for item in root:
                yield None, item
        else:
            yield from root.items()

    def _map_item(self, key: Optional[str], item: Any) -> Optional[DependencyStatus]:
        label = key if key is not None else "item"
        fields = self.mapping.fields

        if not isinstance(item, dict):
            logger.warning(f"[Parser] Skipping {label}: expected object, got {_type_name(item)}")
            return None

        name = self._resolve_name(fields.name, key, item)
        if name is None:
            logger.warning(f"[Parser] Skipping {label}: name could not be resolved")
            return None

        healthy = self._resolve_healthy(fields.healthy, item)
        if healthy is None:
            logger.warning(f"[Parser] Skipping '{name}': healthy could not be resolved")
            return None

        latency = self._resolve_value(fields.latency, item)
        impact = self._resolve_value(fields.impact, item)
        description = self._resolve_value(fields.description, item)

        return DependencyStatus(
            name=name,
            healthy=healthy,
            health_state=HealthState.from_healthy(healthy),
            code=StatusCodes.OK if healthy else StatusCodes.SERVER_ERROR,
            latency_ms=latency if _is_number(latency) else Defaults.LATENCY_MS,
            impact=impact if isinstance(impact, str) else None,
            description=description if isinstance(description, str) else None,
            type=DependencyType.OTHER,
        )

    # ----- field interpretation -----

    def _resolve_name(self, mapping: FieldMapping, key: Optional[str], item: Dict[str, Any]) -> Optional[str]:
        if mapping == KEY_SENTINEL:
            value = key
        else:
            value = self._resolve_value(mapping, item)

        if not isinstance(value, str) or not value.strip():
            return None
        return value.strip()

    @staticmethod
    def _resolve_healthy(mapping: FieldMapping, item: Dict[str, Any]) -> Optional[bool]:
        if isinstance(mapping, BooleanComparison):
            value = resolve_field_path(item, mapping.field)
            if value is MISSING or value is None:
                return None
            return _stringify(value).lower() == _stringify(mapping.equals).lower()

        value = resolve_field_path(item, mapping)
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in HealthyValues.TRUTHY:
                return True
            if lowered in HealthyValues.FALSY:
                return False
        return None

    @staticmethod
    def _resolve_value(mapping: Optional[FieldMapping], item: Dict[str, Any]) -> Any:
        if mapping is None:
            return None
        if isinstance(mapping, BooleanComparison):
            value = resolve_field_path(item, mapping.field)
            if value is MISSING or value is None:
                return None
            return _stringify(value).lower() == _stringify(mapping.equals).lower()
        value = resolve_field_path(item, mapping)
        return None if value is MISSING else value


def _stringify(value: Any) -> str:
    # Match JSON spelling so {"equals": "true"} matches a boolean true
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


# ============================================================================
# PUBLIC API
# ============================================================================

def parser_for(mapping: Optional[SchemaMapping]):
    """Pick the parser strategy for a target."""
    if mapping is None:
        return DefaultFormatParser()
    return SchemaMappedParser(mapping)


class ResponseNormalizer:
    """Façade used by the polling engine."""

    def __init__(self):
        self._default = DefaultFormatParser()

    def normalize(self, payload: Any, schema_mapping: Optional[SchemaMapping] = None) -> List[DependencyStatus]:
        if schema_mapping is None:
            return self._default.parse(payload)
        return SchemaMappedParser(schema_mapping).parse(payload)
