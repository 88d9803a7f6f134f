"""
============================================================================
DEPWATCH - DATABASE MODELS
============================================================================
SQLAlchemy ORM models for the poller's persistent state:

    services                      registered poll targets
    dependencies                  latest normalized status per dependency
    dependency_aliases            alias -> canonical dependency name
    dependency_latency_history    latency samples
    dependency_error_history      error / recovery entries
    service_poll_history          poll-level error / recovery entries
    status_change_events          healthy flips handed to alerting
    settings                      runtime key/value settings

History timestamps are ISO-8601 strings as reported by the polled
service, so re-processing a status maps to the same key.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Text,
    Float, JSON, ForeignKey, Index, UniqueConstraint, func
)
from sqlalchemy.orm import declarative_base

from config.constants import Limits
from monitoring.models import PollTarget, SchemaMapping


# ============================================================================
# BASE MODEL CONFIGURATION
# ============================================================================

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TimestampMixin:
    """
    Mixin to add created_at and updated_at timestamps to models.
    """
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=func.now(),
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
        server_default=func.now(),
    )


# ============================================================================
# SERVICE MODEL
# ============================================================================

class PollTargetRow(Base, TimestampMixin):
    """
    A registered service whose health endpoint is polled.
    """
    __tablename__ = "services"

    id = Column(String(36), primary_key=True)
    name = Column(String(255), nullable=False)
    health_endpoint = Column(Text, nullable=False)
    schema_mapping = Column(Text, nullable=True)
    poll_interval_ms = Column(Integer, nullable=False, default=Limits.DEFAULT_POLL_INTERVAL_MS)
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    # Last poll outcome
    last_poll_success = Column(Boolean, nullable=True)
    last_poll_error = Column(Text, nullable=True)
    last_polled_at = Column(DateTime(timezone=True), nullable=True)

    def to_target(self) -> PollTarget:
        """Convert the row to the in-memory poll target."""
        return PollTarget(
            id=self.id,
            name=self.name,
            health_endpoint=self.health_endpoint,
            poll_interval_ms=self.poll_interval_ms,
            schema_mapping=SchemaMapping.from_json(self.schema_mapping),
            is_active=self.is_active,
        )

    def __repr__(self) -> str:
        return f"<PollTargetRow(id={self.id}, name={self.name!r})>"


# ============================================================================
# DEPENDENCY MODELS
# ============================================================================

class DependencyRow(Base, TimestampMixin):
    """
    Latest known status of one dependency of a service.

    ``name`` holds the canonical (alias-resolved) name.
    """
    __tablename__ = "dependencies"

    id = Column(Integer, primary_key=True, autoincrement=True)
    service_id = Column(
        String(36),
        ForeignKey("services.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    name = Column(String(255), nullable=False)

    # Status
    healthy = Column(Boolean, nullable=True)
    health_state = Column(Integer, nullable=True)
    health_code = Column(Integer, nullable=True)
    latency_ms = Column(Float, nullable=True)

    # Descriptive
    type = Column(String(32), nullable=False, default="other")
    description = Column(Text, nullable=True)
    impact = Column(Text, nullable=True)
    contact = Column(JSON, nullable=True)
    check_details = Column(JSON, nullable=True)

    # Error details (error is stored JSON-encoded)
    error = Column(Text, nullable=True)
    error_message = Column(Text, nullable=True)

    last_checked = Column(String(64), nullable=True)
    last_status_change = Column(String(64), nullable=True)

    __table_args__ = (
        UniqueConstraint("service_id", "name", name="uq_dependency_service_name"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "service_id": self.service_id,
            "name": self.name,
            "healthy": self.healthy,
            "health_state": self.health_state,
            "health_code": self.health_code,
            "latency_ms": self.latency_ms,
            "type": self.type,
            "last_checked": self.last_checked,
            "last_status_change": self.last_status_change,
        }


class DependencyAlias(Base, TimestampMixin):
    """
    Maps a reported dependency name to its canonical name.
    """
    __tablename__ = "dependency_aliases"

    id = Column(Integer, primary_key=True, autoincrement=True)
    alias = Column(String(255), nullable=False, unique=True)
    canonical_name = Column(String(255), nullable=False, index=True)


class LatencyHistory(Base):
    """
    A latency sample of a dependency.
    """
    __tablename__ = "dependency_latency_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    dependency_id = Column(
        Integer,
        ForeignKey("dependencies.id", ondelete="CASCADE"),
        nullable=False
    )
    latency_ms = Column(Float, nullable=False)
    recorded_at = Column(String(64), nullable=False)

    __table_args__ = (
        UniqueConstraint("dependency_id", "recorded_at", name="uq_latency_dependency_time"),
    )


class ErrorHistory(Base):
    """
    An error or recovery entry of a dependency.

    A recovery is an entry with a null ``error``.
    """
    __tablename__ = "dependency_error_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    dependency_id = Column(
        Integer,
        ForeignKey("dependencies.id", ondelete="CASCADE"),
        nullable=False
    )
    error = Column(Text, nullable=True)
    error_message = Column(Text, nullable=True)
    recorded_at = Column(String(64), nullable=False)

    __table_args__ = (
        Index("idx_error_history_dependency", "dependency_id", "id"),
    )


# ============================================================================
# SERVICE HISTORY MODELS
# ============================================================================

class PollHistory(Base):
    """
    Poll-level error or recovery entry of a service.
    """
    __tablename__ = "service_poll_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    service_id = Column(
        String(36),
        ForeignKey("services.id", ondelete="CASCADE"),
        nullable=False
    )
    error = Column(Text, nullable=True)
    recorded_at = Column(String(64), nullable=False)

    __table_args__ = (
        Index("idx_poll_history_service", "service_id", "id"),
    )


class StatusChangeEventRow(Base):
    """
    Persisted healthy/unhealthy transition.
    """
    __tablename__ = "status_change_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    service_id = Column(String(36), nullable=False, index=True)
    service_name = Column(String(255), nullable=False)
    dependency_id = Column(Integer, nullable=False)
    dependency_name = Column(String(255), nullable=False)
    previous_healthy = Column(Boolean, nullable=False)
    current_healthy = Column(Boolean, nullable=False)
    timestamp = Column(String(64), nullable=False)


# ============================================================================
# RUNTIME SETTINGS
# ============================================================================

class SettingRow(Base, TimestampMixin):
    """
    Runtime key/value setting, editable without a restart.
    """
    __tablename__ = "settings"

    key = Column(String(128), primary_key=True)
    value = Column(Text, nullable=True)
