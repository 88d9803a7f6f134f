"""
============================================================================
DEPWATCH - REPOSITORIES
============================================================================
Data-access classes over the DatabaseManager. Each repository opens a
short session per call; rows are returned detached (the session factory
does not expire on commit) so callers can read them freely.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import desc, func, select

from database.connection import DatabaseManager
from database.models import (
    DependencyAlias,
    DependencyRow,
    ErrorHistory,
    LatencyHistory,
    PollHistory,
    PollTargetRow,
    SettingRow,
    StatusChangeEventRow,
)
from exceptions.validation import ValidationException
from monitoring.models import DependencyStatus, PollTarget, StatusChangeEvent
from utils.logger import get_logger


# ============================================================================
# DATABASE REPOSITORY BASE CLASS
# ============================================================================

class BaseRepository:
    """
    Base repository class for database operations.
    Provides common lookups shared by the concrete repositories.
    """

    model = None

    def __init__(self, db_manager: DatabaseManager):
        """
        Initialize repository.

        Args:
            db_manager: DatabaseManager instance
        """
        self.db = db_manager
        self.logger = get_logger(self.__class__.__name__)

    async def get_by_id(self, record_id: Any):
        async with self.db.session() as session:
            return await session.get(self.model, record_id)

    async def count(self) -> int:
        async with self.db.session() as session:
            result = await session.execute(select(func.count()).select_from(self.model))
            return result.scalar_one()


# ============================================================================
# SERVICE REGISTRY
# ============================================================================

class TargetRepository(BaseRepository):
    """Registry of poll targets."""

    model = PollTargetRow

    async def find_active(self) -> List[PollTarget]:
        """
        All active targets.

        Rows whose stored mapping or interval is invalid are logged and
        left out, so one bad row cannot stop polling for the rest.
        """
        async with self.db.session() as session:
            result = await session.execute(
                select(PollTargetRow).where(PollTargetRow.is_active.is_(True))
            )
            rows = result.scalars().all()

        targets = []
        for row in rows:
            try:
                targets.append(row.to_target())
            except ValidationException as e:
                self.logger.error(f"Skipping service {row.id} ({row.name}): {e}")
        return targets

    async def find_by_id(self, target_id: str) -> Optional[PollTarget]:
        row = await self.get_by_id(target_id)
        return row.to_target() if row is not None else None

    async def create(self, target: PollTarget) -> PollTarget:
        async with self.db.session() as session:
            session.add(PollTargetRow(
                id=target.id,
                name=target.name,
                health_endpoint=target.health_endpoint,
                schema_mapping=target.schema_mapping.to_json() if target.schema_mapping else None,
                poll_interval_ms=target.poll_interval_ms,
                is_active=target.is_active,
            ))
        return target

    async def update_poll_result(self, target_id: str, success: bool, error: Optional[str] = None) -> None:
        async with self.db.session() as session:
            row = await session.get(PollTargetRow, target_id)
            if row is None:
                return
            row.last_poll_success = success
            row.last_poll_error = None if success else error
            row.last_polled_at = datetime.now(timezone.utc)


# ============================================================================
# DEPENDENCIES
# ============================================================================

class DependencyRepository(BaseRepository):
    """Latest dependency status, one row per (service, canonical name)."""

    model = DependencyRow

    async def find_by_service(self, service_id: str) -> List[DependencyRow]:
        async with self.db.session() as session:
            result = await session.execute(
                select(DependencyRow)
                .where(DependencyRow.service_id == service_id)
                .order_by(DependencyRow.id)
            )
            return list(result.scalars().all())

    async def upsert(
        self,
        service_id: str,
        name: str,
        status: DependencyStatus,
        error_json: Optional[str],
        status_changed_at: Optional[str] = None,
    ) -> DependencyRow:
        """
        Insert or update the row for (service_id, name).

        ``status_changed_at`` is written only when the health flag flipped.
        """
        async with self.db.session() as session:
            result = await session.execute(
                select(DependencyRow).where(
                    DependencyRow.service_id == service_id,
                    DependencyRow.name == name,
                )
            )
            row = result.scalar_one_or_none()
            if row is None:
                row = DependencyRow(service_id=service_id, name=name)
                session.add(row)

            row.healthy = status.healthy
            row.health_state = int(status.health_state)
            row.health_code = status.code
            row.latency_ms = status.latency_ms
            row.type = status.type.value
            row.description = status.description
            row.impact = status.impact
            row.contact = status.contact
            row.check_details = status.check_details
            row.error = error_json
            row.error_message = status.error_message
            row.last_checked = status.last_checked
            if status_changed_at is not None:
                row.last_status_change = status_changed_at

            await session.flush()
            return row


class AliasRepository(BaseRepository):
    """Alias to canonical dependency name lookups."""

    model = DependencyAlias

    async def mapping(self) -> Dict[str, str]:
        async with self.db.session() as session:
            result = await session.execute(
                select(DependencyAlias.alias, DependencyAlias.canonical_name)
            )
            return {alias: canonical for alias, canonical in result.all()}

    async def add(self, alias: str, canonical_name: str) -> None:
        async with self.db.session() as session:
            session.add(DependencyAlias(alias=alias, canonical_name=canonical_name))


# ============================================================================
# HISTORY
# ============================================================================

class LatencyHistoryRepository(BaseRepository):
    model = LatencyHistory

    async def record(self, dependency_id: int, latency_ms: float, recorded_at: str) -> bool:
        """Append a sample unless one already exists for that timestamp."""
        async with self.db.session() as session:
            result = await session.execute(
                select(LatencyHistory.id).where(
                    LatencyHistory.dependency_id == dependency_id,
                    LatencyHistory.recorded_at == recorded_at,
                )
            )
            if result.first() is not None:
                return False
            session.add(LatencyHistory(
                dependency_id=dependency_id,
                latency_ms=latency_ms,
                recorded_at=recorded_at,
            ))
            return True

    async def for_dependency(self, dependency_id: int) -> List[LatencyHistory]:
        async with self.db.session() as session:
            result = await session.execute(
                select(LatencyHistory)
                .where(LatencyHistory.dependency_id == dependency_id)
                .order_by(LatencyHistory.id)
            )
            return list(result.scalars().all())


class ErrorHistoryRepository(BaseRepository):
    model = ErrorHistory

    async def last_entry(self, dependency_id: int) -> Optional[ErrorHistory]:
        async with self.db.session() as session:
            result = await session.execute(
                select(ErrorHistory)
                .where(ErrorHistory.dependency_id == dependency_id)
                .order_by(desc(ErrorHistory.id))
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def record(
        self,
        dependency_id: int,
        error: Optional[str],
        error_message: Optional[str],
        recorded_at: str,
    ) -> None:
        async with self.db.session() as session:
            session.add(ErrorHistory(
                dependency_id=dependency_id,
                error=error,
                error_message=error_message,
                recorded_at=recorded_at,
            ))

    async def for_dependency(self, dependency_id: int) -> List[ErrorHistory]:
        async with self.db.session() as session:
            result = await session.execute(
                select(ErrorHistory)
                .where(ErrorHistory.dependency_id == dependency_id)
                .order_by(ErrorHistory.id)
            )
            return list(result.scalars().all())


class PollHistoryRepository(BaseRepository):
    model = PollHistory

    async def last_entry(self, service_id: str) -> Optional[PollHistory]:
        async with self.db.session() as session:
            result = await session.execute(
                select(PollHistory)
                .where(PollHistory.service_id == service_id)
                .order_by(desc(PollHistory.id))
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def record(self, service_id: str, error: Optional[str], recorded_at: str) -> None:
        async with self.db.session() as session:
            session.add(PollHistory(service_id=service_id, error=error, recorded_at=recorded_at))

    async def for_service(self, service_id: str) -> List[PollHistory]:
        async with self.db.session() as session:
            result = await session.execute(
                select(PollHistory)
                .where(PollHistory.service_id == service_id)
                .order_by(PollHistory.id)
            )
            return list(result.scalars().all())


class StatusChangeRepository(BaseRepository):
    model = StatusChangeEventRow

    async def record(self, event: StatusChangeEvent) -> None:
        async with self.db.session() as session:
            session.add(StatusChangeEventRow(
                service_id=event.target_id,
                service_name=event.target_name,
                dependency_id=event.dependency_id,
                dependency_name=event.dependency_name,
                previous_healthy=event.previous_healthy,
                current_healthy=event.current_healthy,
                timestamp=event.timestamp,
            ))

    async def recent(self, service_id: Optional[str] = None, limit: int = 50) -> List[StatusChangeEventRow]:
        query = select(StatusChangeEventRow).order_by(desc(StatusChangeEventRow.id)).limit(limit)
        if service_id is not None:
            query = query.where(StatusChangeEventRow.service_id == service_id)
        async with self.db.session() as session:
            result = await session.execute(query)
            return list(result.scalars().all())


# ============================================================================
# RUNTIME SETTINGS
# ============================================================================

class SettingsRepository(BaseRepository):
    model = SettingRow

    async def get(self, key: str) -> Optional[str]:
        row = await self.get_by_id(key)
        return row.value if row is not None else None

    async def set(self, key: str, value: Optional[str]) -> None:
        async with self.db.session() as session:
            row = await session.get(SettingRow, key)
            if row is None:
                session.add(SettingRow(key=key, value=value))
            else:
                row.value = value
