"""
Database Package for Depwatch

Provides database connectivity, models, and repository classes
for data persistence using SQLAlchemy with async support.
"""

from database.connection import DatabaseManager

from database.models import (
    Base,
    PollTargetRow,
    DependencyRow,
    DependencyAlias,
    LatencyHistory,
    ErrorHistory,
    PollHistory,
    StatusChangeEventRow,
    SettingRow,
)

from database.repositories import (
    BaseRepository,
    TargetRepository,
    DependencyRepository,
    AliasRepository,
    LatencyHistoryRepository,
    ErrorHistoryRepository,
    PollHistoryRepository,
    StatusChangeRepository,
    SettingsRepository,
)

__all__ = [
    # Connection
    "DatabaseManager",

    # Models
    "Base",
    "PollTargetRow",
    "DependencyRow",
    "DependencyAlias",
    "LatencyHistory",
    "ErrorHistory",
    "PollHistory",
    "StatusChangeEventRow",
    "SettingRow",

    # Repositories
    "BaseRepository",
    "TargetRepository",
    "DependencyRepository",
    "AliasRepository",
    "LatencyHistoryRepository",
    "ErrorHistoryRepository",
    "PollHistoryRepository",
    "StatusChangeRepository",
    "SettingsRepository",
]
