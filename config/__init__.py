"""
Configuration Package for Depwatch

This package contains all configuration-related modules including:
- Settings management with environment variable support
- Constants, enums and network tables used throughout the application
"""

from config.settings import (
    Settings,
    DatabaseSettings,
    PollingSettings,
    LoggingSettings,
    SecuritySettings,
    get_settings,
)

from config.constants import (
    HealthState,
    DependencyType,
    StatusCodes,
    Defaults,
    Limits,
    HealthyValues,
    NetworkRules,
    ErrorCodes,
    SettingKeys,
)

__all__ = [
    # Settings
    "Settings",
    "DatabaseSettings",
    "PollingSettings",
    "LoggingSettings",
    "SecuritySettings",
    "get_settings",

    # Constants
    "HealthState",
    "DependencyType",
    "StatusCodes",
    "Defaults",
    "Limits",
    "HealthyValues",
    "NetworkRules",
    "ErrorCodes",
    "SettingKeys",
]
