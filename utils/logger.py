"""
============================================================================
DEPWATCH - LOGGING UTILITY
============================================================================
Loguru-based logging with console, rotating file and error-file sinks.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import sys
from typing import Optional

from loguru import logger

from config.settings import LoggingSettings


CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)
FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | "
    "{extra[name]}:{function}:{line} - {message}"
)


# ============================================================================
# LOGGER CONFIGURATION
# ============================================================================

def setup_logging(config: Optional[LoggingSettings] = None) -> None:
    """
    Configure loguru sinks from logging settings.

    Replaces any previously installed sinks, so calling it twice
    does not duplicate output.

    Args:
        config: Logging settings (read from the environment if omitted)
    """
    config = config or LoggingSettings()

    logger.remove()
    logger.configure(extra={"name": "depwatch"})

    log_level = config.level.value

    # Console Handler
    if config.console_enabled:
        logger.add(
            sys.stderr,
            format=CONSOLE_FORMAT,
            level=log_level,
            colorize=config.colorize,
            backtrace=True,
            diagnose=False,
        )

    # File Handlers
    if config.file_enabled:
        config.file_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            config.file_path,
            format=FILE_FORMAT,
            level=log_level,
            rotation=config.rotation,
            retention=config.retention,
            compression=config.compression,
            serialize=config.serialize,
            enqueue=True,
        )

        config.error_file_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            config.error_file_path,
            format=FILE_FORMAT,
            level="ERROR",
            rotation="1 day",
            retention="7 days",
            compression=config.compression,
            backtrace=True,
            enqueue=True,
        )

    logger.info(f"Logging system initialized (level={log_level})")


def get_logger(name: Optional[str] = None):
    """
    Get logger instance with optional name.

    Args:
        name: Logger name (usually the component name)

    Returns:
        Logger instance bound to ``name``
    """
    return logger.bind(name=name or "depwatch")
