"""
============================================================================
DEPWATCH - DATABASE CONNECTION
============================================================================
Manages the async engine, session factory and table creation using
SQLAlchemy's asyncio extension (aiosqlite for SQLite, asyncpg for
PostgreSQL).

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from sqlalchemy import event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine
)
from sqlalchemy.pool import NullPool

from config.settings import DatabaseSettings
from database.models import Base
from exceptions.database import DatabaseConnectionError, DatabaseQueryError
from utils.logger import get_logger


logger = get_logger("Database")


class DatabaseManager:
    """
    Database Manager Class

    Owns the engine and session factory. One instance is created by the
    application and handed to every repository.

    Attributes:
        engine: SQLAlchemy async engine
        session_factory: Async session maker
        is_connected: Connection status flag
    """

    def __init__(self, config: Optional[DatabaseSettings] = None, url: Optional[str] = None) -> None:
        """
        Initialize database manager.

        Args:
            config: Database settings (read from the environment if omitted)
            url: Explicit database URL overriding the settings
        """
        self._settings = config or DatabaseSettings()
        self.url = url or self._settings.url
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker[AsyncSession]] = None
        self.is_connected: bool = False
        self._lock = asyncio.Lock()

    async def connect(self, create_tables: bool = True) -> None:
        """
        Establish database connection and optionally create tables.

        Raises:
            DatabaseConnectionError: If connection fails
        """
        async with self._lock:
            if self.is_connected:
                logger.warning("Database already connected")
                return

            try:
                logger.info("Connecting to database...")

                self.engine = create_async_engine(self.url, **self._get_engine_kwargs())
                self.session_factory = async_sessionmaker(
                    bind=self.engine,
                    class_=AsyncSession,
                    expire_on_commit=False,
                    autoflush=False
                )

                await self._test_connection()
                self._setup_event_listeners()

                if create_tables:
                    async with self.engine.begin() as conn:
                        await conn.run_sync(Base.metadata.create_all)

                self.is_connected = True
                logger.info("Database connection established successfully")

            except SQLAlchemyError as e:
                error_msg = f"Failed to connect to database: {e}"
                logger.error(error_msg)
                if self.engine is not None:
                    await self.engine.dispose()
                    self.engine = None
                raise DatabaseConnectionError(
                    message=error_msg,
                    database=self._settings.name,
                    cause=e
                )

    def _get_engine_kwargs(self) -> Dict[str, Any]:
        """Engine options: NullPool for SQLite, sized pool otherwise."""
        kwargs: Dict[str, Any] = {"echo": self._settings.echo}

        if self.url.startswith("sqlite"):
            kwargs["poolclass"] = NullPool
        else:
            kwargs["pool_size"] = self._settings.pool_size
            kwargs["max_overflow"] = self._settings.max_overflow
            kwargs["pool_timeout"] = self._settings.pool_timeout
            kwargs["pool_recycle"] = self._settings.pool_recycle
            kwargs["pool_pre_ping"] = self._settings.pool_pre_ping

        return kwargs

    async def _test_connection(self) -> None:
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    def _setup_event_listeners(self) -> None:
        """Set up SQLAlchemy event listeners for monitoring."""

        @event.listens_for(self.engine.sync_engine, "connect")
        def on_connect(dbapi_connection, connection_record):
            logger.debug("New database connection established")

    async def disconnect(self) -> None:
        """Dispose of the engine and clean up resources."""
        async with self._lock:
            if not self.is_connected:
                return

            logger.info("Disconnecting from database...")
            if self.engine:
                await self.engine.dispose()
                self.engine = None

            self.session_factory = None
            self.is_connected = False
            logger.info("Database disconnected successfully")

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Context manager for database sessions.

        Commits on success and rolls back on failure.

        Raises:
            DatabaseConnectionError: If not connected
            DatabaseQueryError: If a query fails
        """
        if not self.is_connected or not self.session_factory:
            raise DatabaseConnectionError("Database not connected")

        session = self.session_factory()

        try:
            yield session
            await session.commit()

        except SQLAlchemyError as e:
            await session.rollback()
            statement = getattr(e, "statement", None) or ""
            error = DatabaseQueryError(
                message=str(getattr(e, "orig", None) or e),
                operation=statement.split(None, 1)[0].upper() if statement else None,
                query=statement or None,
                cause=e,
            )
            logger.error(f"Database session error: {error.log_format()}")
            raise error

        except BaseException:
            await session.rollback()
            raise

        finally:
            await session.close()

    async def check_connection(self) -> bool:
        """Return True if a trivial query succeeds."""
        try:
            async with self.session() as session:
                await session.execute(text("SELECT 1"))
            return True
        except (DatabaseConnectionError, DatabaseQueryError) as e:
            logger.error(f"Database connection check failed: {e}")
            return False
