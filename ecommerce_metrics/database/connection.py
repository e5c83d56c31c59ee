"""
Database Connection Management

Async SQLAlchemy 2.0 engine and session factory owned by an explicit
``Database`` object. The process bootstrap creates one, connects it, and
hands it to the repository; nothing reaches for a module-level handle.
"""

import time
from typing import Optional

import structlog
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from ecommerce_metrics.config import DatabaseSettings
from ecommerce_metrics.database.models import Base
from ecommerce_metrics.exceptions import StorageUnavailable

logger = structlog.get_logger(__name__)


class Database:
    """
    Engine + session factory with an idempotent connect/close lifecycle.

    Example:
        database = Database.from_settings(settings.database)
        await database.connect()
        async with database.session_factory.begin() as session:
            ...
        await database.close()
    """

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        self.echo = echo
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    @classmethod
    def from_settings(cls, settings: DatabaseSettings) -> "Database":
        return cls(settings.async_url, echo=settings.echo)

    @property
    def is_connected(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._session_factory

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    async def connect(self) -> AsyncEngine:
        """
        Create the engine and verify connectivity.

        Returns:
            AsyncEngine: The connected engine

        Raises:
            StorageUnavailable: If the store cannot be reached
        """
        if self._engine is not None:
            logger.warning("Database already connected")
            return self._engine

        # asyncpg pools its own connections; QueuePool does not apply to async engines
        engine = create_async_engine(
            self.url,
            echo=self.echo,
            pool_pre_ping=True,
            poolclass=NullPool,
        )

        try:
            async with engine.begin() as conn:
                await conn.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError) as e:
            await engine.dispose()
            logger.error("Failed to connect to database", error_type=type(e).__name__)
            raise StorageUnavailable("connect") from e

        self._engine = engine
        self._session_factory = async_sessionmaker(
            bind=engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        logger.info("Database connection established", dialect=engine.dialect.name)
        return engine

    async def create_tables(self) -> None:
        """Create any missing tables."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables ensured")

    async def close(self) -> None:
        """Dispose of the engine. Safe to call more than once."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("Database connection closed")

    async def health(self) -> dict:
        """
        Check database health status.

        Returns:
            dict: Health status with latency information
        """
        if self._engine is None:
            return {"status": "unhealthy", "error": "not connected"}

        try:
            start = time.perf_counter()
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            latency_ms = (time.perf_counter() - start) * 1000
            return {"status": "healthy", "latency_ms": round(latency_ms, 2)}
        except (SQLAlchemyError, OSError) as e:
            return {"status": "unhealthy", "error": type(e).__name__}
