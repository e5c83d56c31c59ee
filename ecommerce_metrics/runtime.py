"""
Process Runtime

Owns the long-lived objects of one service process: the database, the
repository and query service built on it, and the real-time ingestor.
The FastAPI lifespan calls ``start()`` on startup and ``stop()`` on shutdown.
"""

import asyncio
from typing import Optional

import structlog

from ecommerce_metrics.analytics.repository import MetricRepository
from ecommerce_metrics.analytics.service import AnalyticsService
from ecommerce_metrics.config import Settings, get_settings
from ecommerce_metrics.database.connection import Database
from ecommerce_metrics.ingestion.stream_consumer import ConsumerConfig, RealtimeIngestor

logger = structlog.get_logger(__name__)


class AnalyticsRuntime:
    """
    Explicit lifecycle for the store and the ingestor.

    Example:
        runtime = AnalyticsRuntime(get_settings())
        await runtime.start()
        overview = await runtime.service.dashboard_overview()
        await runtime.stop()
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        database: Optional[Database] = None,
        ingestor: Optional[RealtimeIngestor] = None,
    ):
        self.settings = settings or get_settings()
        self.database = database or Database.from_settings(self.settings.database)
        self.repository = MetricRepository(
            self.database,
            query_timeout=self.settings.analytics.query_timeout_seconds,
        )
        self.service = AnalyticsService(self.repository, self.settings.analytics)

        if ingestor is None and self.settings.kafka.enabled:
            ingestor = RealtimeIngestor(self.repository, ConsumerConfig.from_settings(self.settings.kafka))
        self.ingestor = ingestor

        self._started = False
        self._lock = asyncio.Lock()

    @property
    def is_started(self) -> bool:
        return self._started

    async def start(self) -> None:
        """Connect the store, ensure tables, start the ingestor. Idempotent."""
        async with self._lock:
            if self._started:
                return

            await self.database.connect()
            if self.settings.database.auto_create_tables:
                await self.database.create_tables()

            if self.ingestor is not None:
                await self.ingestor.start()
            else:
                logger.info("Realtime ingestion disabled")

            self._started = True
            logger.info("Analytics runtime started", environment=self.settings.app_env)

    async def stop(self) -> None:
        """Drain and stop the ingestor, then close the store. Idempotent."""
        async with self._lock:
            if not self._started:
                return

            if self.ingestor is not None:
                await self.ingestor.stop()
            await self.database.close()

            self._started = False
            logger.info("Analytics runtime stopped")

    async def health(self) -> dict:
        checks = {"database": await self.database.health()}
        if self.ingestor is not None:
            checks["stream"] = {"status": self.ingestor.state.value}
        return checks
