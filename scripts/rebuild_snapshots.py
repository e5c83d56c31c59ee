"""
Snapshot Rebuild

Replays the order history into the daily_sales snapshots. Safe to run
repeatedly; snapshots are upserted by (name, date).

Usage:
    python scripts/rebuild_snapshots.py
    python scripts/rebuild_snapshots.py --days 7
"""

import argparse
import asyncio
from datetime import timedelta

import structlog

from ecommerce_metrics.analytics.repository import MetricRepository
from ecommerce_metrics.config import get_settings
from ecommerce_metrics.config.logging import configure_logging
from ecommerce_metrics.database.connection import Database
from ecommerce_metrics.ingestion.replay import rebuild_daily_sales
from ecommerce_metrics.utils.time import utc_now

logger = structlog.get_logger(__name__)


async def main(days: int) -> None:
    settings = get_settings()
    database = Database.from_settings(settings.database)
    await database.connect()
    try:
        repository = MetricRepository(database, query_timeout=None)
        since = None
        if days:
            # midnight of the first replayed day, so no day is written partially
            since = (utc_now() - timedelta(days=days - 1)).replace(hour=0, minute=0, second=0, microsecond=0)
        snapshots = await rebuild_daily_sales(repository, since=since)
        logger.info("Rebuild finished", snapshots=len(snapshots))
    finally:
        await database.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Rebuild daily_sales snapshots from orders")
    parser.add_argument("--days", type=int, default=0, help="Only the last N days (default: all history)")
    args = parser.parse_args()

    configure_logging()
    asyncio.run(main(args.days))
