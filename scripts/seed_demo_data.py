"""
Demo Data Seeder

Fills an empty metric store with Faker-generated products, users, orders,
searches, sessions and daily snapshots.

Usage:
    python scripts/seed_demo_data.py
    python scripts/seed_demo_data.py --scale 0.1 --seed 7
"""

import argparse
import asyncio

import structlog

from ecommerce_metrics.analytics.repository import MetricRepository
from ecommerce_metrics.config import get_settings
from ecommerce_metrics.config.logging import configure_logging
from ecommerce_metrics.database.connection import Database
from ecommerce_metrics.ingestion.seed_db import seed_from_generator

logger = structlog.get_logger(__name__)


async def main(seed: int, scale: float, days: int) -> None:
    settings = get_settings()
    database = Database.from_settings(settings.database)
    await database.connect()
    try:
        await database.create_tables()
        repository = MetricRepository(database, query_timeout=None)
        await seed_from_generator(repository, seed=seed, scale=scale, days=days)
    finally:
        await database.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed the metric store with demo data")
    parser.add_argument("--seed", type=int, default=42, help="Random seed (default: 42)")
    parser.add_argument("--scale", type=float, default=1.0, help="Relative dataset size (default: 1.0)")
    parser.add_argument("--days", type=int, default=90, help="Days of order history (default: 90)")
    args = parser.parse_args()

    configure_logging()
    asyncio.run(main(args.seed, args.scale, args.days))
