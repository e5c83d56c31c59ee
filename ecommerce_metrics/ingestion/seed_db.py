"""
Demo Database Seeding

Writes a generated dataset into the metric store through the repository
and derives the daily sales snapshots from the seeded orders.
"""

from typing import Dict

import structlog

from ecommerce_metrics.analytics.repository import MetricRepository
from ecommerce_metrics.data.generators import DataGenerator, DemoDataset
from ecommerce_metrics.ingestion.replay import rebuild_daily_sales

logger = structlog.get_logger(__name__)

CHUNK_SIZE = 500


async def _in_chunks(write, records, name: str) -> int:
    written = 0
    for i in range(0, len(records), CHUNK_SIZE):
        written += await write(records[i:i + CHUNK_SIZE])
    logger.info("Seeded records", table=name, count=written)
    return written


async def seed_demo_data(repository: MetricRepository, dataset: DemoDataset) -> Dict[str, int]:
    """
    Seed every table from ``dataset``.

    Meant for an empty store: the upserting tables tolerate a rerun, but
    order ids are unique and a second run of the same dataset fails.

    Returns:
        Rows written per table
    """
    logger.info("Starting database seeding...")

    counts = {
        "product_analytics": await _in_chunks(repository.upsert_products, dataset.products, "product_analytics"),
        "user_analytics": await _in_chunks(repository.upsert_users, dataset.users, "user_analytics"),
        "orders": await _in_chunks(repository.add_orders, dataset.orders, "orders"),
        "searches": await _in_chunks(repository.add_search_events, dataset.search_events, "searches"),
        "search_analytics": await _in_chunks(repository.upsert_search_terms, dataset.search_terms, "search_analytics"),
        "sessions": await _in_chunks(repository.upsert_sessions, dataset.sessions, "sessions"),
        "metrics": await repository.upsert_snapshots(dataset.page_views),
    }
    counts["metrics"] += len(await rebuild_daily_sales(repository))

    logger.info("Database seeding completed successfully!", **counts)
    return counts


async def seed_from_generator(
    repository: MetricRepository,
    seed: int = 42,
    scale: float = 1.0,
    days: int = 90,
) -> Dict[str, int]:
    """Generate a dataset of the given relative size and seed it."""
    def sized(n: int) -> int:
        return max(1, int(n * scale))

    dataset = DataGenerator(seed).generate_all(
        n_products=sized(200),
        n_users=sized(500),
        n_orders=sized(2000),
        n_searches=sized(1000),
        n_sessions=sized(300),
        days=days,
    )
    return await seed_demo_data(repository, dataset)
