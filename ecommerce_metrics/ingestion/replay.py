"""
Snapshot Replay

Rebuilds the stored daily aggregates from raw history. Snapshots are
upserted by (name, date), so replaying the same history twice leaves the
store unchanged.
"""

from datetime import datetime
from typing import List, Optional

import structlog

from ecommerce_metrics.analytics.aggregation import AggregationEngine
from ecommerce_metrics.analytics.dashboard import DAILY_SALES
from ecommerce_metrics.analytics.repository import MetricRepository
from ecommerce_metrics.analytics.schemas import MetricSnapshot

logger = structlog.get_logger(__name__)


async def rebuild_daily_sales(
    repository: MetricRepository,
    engine: Optional[AggregationEngine] = None,
    since: Optional[datetime] = None,
) -> List[MetricSnapshot]:
    """
    Replay orders into ``daily_sales`` snapshots.

    Args:
        repository: Metric store access
        engine: Aggregation engine (a default one if omitted)
        since: Only replay orders from this instant on; all history if omitted

    Returns:
        The snapshots written, oldest day first
    """
    engine = engine or AggregationEngine()
    if since is None:
        orders = await repository.all_orders()
    else:
        orders = await repository.orders_between(since)

    snapshots = engine.daily_snapshots(orders, DAILY_SALES)
    await repository.upsert_snapshots(snapshots)

    logger.info(
        "Daily sales snapshots rebuilt",
        orders=len(orders),
        days=len(snapshots),
        first_day=snapshots[0].date if snapshots else None,
        last_day=snapshots[-1].date if snapshots else None,
    )
    return snapshots
