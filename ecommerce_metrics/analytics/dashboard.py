"""
Dashboard Composer

Builds the overview payload from independent reads issued concurrently and
joined before the payload is assembled. Any failed read fails the whole
overview; no partial payload is returned.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Optional

import structlog

from ecommerce_metrics.analytics.deltas import DeltaCalculator
from ecommerce_metrics.analytics.repository import MetricRepository
from ecommerce_metrics.analytics.schemas import (
    DashboardOverview,
    PageViewSummary,
    SalesFigures,
    SalesSummary,
    UserSummary,
)
from ecommerce_metrics.utils.time import day_key, to_utc, utc_now

logger = structlog.get_logger(__name__)

DAILY_PAGE_VIEWS = "daily_page_views"
DAILY_SALES = "daily_sales"


def _figures(snapshot) -> SalesFigures:
    if snapshot is None:
        return SalesFigures()
    return SalesFigures(count=snapshot.count, revenue=snapshot.revenue)


class DashboardComposer:
    """Fan-out/fan-in composition of the dashboard overview"""

    def __init__(
        self,
        repository: MetricRepository,
        deltas: Optional[DeltaCalculator] = None,
        active_window: timedelta = timedelta(minutes=30),
        top_products: int = 5,
        recent_orders: int = 5,
    ):
        self.repository = repository
        self.deltas = deltas or DeltaCalculator()
        self.active_window = active_window
        self.top_products = top_products
        self.recent_orders = recent_orders

    async def compose(self, now: Optional[datetime] = None) -> DashboardOverview:
        now = to_utc(now) if now is not None else utc_now()
        today = day_key(now)
        yesterday = day_key(now - timedelta(days=1))

        (
            today_views,
            yesterday_views,
            today_sales,
            yesterday_sales,
            total_users,
            active_sessions,
            products,
            recent_orders,
        ) = await asyncio.gather(
            self.repository.get_snapshot(DAILY_PAGE_VIEWS, today),
            self.repository.get_snapshot(DAILY_PAGE_VIEWS, yesterday),
            self.repository.get_snapshot(DAILY_SALES, today),
            self.repository.get_snapshot(DAILY_SALES, yesterday),
            self.repository.count_users(),
            self.repository.count_active_sessions(now - self.active_window),
            self.repository.top_products(self.top_products),
            self.repository.recent_orders(self.recent_orders),
        )

        logger.debug(
            "Dashboard reads completed",
            today=today,
            has_today_sales=today_sales is not None,
            has_yesterday_sales=yesterday_sales is not None,
        )

        return DashboardOverview(
            page_views=PageViewSummary(
                today=today_views.count if today_views else 0,
                yesterday=yesterday_views.count if yesterday_views else 0,
                change=self.deltas.percent_change(today_views, yesterday_views, "count"),
            ),
            sales=SalesSummary(
                today=_figures(today_sales),
                yesterday=_figures(yesterday_sales),
                change=self.deltas.percent_change(today_sales, yesterday_sales, "revenue"),
                count_change=self.deltas.percent_change(today_sales, yesterday_sales, "count"),
            ),
            users=UserSummary(total=total_users, active=active_sessions),
            conversion_rate=self.deltas.conversion_rate(today_sales, today_views),
            top_products=products,
            recent_orders=recent_orders,
        )
