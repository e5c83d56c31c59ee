"""
Analytics Service

The query boundary between the HTTP layer and the aggregation subsystem.
Each operation takes validated scalar parameters and either returns a full
payload or raises; heavy aggregations pass through an admission limit so a
burst of dashboard/sales requests cannot pile up unbounded work.
"""

import asyncio
from datetime import datetime, timedelta
from typing import List, Optional

import structlog

from ecommerce_metrics.analytics.aggregation import (
    AggregationEngine,
    PRODUCT_SORT_FIELDS,
    FallbackSortField,
    resolve_product_sort,
)
from ecommerce_metrics.analytics.bucketing import Granularity
from ecommerce_metrics.analytics.dashboard import DashboardComposer
from ecommerce_metrics.analytics.deltas import DeltaCalculator
from ecommerce_metrics.analytics.repository import MetricRepository
from ecommerce_metrics.analytics.schemas import (
    DashboardOverview,
    ProductAnalyticsResponse,
    RealtimeSample,
    SalesAnalyticsResponse,
    SearchAnalyticsResponse,
    UserAnalyticsResponse,
)
from ecommerce_metrics.config import AnalyticsSettings
from ecommerce_metrics.exceptions import InvalidArgument
from ecommerce_metrics.utils.time import minute_key, to_utc, utc_now

logger = structlog.get_logger(__name__)

TOP_SEARCH_TERMS = 20
ZERO_RESULT_SEARCHES = 10
NEW_USER_WINDOW = timedelta(hours=24)
REALTIME_WINDOW = timedelta(hours=1)


class AnalyticsService:
    """
    Read-only analytics operations.

    Example:
        service = AnalyticsService(repository, settings.analytics)
        overview = await service.dashboard_overview()
        sales = await service.sales_analytics("weekly")
    """

    def __init__(
        self,
        repository: MetricRepository,
        settings: Optional[AnalyticsSettings] = None,
        engine: Optional[AggregationEngine] = None,
        deltas: Optional[DeltaCalculator] = None,
    ):
        self.repository = repository
        self.settings = settings or AnalyticsSettings()
        self.engine = engine or AggregationEngine()
        self.deltas = deltas or DeltaCalculator()
        self.composer = DashboardComposer(
            repository,
            deltas=self.deltas,
            active_window=timedelta(minutes=self.settings.active_session_minutes),
            top_products=self.settings.dashboard_top_products,
            recent_orders=self.settings.dashboard_recent_orders,
        )
        self._admission = asyncio.Semaphore(self.settings.max_concurrent_aggregations)

    @staticmethod
    def _now(now: Optional[datetime]) -> datetime:
        return to_utc(now) if now is not None else utc_now()

    @staticmethod
    def _check_limit(limit: int) -> int:
        if limit is None or limit < 1:
            raise InvalidArgument("limit", limit)
        return limit

    async def dashboard_overview(self, now: Optional[datetime] = None) -> DashboardOverview:
        async with self._admission:
            return await self.composer.compose(self._now(now))

    async def product_analytics(
        self,
        sort: Optional[str] = None,
        limit: int = 20,
        category: Optional[str] = None,
    ) -> ProductAnalyticsResponse:
        limit = self._check_limit(limit)
        selection = resolve_product_sort(sort)
        if isinstance(selection, FallbackSortField) and self.settings.strict_sort_fields:
            raise InvalidArgument("sort", sort, allowed=list(PRODUCT_SORT_FIELDS))

        products, categories = await asyncio.gather(
            self.repository.products(category),
            self.repository.product_categories(),
        )
        return ProductAnalyticsResponse(
            products=self.engine.top_n(products, selection.attribute, limit),
            categories=categories,
            sort_field=selection.field,
            sort_fallback=selection.fallback,
        )

    async def user_analytics(self, limit: int = 20, now: Optional[datetime] = None) -> UserAnalyticsResponse:
        limit = self._check_limit(limit)
        now = self._now(now)
        users, new_users, returning_users, total_users = await asyncio.gather(
            self.repository.users(),
            self.repository.count_users_since(now - NEW_USER_WINDOW),
            self.repository.count_returning_users(),
            self.repository.count_users(),
        )
        return UserAnalyticsResponse(
            top_users=self.engine.top_n(users, "total_spent", limit),
            new_users=new_users,
            returning_users=returning_users,
            total_users=total_users,
        )

    async def sales_analytics(
        self,
        period: str = "daily",
        now: Optional[datetime] = None,
    ) -> SalesAnalyticsResponse:
        granularity = Granularity.parse(period)
        start, end = self.engine.bucketer.window(granularity, self._now(now))

        async with self._admission:
            window_orders, payment_methods = await asyncio.gather(
                self.repository.orders_between(start, end),
                self.repository.payment_method_totals(),
            )

        sales_data = self.engine.aggregate_by_period(window_orders, granularity, end)
        logger.info(
            "Sales analytics computed",
            period=granularity.value,
            orders_in_window=len(window_orders),
            buckets=len(sales_data),
        )
        return SalesAnalyticsResponse(
            period=granularity.value,
            sales_data=sales_data,
            payment_methods=payment_methods,
        )

    async def search_analytics(self) -> SearchAnalyticsResponse:
        terms, zero_results = await asyncio.gather(
            self.repository.search_terms(),
            self.repository.zero_result_searches(ZERO_RESULT_SEARCHES),
        )
        return SearchAnalyticsResponse(
            top_search_terms=self.engine.top_n(terms, "count", TOP_SEARCH_TERMS),
            zero_result_searches=zero_results,
        )

    async def realtime_metrics(self, now: Optional[datetime] = None) -> List[RealtimeSample]:
        since = minute_key(self._now(now) - REALTIME_WINDOW)
        return await self.repository.realtime_samples_since(since)
