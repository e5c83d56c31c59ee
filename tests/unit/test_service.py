"""
Unit Tests - Analytics Service and Dashboard Composition
"""
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import text

from ecommerce_metrics.analytics.dashboard import DashboardComposer
from ecommerce_metrics.analytics.schemas import (
    MetricSnapshot,
    OrderRecord,
    RealtimeSample,
    SearchTerm,
    SessionRecord,
)
from ecommerce_metrics.analytics.service import AnalyticsService
from ecommerce_metrics.config import AnalyticsSettings
from ecommerce_metrics.data.generators import DataGenerator
from ecommerce_metrics.exceptions import InvalidArgument, StorageUnavailable
from ecommerce_metrics.ingestion.replay import rebuild_daily_sales
from ecommerce_metrics.ingestion.seed_db import seed_demo_data


@pytest.fixture
def service(repository) -> AnalyticsService:
    return AnalyticsService(repository, AnalyticsSettings())


class TestDashboardOverview:
    """Tests for the dashboard overview payload"""

    @pytest.mark.asyncio
    async def test_overview(self, service, repository, day_snapshots, sample_orders, sample_products, sample_users, now):
        await repository.upsert_snapshots(day_snapshots)
        await repository.add_orders(sample_orders)
        await repository.upsert_products(sample_products)
        await repository.upsert_users(sample_users)
        await repository.upsert_sessions([
            SessionRecord(session_id="s-1", last_active=now - timedelta(minutes=10)),
            SessionRecord(session_id="s-2", last_active=now - timedelta(hours=2)),
        ])

        overview = await service.dashboard_overview(now)

        assert overview.page_views.today == 200
        assert overview.page_views.yesterday == 150
        assert overview.page_views.change == 33.33
        assert overview.sales.today.count == 5
        assert overview.sales.today.revenue == 125.0
        assert overview.sales.change == 25.0
        assert overview.sales.count_change == 25.0
        assert overview.users.total == 4
        assert overview.users.active == 1
        assert overview.conversion_rate == 2.5
        assert [p.product_id for p in overview.top_products] == ["p-2", "p-5", "p-1", "p-3", "p-4"]
        assert [o.order_id for o in overview.recent_orders] == ["ord-5", "ord-4", "ord-3", "ord-2", "ord-1"]

    @pytest.mark.asyncio
    async def test_missing_yesterday_gives_zero_change(self, service, repository, now):
        await repository.upsert_snapshots([
            MetricSnapshot(name="daily_sales", date=now.strftime("%Y-%m-%d"), count=5, revenue=125.0),
        ])

        overview = await service.dashboard_overview(now)

        assert overview.sales.change == 0
        assert overview.sales.yesterday.count == 0
        assert overview.page_views.change == 0
        assert overview.conversion_rate == 0

    @pytest.mark.asyncio
    async def test_empty_store(self, service, now):
        overview = await service.dashboard_overview(now)

        assert overview.users.total == 0
        assert overview.top_products == []
        assert overview.recent_orders == []

    @pytest.mark.asyncio
    async def test_serializes_with_camel_case(self, service, repository, day_snapshots, now):
        await repository.upsert_snapshots(day_snapshots)

        payload = (await service.dashboard_overview(now)).model_dump(by_alias=True)

        assert set(payload) == {"pageViews", "sales", "users", "conversionRate", "topProducts", "recentOrders"}
        assert "countChange" in payload["sales"]

    @pytest.mark.asyncio
    async def test_failed_read_fails_whole_overview(self, repository, database, day_snapshots, now):
        await repository.upsert_snapshots(day_snapshots)
        async with database.engine.begin() as conn:
            await conn.execute(text("DROP TABLE sessions"))

        with pytest.raises(StorageUnavailable):
            await DashboardComposer(repository).compose(now)

    @pytest.mark.asyncio
    async def test_configured_list_sizes(self, repository, sample_orders, sample_products, now):
        await repository.add_orders(sample_orders)
        await repository.upsert_products(sample_products)
        service = AnalyticsService(repository, AnalyticsSettings(dashboard_top_products=2, dashboard_recent_orders=1))

        overview = await service.dashboard_overview(now)

        assert len(overview.top_products) == 2
        assert len(overview.recent_orders) == 1


class TestProductAnalytics:
    """Tests for product analytics"""

    @pytest.mark.asyncio
    async def test_sorted_by_requested_field(self, service, repository, sample_products):
        await repository.upsert_products(sample_products)

        result = await service.product_analytics(sort="cartAdds", limit=3)

        assert [p.product_id for p in result.products] == ["p-2", "p-3", "p-5"]
        assert result.sort_field == "cartAdds"
        assert result.sort_fallback is False
        assert result.categories == ["books", "electronics", "home_garden", "sports"]

    @pytest.mark.asyncio
    async def test_unknown_sort_falls_back_to_views(self, service, repository, sample_products):
        await repository.upsert_products(sample_products)

        fallback = await service.product_analytics(sort="bogus", limit=20)
        by_views = await service.product_analytics(sort="views", limit=20)

        assert fallback.products == by_views.products
        assert fallback.sort_field == "views"
        assert fallback.sort_fallback is True

    @pytest.mark.asyncio
    async def test_strict_sort_rejects_unknown_field(self, repository):
        service = AnalyticsService(repository, AnalyticsSettings(strict_sort_fields=True))

        with pytest.raises(InvalidArgument) as exc_info:
            await service.product_analytics(sort="bogus")

        assert exc_info.value.parameter == "sort"
        assert "viewToCartRate" in exc_info.value.allowed

    @pytest.mark.asyncio
    async def test_category_filter(self, service, repository, sample_products):
        await repository.upsert_products(sample_products)

        result = await service.product_analytics(category="sports")

        assert [p.product_id for p in result.products] == ["p-2", "p-6"]
        assert len(result.categories) == 4

    @pytest.mark.asyncio
    @pytest.mark.parametrize("limit", [0, -5])
    async def test_invalid_limit(self, service, limit):
        with pytest.raises(InvalidArgument):
            await service.product_analytics(limit=limit)


class TestUserAnalytics:
    """Tests for user analytics"""

    @pytest.mark.asyncio
    async def test_user_analytics(self, service, repository, sample_users, now):
        await repository.upsert_users(sample_users)

        result = await service.user_analytics(limit=2, now=now)

        # u-2 and u-4 tie on spend; u-2 was stored first
        assert [u.user_id for u in result.top_users] == ["u-2", "u-4"]
        assert result.new_users == 1
        assert result.returning_users == 2
        assert result.total_users == 4


class TestSalesAnalytics:
    """Tests for sales analytics"""

    @pytest.mark.asyncio
    async def test_daily(self, service, repository, sample_orders, now):
        await repository.add_orders(sample_orders)

        result = await service.sales_analytics("daily", now)

        assert result.period == "day"
        assert [b.bucket_key for b in result.sales_data] == ["2025-01-13", "2025-01-14", "2025-01-15"]
        # payment methods cover the full history, including ord-1
        assert sum(m.count for m in result.payment_methods.values()) == 5
        assert result.payment_methods["unknown"].count == 1

    @pytest.mark.asyncio
    async def test_hourly_window(self, service, repository, sample_orders, now):
        await repository.add_orders(sample_orders)

        result = await service.sales_analytics("hourly", now)

        assert [b.bucket_key for b in result.sales_data] == ["2025-01-15T09:00", "2025-01-15T11:00"]

    @pytest.mark.asyncio
    async def test_weekly_keys_across_year_boundary(self, service, repository):
        now = datetime(2021, 1, 6, 12, 0, tzinfo=timezone.utc)
        await repository.add_orders([
            OrderRecord(order_id="a", timestamp=datetime(2020, 12, 29, tzinfo=timezone.utc), total=10),
            OrderRecord(order_id="b", timestamp=datetime(2021, 1, 1, tzinfo=timezone.utc), total=20),
            OrderRecord(order_id="c", timestamp=datetime(2021, 1, 5, tzinfo=timezone.utc), total=30),
        ])

        result = await service.sales_analytics("weekly", now)

        assert [(b.bucket_key, b.count) for b in result.sales_data] == [("2020-W53", 2), ("2021-W01", 1)]

    @pytest.mark.asyncio
    async def test_invalid_period(self, service):
        with pytest.raises(InvalidArgument) as exc_info:
            await service.sales_analytics("yearly")
        assert exc_info.value.parameter == "period"


class TestSearchAndRealtime:
    """Tests for search analytics and real-time metrics"""

    @pytest.mark.asyncio
    async def test_search_analytics(self, service, repository, sample_searches):
        await repository.upsert_search_terms([SearchTerm(query=f"term-{i}", count=i) for i in range(25)])
        await repository.add_search_events(sample_searches)

        result = await service.search_analytics()

        assert len(result.top_search_terms) == 20
        assert result.top_search_terms[0].query == "term-24"
        assert [z.query for z in result.zero_result_searches] == ["hoverboard", "usb hub"]

    @pytest.mark.asyncio
    async def test_realtime_last_hour(self, service, repository, now):
        await repository.upsert_realtime_samples([
            RealtimeSample(timestamp=now - timedelta(minutes=90), metric_name="orders", value=1),
            RealtimeSample(timestamp=now - timedelta(minutes=30), metric_name="orders", value=2),
            RealtimeSample(timestamp=now - timedelta(minutes=5), metric_name="page_views", value=40),
        ])

        samples = await service.realtime_metrics(now)

        assert [(s.timestamp, s.value) for s in samples] == [
            ("2025-01-15T11:30", 2.0),
            ("2025-01-15T11:55", 40.0),
        ]


class TestReplayAndSeeding:
    """Tests for snapshot replay and demo seeding"""

    @pytest.mark.asyncio
    async def test_rebuild_daily_sales_is_idempotent(self, repository, sample_orders):
        await repository.add_orders(sample_orders)

        first = await rebuild_daily_sales(repository)
        second = await rebuild_daily_sales(repository)

        assert first == second
        stored = await repository.get_snapshot("daily_sales", "2025-01-15")
        assert stored.count == 2
        assert stored.revenue == 99.5

    @pytest.mark.asyncio
    async def test_seed_demo_data(self, service, repository):
        dataset = DataGenerator(seed=7).generate_all(
            n_products=20, n_users=30, n_orders=60, n_searches=40, n_sessions=10, days=10,
        )

        counts = await seed_demo_data(repository, dataset)

        assert counts["orders"] == 60
        assert counts["product_analytics"] == 20
        assert await repository.count_users() == 30

        overview = await service.dashboard_overview()
        assert len(overview.top_products) == 5
        assert overview.page_views.today > 0

    def test_generator_is_deterministic(self, now):
        first = DataGenerator(seed=3).generate_all(n_products=5, n_users=5, n_orders=5, n_searches=5, n_sessions=5, days=5, now=now)
        second = DataGenerator(seed=3).generate_all(n_products=5, n_users=5, n_orders=5, n_searches=5, n_sessions=5, days=5, now=now)

        assert first == second
