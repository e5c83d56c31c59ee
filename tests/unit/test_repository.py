"""
Unit Tests - Metric Repository (SQLite store)
"""
from datetime import timedelta

import pytest
from sqlalchemy import text

from ecommerce_metrics.analytics.aggregation import AggregationEngine
from ecommerce_metrics.analytics.schemas import (
    MetricSnapshot,
    ProductMetric,
    RealtimeSample,
    SearchTerm,
    SessionRecord,
    UserMetric,
)
from ecommerce_metrics.database.connection import Database
from ecommerce_metrics.exceptions import StorageUnavailable


class TestSnapshots:
    """Tests for snapshot reads and upserts"""

    @pytest.mark.asyncio
    async def test_missing_snapshot_is_none(self, repository):
        assert await repository.get_snapshot("daily_sales", "2025-01-15") is None

    @pytest.mark.asyncio
    async def test_upsert_is_idempotent(self, repository):
        snapshot = MetricSnapshot(name="daily_sales", date="2025-01-15", count=3, revenue=42.5)

        await repository.upsert_snapshots([snapshot])
        await repository.upsert_snapshots([snapshot])

        stored = await repository.get_snapshot("daily_sales", "2025-01-15")
        assert stored == snapshot

    @pytest.mark.asyncio
    async def test_upsert_overwrites_same_day(self, repository):
        await repository.upsert_snapshots([MetricSnapshot(name="daily_sales", date="2025-01-15", count=3, revenue=42.5)])
        await repository.upsert_snapshots([MetricSnapshot(name="daily_sales", date="2025-01-15", count=4, revenue=50.0)])

        stored = await repository.get_snapshot("daily_sales", "2025-01-15")
        assert stored.count == 4
        assert stored.revenue == 50.0


class TestOrders:
    """Tests for order history reads"""

    @pytest.mark.asyncio
    async def test_orders_between(self, repository, sample_orders, now):
        await repository.add_orders(sample_orders)

        orders = await repository.orders_between(now - timedelta(days=2, minutes=1), now)

        assert [o.order_id for o in orders] == ["ord-2", "ord-3", "ord-4", "ord-5"]
        assert orders[0].timestamp.tzinfo is not None

    @pytest.mark.asyncio
    async def test_recent_orders_newest_first(self, repository, sample_orders):
        await repository.add_orders(sample_orders)

        recent = await repository.recent_orders(2)

        assert [o.order_id for o in recent] == ["ord-5", "ord-4"]

    @pytest.mark.asyncio
    async def test_payment_method_may_be_missing(self, repository, sample_orders):
        await repository.add_orders(sample_orders)

        orders = await repository.all_orders()

        assert [o.payment_method for o in orders].count(None) == 1

    @pytest.mark.asyncio
    async def test_payment_method_totals_grouped_in_store(self, repository, sample_orders):
        await repository.add_orders(sample_orders)

        totals = await repository.payment_method_totals()

        assert list(totals) == ["credit_card", "paypal", "unknown"]
        assert (totals["credit_card"].count, totals["credit_card"].revenue) == (2, 150.5)
        assert (totals["paypal"].count, totals["paypal"].revenue) == (2, 155.0)
        assert (totals["unknown"].count, totals["unknown"].revenue) == (1, 24.5)

    @pytest.mark.asyncio
    async def test_payment_method_totals_match_in_memory_grouping(self, repository, sample_orders):
        await repository.add_orders(sample_orders)

        in_store = await repository.payment_method_totals()
        in_memory = AggregationEngine().aggregate_by_field(sample_orders, "payment_method")

        assert {k: v.model_dump() for k, v in in_store.items()} == {k: v.model_dump() for k, v in in_memory.items()}


class TestProducts:
    """Tests for product metrics"""

    @pytest.mark.asyncio
    async def test_products_keep_insertion_order(self, repository, sample_products):
        await repository.upsert_products(sample_products)

        products = await repository.products()

        assert [p.product_id for p in products] == [p.product_id for p in sample_products]

    @pytest.mark.asyncio
    async def test_category_filter_and_categories(self, repository, sample_products):
        await repository.upsert_products(sample_products)

        electronics = await repository.products("electronics")
        categories = await repository.product_categories()

        assert [p.product_id for p in electronics] == ["p-3", "p-5"]
        assert categories == ["books", "electronics", "home_garden", "sports"]

    @pytest.mark.asyncio
    async def test_top_products_ranked_in_store(self, repository, sample_products):
        await repository.upsert_products(sample_products)

        top = await repository.top_products(3)

        # 300-view tie keeps insertion order
        assert [p.product_id for p in top] == ["p-2", "p-5", "p-1"]
        assert [p.product_id for p in top] == [p.product_id for p in AggregationEngine().top_n(sample_products, "views", 3)]

    @pytest.mark.asyncio
    async def test_upsert_updates_counters_in_place(self, repository, sample_products):
        await repository.upsert_products(sample_products)
        await repository.upsert_products([ProductMetric(product_id="p-1", category="home_garden", views=999)])

        products = await repository.products()

        assert products[0].product_id == "p-1"
        assert products[0].views == 999
        assert len(products) == len(sample_products)


class TestUsers:
    """Tests for user metrics and sessions"""

    @pytest.mark.asyncio
    async def test_user_counts(self, repository, sample_users, now):
        await repository.upsert_users(sample_users)

        assert await repository.count_users() == 4
        assert await repository.count_users_since(now - timedelta(hours=24)) == 1
        # more than one viewed product
        assert await repository.count_returning_users() == 2

    @pytest.mark.asyncio
    async def test_first_seen_is_not_overwritten(self, repository, sample_users, now):
        await repository.upsert_users(sample_users)
        await repository.upsert_users([UserMetric(user_id="u-1", total_spent=900.0, first_seen=now)])

        users = {u.user_id: u for u in await repository.users()}

        assert users["u-1"].total_spent == 900.0
        assert users["u-1"].first_seen == now - timedelta(days=30)

    @pytest.mark.asyncio
    async def test_spend_and_viewed_products_only_grow(self, repository, sample_users, now):
        await repository.upsert_users(sample_users)
        await repository.upsert_users([
            UserMetric(user_id="u-1", total_spent=10.0, first_seen=now, viewed_products=["p-3"]),
        ])

        users = {u.user_id: u for u in await repository.users()}

        assert users["u-1"].total_spent == 500.0
        assert users["u-1"].viewed_products == ["p-1", "p-2", "p-3"]

    @pytest.mark.asyncio
    async def test_repeated_user_in_one_batch(self, repository, now):
        await repository.upsert_users([
            UserMetric(user_id="u-9", total_spent=40.0, first_seen=now, viewed_products=["p-1"]),
            UserMetric(user_id="u-9", total_spent=25.0, first_seen=now, viewed_products=["p-2", "p-1"]),
        ])

        users = await repository.users()

        assert len(users) == 1
        assert users[0].total_spent == 40.0
        assert users[0].viewed_products == ["p-1", "p-2"]

    @pytest.mark.asyncio
    async def test_active_sessions(self, repository, now):
        await repository.upsert_sessions([
            SessionRecord(session_id="s-1", last_active=now - timedelta(minutes=5)),
            SessionRecord(session_id="s-2", last_active=now - timedelta(minutes=29)),
            SessionRecord(session_id="s-3", last_active=now - timedelta(hours=2)),
        ])

        assert await repository.count_active_sessions(now - timedelta(minutes=30)) == 2

    @pytest.mark.asyncio
    async def test_last_active_never_moves_back(self, repository, now):
        await repository.upsert_sessions([SessionRecord(session_id="s-1", last_active=now - timedelta(minutes=5))])
        await repository.upsert_sessions([SessionRecord(session_id="s-1", last_active=now - timedelta(hours=2))])

        assert await repository.count_active_sessions(now - timedelta(minutes=30)) == 1

        await repository.upsert_sessions([SessionRecord(session_id="s-1", last_active=now - timedelta(hours=1))])
        await repository.upsert_sessions([SessionRecord(session_id="s-1", last_active=now - timedelta(minutes=1))])

        assert await repository.count_active_sessions(now - timedelta(minutes=2)) == 1


class TestSearch:
    """Tests for search statistics"""

    @pytest.mark.asyncio
    async def test_zero_result_searches_grouped_by_query(self, repository, sample_searches):
        await repository.add_search_events(sample_searches)

        zero = await repository.zero_result_searches(10)

        assert [(z.query, z.count) for z in zero] == [("hoverboard", 2), ("usb hub", 1)]

    @pytest.mark.asyncio
    async def test_zero_result_limit(self, repository, sample_searches):
        await repository.add_search_events(sample_searches)
        assert len(await repository.zero_result_searches(1)) == 1

    @pytest.mark.asyncio
    async def test_search_terms(self, repository):
        await repository.upsert_search_terms([SearchTerm(query="lamp", count=3), SearchTerm(query="desk", count=8)])
        await repository.upsert_search_terms([SearchTerm(query="lamp", count=4)])

        terms = await repository.search_terms()

        assert [(t.query, t.count) for t in terms] == [("lamp", 4), ("desk", 8)]


class TestRealtimeSamples:
    """Tests for the real-time sample store"""

    @pytest.mark.asyncio
    async def test_last_write_wins_without_duplicates(self, repository):
        first = RealtimeSample(timestamp="2025-01-15T11:30:12Z", metric_name="page_views", value=10)
        second = RealtimeSample(timestamp="2025-01-15T11:30:48Z", metric_name="page_views", value=12)

        await repository.upsert_realtime_samples([first])
        await repository.upsert_realtime_samples([second])
        await repository.upsert_realtime_samples([second])

        samples = await repository.realtime_samples_since("2025-01-15T11:00")
        assert len(samples) == 1
        assert samples[0].timestamp == "2025-01-15T11:30"
        assert samples[0].value == 12

    @pytest.mark.asyncio
    async def test_duplicates_within_one_batch(self, repository):
        written = await repository.upsert_realtime_samples([
            RealtimeSample(timestamp="2025-01-15T11:30", metric_name="orders", value=1),
            RealtimeSample(timestamp="2025-01-15T11:30", metric_name="orders", value=2),
        ])

        samples = await repository.realtime_samples_since("2025-01-15T11:00")
        assert written == 1
        assert [s.value for s in samples] == [2]

    @pytest.mark.asyncio
    async def test_since_filters_and_orders(self, repository):
        await repository.upsert_realtime_samples([
            RealtimeSample(timestamp="2025-01-15T11:45", metric_name="orders", value=3),
            RealtimeSample(timestamp="2025-01-15T10:15", metric_name="orders", value=1),
            RealtimeSample(timestamp="2025-01-15T11:05", metric_name="orders", value=2),
        ])

        samples = await repository.realtime_samples_since("2025-01-15T11:00")

        assert [s.timestamp for s in samples] == ["2025-01-15T11:05", "2025-01-15T11:45"]


class TestStorageFailures:
    """Storage errors surface as StorageUnavailable"""

    @pytest.mark.asyncio
    async def test_query_failure(self, repository, database):
        async with database.engine.begin() as conn:
            await conn.execute(text("DROP TABLE orders"))

        with pytest.raises(StorageUnavailable) as exc_info:
            await repository.all_orders()

        assert exc_info.value.operation == "all_orders"
        assert str(exc_info.value) == "Storage operation 'all_orders' failed"

    @pytest.mark.asyncio
    async def test_unreachable_store(self, tmp_path):
        database = Database(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'metrics.db'}")

        with pytest.raises(StorageUnavailable):
            await database.connect()
        assert not database.is_connected

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, database):
        await database.close()
        await database.close()
        assert not database.is_connected
