"""
Test Suite Configuration
"""
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, List

import pytest
import pytest_asyncio

from ecommerce_metrics.analytics.repository import MetricRepository
from ecommerce_metrics.analytics.schemas import (
    MetricSnapshot,
    OrderRecord,
    ProductMetric,
    SearchEventRecord,
    UserMetric,
)
from ecommerce_metrics.config import (
    AnalyticsSettings,
    DatabaseSettings,
    KafkaSettings,
    Settings,
)
from ecommerce_metrics.database.connection import Database


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Settings bound to a file-backed SQLite store, ingestion off"""
    return Settings(
        app_env="testing",
        database=DatabaseSettings(url=f"sqlite+aiosqlite:///{tmp_path / 'metrics.db'}"),
        kafka=KafkaSettings(enabled=False),
        analytics=AnalyticsSettings(query_timeout_seconds=5),
    )


@pytest_asyncio.fixture
async def database(test_settings) -> AsyncGenerator[Database, None]:
    """Connected test database with all tables created"""
    db = Database.from_settings(test_settings.database)
    await db.connect()
    await db.create_tables()
    yield db
    await db.close()


@pytest.fixture
def repository(database) -> MetricRepository:
    return MetricRepository(database, query_timeout=5)


@pytest.fixture
def now() -> datetime:
    """Fixed query time: Wednesday 2025-01-15 12:00 UTC"""
    return datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def sample_orders(now) -> List[OrderRecord]:
    return [
        OrderRecord(order_id="ord-1", timestamp=now - timedelta(days=40), total=80.0, items=2, payment_method="paypal"),
        OrderRecord(order_id="ord-2", timestamp=now - timedelta(days=2), total=100.0, items=1, payment_method="credit_card"),
        OrderRecord(order_id="ord-3", timestamp=now - timedelta(days=1, hours=1), total=50.5, items=3, payment_method="credit_card"),
        OrderRecord(order_id="ord-4", timestamp=now - timedelta(hours=3), total=24.5, items=1, payment_method=None),
        OrderRecord(order_id="ord-5", timestamp=now - timedelta(hours=1), total=75.0, items=2, payment_method="paypal"),
    ]


@pytest.fixture
def sample_products() -> List[ProductMetric]:
    return [
        ProductMetric(product_id="p-1", name="Desk Lamp", category="home_garden", views=120, cart_adds=6, view_to_cart_rate=0.05, price=39.99),
        ProductMetric(product_id="p-2", name="Trail Shoes", category="sports", views=300, cart_adds=45, view_to_cart_rate=0.15, price=89.0),
        ProductMetric(product_id="p-3", name="Phone Case", category="electronics", views=120, cart_adds=30, view_to_cart_rate=0.25, price=15.0),
        ProductMetric(product_id="p-4", name="Novel", category="books", views=50, cart_adds=2, view_to_cart_rate=0.04, price=12.5),
        ProductMetric(product_id="p-5", name="Headphones", category="electronics", views=300, cart_adds=9, view_to_cart_rate=0.03, price=199.0),
        ProductMetric(product_id="p-6", name="Yoga Mat", category="sports", views=10, cart_adds=1, view_to_cart_rate=0.1, price=25.0),
    ]


@pytest.fixture
def sample_users(now) -> List[UserMetric]:
    return [
        UserMetric(user_id="u-1", total_spent=500.0, first_seen=now - timedelta(days=30), viewed_products=["p-1", "p-2"]),
        UserMetric(user_id="u-2", total_spent=1500.0, first_seen=now - timedelta(hours=2), viewed_products=["p-3"]),
        UserMetric(user_id="u-3", total_spent=250.0, first_seen=now - timedelta(days=3), viewed_products=[]),
        UserMetric(user_id="u-4", total_spent=1500.0, first_seen=now - timedelta(hours=30), viewed_products=["p-1", "p-4", "p-5"]),
    ]


@pytest.fixture
def sample_searches(now) -> List[SearchEventRecord]:
    return [
        SearchEventRecord(query="usb hub", results=0, timestamp=now - timedelta(minutes=50)),
        SearchEventRecord(query="lamp", results=14, timestamp=now - timedelta(minutes=40)),
        SearchEventRecord(query="hoverboard", results=0, timestamp=now - timedelta(minutes=30)),
        SearchEventRecord(query="hoverboard", results=0, timestamp=now - timedelta(minutes=20)),
        SearchEventRecord(query="usb hub", results=3, timestamp=now - timedelta(minutes=10)),
    ]


@pytest.fixture
def day_snapshots(now) -> List[MetricSnapshot]:
    """Page views and sales for today and yesterday"""
    today = now.strftime("%Y-%m-%d")
    yesterday = (now - timedelta(days=1)).strftime("%Y-%m-%d")
    return [
        MetricSnapshot(name="daily_page_views", date=today, count=200),
        MetricSnapshot(name="daily_page_views", date=yesterday, count=150),
        MetricSnapshot(name="daily_sales", date=today, count=5, revenue=125.0),
        MetricSnapshot(name="daily_sales", date=yesterday, count=4, revenue=100.0),
    ]
