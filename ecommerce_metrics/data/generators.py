"""
Synthetic Metric Data Generator

Generates realistic analytics data for local development and demos.
Includes:
- Product engagement counters across categories
- Users with spend and browsing history
- Orders with realistic basket sizes and payment methods
- Search events, including queries that return nothing
- Sessions and daily page view counts
"""

import random
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from faker import Faker

from ecommerce_metrics.analytics.schemas import (
    MetricSnapshot,
    OrderRecord,
    ProductMetric,
    SearchEventRecord,
    SearchTerm,
    SessionRecord,
    UserMetric,
)
from ecommerce_metrics.utils.time import day_key, utc_now


# =============================================================================
# CONFIGURATION
# =============================================================================

CATEGORIES = [
    ("electronics", ["Phones", "Laptops", "Tablets", "Headphones", "Cameras"]),
    ("clothing", ["Shirts", "Pants", "Dresses", "Shoes", "Jackets"]),
    ("home_garden", ["Furniture", "Kitchen", "Bedding", "Garden", "Decor"]),
    ("sports", ["Fitness", "Outdoor", "Team Sports", "Water Sports", "Cycling"]),
    ("beauty", ["Skincare", "Makeup", "Haircare", "Fragrance", "Tools"]),
    ("books", ["Fiction", "Non-Fiction", "Educational", "Children", "Comics"]),
]

PRICE_RANGES = {
    "electronics": (50, 2000),
    "clothing": (20, 500),
    "home_garden": (30, 1000),
    "sports": (25, 800),
    "beauty": (10, 200),
    "books": (10, 50),
}

PAYMENT_METHODS = ["credit_card", "debit_card", "paypal", "apple_pay", "google_pay"]

# Basket sizes: most orders have 1-3 items
ITEM_COUNTS = [1, 2, 3, 4, 5, 6, 7, 8]
ITEM_WEIGHTS = [0.35, 0.30, 0.15, 0.10, 0.05, 0.03, 0.01, 0.01]


# =============================================================================
# GENERATORS
# =============================================================================

class ProductGenerator:
    """Generate per-product engagement counters"""

    def __init__(self, rng: random.Random, fake: Faker):
        self.rng = rng
        self.fake = fake

    def generate(self, n: int = 200) -> List[ProductMetric]:
        products = []
        for _ in range(n):
            category, subcategories = self.rng.choice(CATEGORIES)
            low, high = PRICE_RANGES[category]
            views = self.rng.randint(0, 5000)
            # roughly 2-15% of views end up in a cart
            cart_adds = int(views * self.rng.uniform(0.02, 0.15))

            products.append(ProductMetric(
                product_id=f"PROD-{uuid.UUID(int=self.rng.getrandbits(128)).hex[:10]}",
                name=f"{self.fake.word().title()} {self.rng.choice(subcategories)}",
                category=category,
                views=views,
                cart_adds=cart_adds,
                view_to_cart_rate=round(cart_adds / views, 4) if views else 0.0,
                price=round(self.rng.uniform(low, high), 2),
            ))
        return products


class UserGenerator:
    """Generate users with spend and viewed products"""

    def __init__(self, rng: random.Random, fake: Faker, product_ids: List[str]):
        self.rng = rng
        self.fake = fake
        self.product_ids = product_ids

    def generate(self, n: int = 500, now: Optional[datetime] = None) -> List[UserMetric]:
        now = now or utc_now()
        users = []
        for _ in range(n):
            # 10% signed up in the last day
            if self.rng.random() < 0.1:
                first_seen = now - timedelta(minutes=self.rng.randint(1, 24 * 60 - 1))
            else:
                first_seen = now - timedelta(days=self.rng.randint(2, 365))
            viewed = self.rng.sample(self.product_ids, k=min(len(self.product_ids), self.rng.randint(0, 6)))

            users.append(UserMetric(
                user_id=f"USER-{uuid.UUID(int=self.rng.getrandbits(128)).hex[:10]}",
                total_spent=round(self.rng.uniform(0, 5000), 2),
                first_seen=first_seen,
                viewed_products=viewed,
            ))
        return users


class OrderGenerator:
    """Generate orders spread over a trailing window"""

    def __init__(self, rng: random.Random, products: List[ProductMetric]):
        self.rng = rng
        self.prices = [p.price for p in products] or [25.0]

    def generate(self, n: int = 2000, days: int = 90, now: Optional[datetime] = None) -> List[OrderRecord]:
        now = now or utc_now()
        orders = []
        for _ in range(n):
            items = self.rng.choices(ITEM_COUNTS, weights=ITEM_WEIGHTS)[0]
            subtotal = sum(self.rng.choice(self.prices) for _ in range(items))
            tax = subtotal * self.rng.uniform(0.05, 0.10)
            shipping = 0 if subtotal > 100 else self.rng.choice([5.99, 9.99, 14.99])

            orders.append(OrderRecord(
                order_id=f"ORD-{uuid.UUID(int=self.rng.getrandbits(128)).hex[:12]}",
                timestamp=now - timedelta(seconds=self.rng.randint(0, days * 86400)),
                total=round(subtotal + tax + shipping, 2),
                items=items,
                # a few legacy orders were recorded without a payment method
                payment_method=self.rng.choice(PAYMENT_METHODS) if self.rng.random() > 0.02 else None,
            ))
        orders.sort(key=lambda o: o.timestamp)
        return orders


class SearchGenerator:
    """Generate search events and the aggregated term counts"""

    def __init__(self, rng: random.Random, fake: Faker):
        self.rng = rng
        self.fake = fake

    def generate(self, n: int = 1000, now: Optional[datetime] = None) -> List[SearchEventRecord]:
        now = now or utc_now()
        vocabulary = [self.fake.word() for _ in range(60)]
        events = []
        for _ in range(n):
            query = self.rng.choice(vocabulary)
            results = 0 if self.rng.random() < 0.08 else self.rng.randint(1, 250)
            events.append(SearchEventRecord(
                query=query,
                results=results,
                timestamp=now - timedelta(seconds=self.rng.randint(0, 30 * 86400)),
            ))
        return events

    @staticmethod
    def term_counts(events: List[SearchEventRecord]) -> List[SearchTerm]:
        counts: Dict[str, int] = {}
        for event in events:
            counts[event.query] = counts.get(event.query, 0) + 1
        return [SearchTerm(query=query, count=count) for query, count in counts.items()]


class TrafficGenerator:
    """Generate sessions and daily page view counts"""

    def __init__(self, rng: random.Random):
        self.rng = rng

    def sessions(self, n: int = 300, now: Optional[datetime] = None) -> List[SessionRecord]:
        now = now or utc_now()
        return [
            SessionRecord(
                session_id=str(uuid.UUID(int=self.rng.getrandbits(128))),
                last_active=now - timedelta(minutes=self.rng.randint(0, 180)),
            )
            for _ in range(n)
        ]

    def daily_page_views(self, days: int = 90, now: Optional[datetime] = None) -> List[MetricSnapshot]:
        now = now or utc_now()
        snapshots = []
        for offset in range(days):
            day = now - timedelta(days=offset)
            # weekends are busier
            base = 9000 if day.weekday() >= 5 else 6000
            snapshots.append(MetricSnapshot(
                name="daily_page_views",
                date=day_key(day),
                count=int(base * self.rng.uniform(0.8, 1.2)),
            ))
        return snapshots


# =============================================================================
# MAIN GENERATOR
# =============================================================================

@dataclass
class DemoDataset:
    """Everything one seeding run writes"""
    products: List[ProductMetric] = field(default_factory=list)
    users: List[UserMetric] = field(default_factory=list)
    orders: List[OrderRecord] = field(default_factory=list)
    search_events: List[SearchEventRecord] = field(default_factory=list)
    search_terms: List[SearchTerm] = field(default_factory=list)
    sessions: List[SessionRecord] = field(default_factory=list)
    page_views: List[MetricSnapshot] = field(default_factory=list)


class DataGenerator:
    """Main data generator orchestrator; the same seed yields the same dataset"""

    def __init__(self, seed: int = 42):
        self.rng = random.Random(seed)
        self.fake = Faker()
        self.fake.seed_instance(seed)

    def generate_all(
        self,
        n_products: int = 200,
        n_users: int = 500,
        n_orders: int = 2000,
        n_searches: int = 1000,
        n_sessions: int = 300,
        days: int = 90,
        now: Optional[datetime] = None,
    ) -> DemoDataset:
        now = now or utc_now()

        products = ProductGenerator(self.rng, self.fake).generate(n_products)
        product_ids = [p.product_id for p in products]
        search = SearchGenerator(self.rng, self.fake)
        search_events = search.generate(n_searches, now)
        traffic = TrafficGenerator(self.rng)

        return DemoDataset(
            products=products,
            users=UserGenerator(self.rng, self.fake, product_ids).generate(n_users, now),
            orders=OrderGenerator(self.rng, products).generate(n_orders, days, now),
            search_events=search_events,
            search_terms=search.term_counts(search_events),
            sessions=traffic.sessions(n_sessions, now),
            page_views=traffic.daily_page_views(days, now),
        )
