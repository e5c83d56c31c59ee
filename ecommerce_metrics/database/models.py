"""
Database Models - Metric Store

Collections backing the analytics service:

Raw events (append-only):
- Order: individual orders
- SearchEvent: individual search executions

Aggregates (a cache of a deterministic replay of the raw events):
- MetricSnapshot: named daily metrics (daily_page_views, daily_sales)
- ProductAnalytics: per-product view/cart counters
- UserAnalytics: per-user spend and viewed products
- SearchTermStat: per-query search counts

Live state:
- UserSession: last activity per browsing session
- RealtimeMetric: minute-level samples written by the stream ingestor

Every table carries an auto-increment ``id`` recording insertion order, which
ranking queries use as the tie-breaker.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    JSON,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


# =============================================================================
# RAW EVENTS
# =============================================================================

class Order(Base):
    """Order transaction. Never mutated after insert."""
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[Optional[str]] = mapped_column(String(64), unique=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    total: Mapped[Optional[float]] = mapped_column(Float, default=0)
    items: Mapped[Optional[int]] = mapped_column(Integer, default=0)
    payment_method: Mapped[Optional[str]] = mapped_column(String(50))

    __table_args__ = (
        Index("ix_orders_timestamp", "timestamp"),
        Index("ix_orders_payment_method", "payment_method"),
    )


class SearchEvent(Base):
    """A single executed search and how many results it returned"""
    __tablename__ = "searches"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    query: Mapped[str] = mapped_column(String(255), nullable=False)
    results: Mapped[int] = mapped_column(Integer, default=0)
    timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        Index("ix_searches_results", "results"),
    )


# =============================================================================
# AGGREGATES
# =============================================================================

class MetricSnapshot(Base):
    """
    Named daily metric.

    One row per (name, date). Past days are immutable; the current day is
    upserted as new events arrive.
    """
    __tablename__ = "metrics"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    date: Mapped[str] = mapped_column(String(10), nullable=False)  # YYYY-MM-DD
    count: Mapped[int] = mapped_column(Integer, default=0)
    revenue: Mapped[float] = mapped_column(Float, default=0)

    __table_args__ = (
        UniqueConstraint("name", "date", name="uq_metrics_name_date"),
    )


class ProductAnalytics(Base):
    """Per-product engagement counters"""
    __tablename__ = "product_analytics"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(255))
    category: Mapped[Optional[str]] = mapped_column(String(100))
    views: Mapped[int] = mapped_column(Integer, default=0)
    cart_adds: Mapped[int] = mapped_column(Integer, default=0)
    view_to_cart_rate: Mapped[float] = mapped_column(Float, default=0)
    price: Mapped[float] = mapped_column(Float, default=0)

    __table_args__ = (
        Index("ix_product_analytics_category", "category"),
    )


class UserAnalytics(Base):
    """Per-user spend. first_seen is immutable; the rest only grows."""
    __tablename__ = "user_analytics"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    total_spent: Mapped[float] = mapped_column(Float, default=0)
    first_seen: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    viewed_products: Mapped[List[str]] = mapped_column(JSON, default=list)

    __table_args__ = (
        Index("ix_user_analytics_first_seen", "first_seen"),
    )


class SearchTermStat(Base):
    """Per-query search count"""
    __tablename__ = "search_analytics"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    query: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    count: Mapped[int] = mapped_column(Integer, default=0)


# =============================================================================
# LIVE STATE
# =============================================================================

class UserSession(Base):
    """Browsing session; last_active only moves forward"""
    __tablename__ = "sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    last_active: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        Index("ix_sessions_last_active", "last_active"),
    )


class RealtimeMetric(Base):
    """Minute-level metric sample. Identity is (timestamp, metric_name)."""
    __tablename__ = "real_time_metrics"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    timestamp: Mapped[str] = mapped_column(String(16), nullable=False)  # YYYY-MM-DDTHH:MM
    metric_name: Mapped[str] = mapped_column(String(100), nullable=False)
    value: Mapped[float] = mapped_column(Float, default=0)

    __table_args__ = (
        UniqueConstraint("timestamp", "metric_name", name="uq_real_time_metrics_minute_name"),
        Index("ix_real_time_metrics_timestamp", "timestamp"),
    )
