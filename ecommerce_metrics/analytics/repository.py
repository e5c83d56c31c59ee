"""
Metric Repository

Typed read/write access to the metric store. Every call runs in its own
session and transaction, is bounded by the configured query timeout, and
surfaces failures as ``StorageUnavailable`` without leaking SQL text.
Concurrency control is left to the database.
"""

import asyncio
from datetime import datetime
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, TypeVar

import structlog
from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ecommerce_metrics.analytics.aggregation import UNKNOWN_FIELD_VALUE
from ecommerce_metrics.analytics.schemas import (
    FieldTotals,
    MetricSnapshot,
    OrderRecord,
    ProductMetric,
    RealtimeSample,
    SearchEventRecord,
    SearchTerm,
    SessionRecord,
    UserMetric,
    ZeroResultSearch,
)
from ecommerce_metrics.database.connection import Database
from ecommerce_metrics.database.models import (
    MetricSnapshot as MetricSnapshotRow,
    Order,
    ProductAnalytics,
    RealtimeMetric,
    SearchEvent,
    SearchTermStat,
    UserAnalytics,
    UserSession,
)
from ecommerce_metrics.exceptions import StorageUnavailable
from ecommerce_metrics.utils.time import to_naive_utc

logger = structlog.get_logger(__name__)

T = TypeVar("T")

_INSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}

# two-argument maximum; sqlite overloads max() for scalars
_GREATEST_DIALECTS = {
    "postgresql": func.greatest,
    "sqlite": func.max,
}


def _union(current: Sequence[str], incoming: Sequence[str]) -> List[str]:
    """Ordered set union: stored items first, new ones appended."""
    merged = list(current)
    seen = set(merged)
    for item in incoming:
        if item not in seen:
            seen.add(item)
            merged.append(item)
    return merged


class MetricRepository:
    """
    Repository over the metric store.

    Example:
        repository = MetricRepository(database, query_timeout=10)
        snapshot = await repository.get_snapshot("daily_sales", "2025-01-15")
    """

    def __init__(self, database: Database, query_timeout: Optional[float] = None):
        self.database = database
        self.query_timeout = query_timeout

    # -------------------------------------------------------------------------
    # plumbing
    # -------------------------------------------------------------------------

    async def _run(self, operation: str, work: Callable[[AsyncSession], Awaitable[T]]) -> T:
        try:
            async with self.database.session_factory.begin() as session:
                return await asyncio.wait_for(work(session), timeout=self.query_timeout)
        except asyncio.TimeoutError as e:
            logger.error("Storage query timed out", operation=operation, timeout=self.query_timeout)
            raise StorageUnavailable(operation, "timed out") from e
        except (SQLAlchemyError, OSError) as e:
            logger.error("Storage query failed", operation=operation, error_type=type(e).__name__)
            raise StorageUnavailable(operation) from e

    def _upsert(
        self,
        model,
        rows: List[dict],
        keys: Sequence[str],
        update: Sequence[str],
        grow: Sequence[str] = (),
    ):
        """
        INSERT ... ON CONFLICT (keys) DO UPDATE SET update = excluded.update

        Columns in ``grow`` never move backwards: they are set to the larger
        of the stored and the incoming value.
        """
        dialect = self.database.dialect_name
        if dialect not in _INSERT_DIALECTS:
            raise StorageUnavailable("upsert", f"unsupported on {dialect}")

        stmt = _INSERT_DIALECTS[dialect](model).values(rows)
        set_ = {column: stmt.excluded[column] for column in update}
        for column in grow:
            set_[column] = _GREATEST_DIALECTS[dialect](getattr(model, column), stmt.excluded[column])
        return stmt.on_conflict_do_update(index_elements=list(keys), set_=set_)

    # -------------------------------------------------------------------------
    # metric snapshots
    # -------------------------------------------------------------------------

    async def get_snapshot(self, name: str, date: str) -> Optional[MetricSnapshot]:
        async def work(session: AsyncSession):
            row = await session.scalar(
                select(MetricSnapshotRow).where(
                    MetricSnapshotRow.name == name,
                    MetricSnapshotRow.date == date,
                )
            )
            return MetricSnapshot.model_validate(row) if row is not None else None

        return await self._run("get_snapshot", work)

    async def upsert_snapshots(self, snapshots: Iterable[MetricSnapshot]) -> int:
        rows = [s.model_dump(include={"name", "date", "count", "revenue"}) for s in snapshots]
        if not rows:
            return 0

        async def work(session: AsyncSession):
            await session.execute(
                self._upsert(MetricSnapshotRow, rows, ("name", "date"), ("count", "revenue"))
            )
            return len(rows)

        return await self._run("upsert_snapshots", work)

    # -------------------------------------------------------------------------
    # orders
    # -------------------------------------------------------------------------

    async def add_orders(self, orders: Iterable[OrderRecord]) -> int:
        rows = [
            Order(
                order_id=o.order_id,
                timestamp=to_naive_utc(o.timestamp),
                total=o.total,
                items=o.items,
                payment_method=o.payment_method,
            )
            for o in orders
        ]

        async def work(session: AsyncSession):
            session.add_all(rows)
            await session.flush()
            return len(rows)

        return await self._run("add_orders", work)

    async def orders_between(self, start: datetime, end: Optional[datetime] = None) -> List[OrderRecord]:
        """Orders with start <= timestamp (<= end), oldest first."""
        async def work(session: AsyncSession):
            query = select(Order).where(Order.timestamp >= to_naive_utc(start))
            if end is not None:
                query = query.where(Order.timestamp <= to_naive_utc(end))
            rows = await session.scalars(query.order_by(Order.timestamp, Order.id))
            return [OrderRecord.model_validate(row) for row in rows]

        return await self._run("orders_between", work)

    async def all_orders(self) -> List[OrderRecord]:
        async def work(session: AsyncSession):
            rows = await session.scalars(select(Order).order_by(Order.id))
            return [OrderRecord.model_validate(row) for row in rows]

        return await self._run("all_orders", work)

    async def recent_orders(self, limit: int) -> List[OrderRecord]:
        async def work(session: AsyncSession):
            rows = await session.scalars(
                select(Order).order_by(Order.timestamp.desc(), Order.id).limit(limit)
            )
            return [OrderRecord.model_validate(row) for row in rows]

        return await self._run("recent_orders", work)

    async def payment_method_totals(self) -> Dict[str, FieldTotals]:
        """Order count and revenue per payment method over the full history."""
        async def work(session: AsyncSession):
            rows = await session.execute(
                select(Order.payment_method, func.count(), func.sum(Order.total))
                .group_by(Order.payment_method)
            )
            totals: Dict[str, FieldTotals] = {}
            for method, count, revenue in rows:
                # orders without a method share the "unknown" bucket
                key = UNKNOWN_FIELD_VALUE if method is None else method
                entry = totals.setdefault(key, FieldTotals())
                entry.count += count
                entry.revenue = round(entry.revenue + (revenue or 0), 2)
            return {key: totals[key] for key in sorted(totals)}

        return await self._run("payment_method_totals", work)

    # -------------------------------------------------------------------------
    # products
    # -------------------------------------------------------------------------

    async def upsert_products(self, products: Iterable[ProductMetric]) -> int:
        rows = [p.model_dump() for p in products]
        if not rows:
            return 0
        columns = ("name", "category", "views", "cart_adds", "view_to_cart_rate", "price")

        async def work(session: AsyncSession):
            await session.execute(self._upsert(ProductAnalytics, rows, ("product_id",), columns))
            return len(rows)

        return await self._run("upsert_products", work)

    async def products(self, category: Optional[str] = None) -> List[ProductMetric]:
        """Product metrics in insertion order, optionally for one category."""
        async def work(session: AsyncSession):
            query = select(ProductAnalytics)
            if category:
                query = query.where(ProductAnalytics.category == category)
            rows = await session.scalars(query.order_by(ProductAnalytics.id))
            return [ProductMetric.model_validate(row) for row in rows]

        return await self._run("products", work)

    async def top_products(self, limit: int) -> List[ProductMetric]:
        """Most viewed products; ties keep insertion order."""
        async def work(session: AsyncSession):
            rows = await session.scalars(
                select(ProductAnalytics)
                .order_by(ProductAnalytics.views.desc(), ProductAnalytics.id)
                .limit(limit)
            )
            return [ProductMetric.model_validate(row) for row in rows]

        return await self._run("top_products", work)

    async def product_categories(self) -> List[str]:
        async def work(session: AsyncSession):
            rows = await session.scalars(
                select(ProductAnalytics.category)
                .where(ProductAnalytics.category.is_not(None))
                .distinct()
                .order_by(ProductAnalytics.category)
            )
            return list(rows)

        return await self._run("product_categories", work)

    # -------------------------------------------------------------------------
    # users and sessions
    # -------------------------------------------------------------------------

    async def upsert_users(self, users: Iterable[UserMetric]) -> int:
        """
        Fold user metrics into the store.

        first_seen is immutable once written, total_spent keeps the larger
        value and viewed_products only gains entries.
        """
        merged: Dict[str, dict] = {}
        for u in users:
            row = merged.get(u.user_id)
            if row is None:
                merged[u.user_id] = {
                    "user_id": u.user_id,
                    "total_spent": u.total_spent,
                    "first_seen": to_naive_utc(u.first_seen),
                    "viewed_products": _union([], u.viewed_products),
                }
            else:
                row["total_spent"] = max(row["total_spent"], u.total_spent)
                row["viewed_products"] = _union(row["viewed_products"], u.viewed_products)
        if not merged:
            return 0

        async def work(session: AsyncSession):
            stored = await session.scalars(
                select(UserAnalytics)
                .where(UserAnalytics.user_id.in_(list(merged)))
                .with_for_update()
            )
            for existing in stored:
                row = merged[existing.user_id]
                row["total_spent"] = max(row["total_spent"], existing.total_spent or 0)
                row["viewed_products"] = _union(existing.viewed_products or [], row["viewed_products"])

            await session.execute(
                self._upsert(
                    UserAnalytics,
                    list(merged.values()),
                    ("user_id",),
                    ("viewed_products",),
                    grow=("total_spent",),
                )
            )
            return len(merged)

        return await self._run("upsert_users", work)

    async def users(self) -> List[UserMetric]:
        async def work(session: AsyncSession):
            rows = await session.scalars(select(UserAnalytics).order_by(UserAnalytics.id))
            return [UserMetric.model_validate(row) for row in rows]

        return await self._run("users", work)

    async def count_users(self) -> int:
        async def work(session: AsyncSession):
            return await session.scalar(select(func.count()).select_from(UserAnalytics)) or 0

        return await self._run("count_users", work)

    async def count_users_since(self, since: datetime) -> int:
        async def work(session: AsyncSession):
            return await session.scalar(
                select(func.count())
                .select_from(UserAnalytics)
                .where(UserAnalytics.first_seen >= to_naive_utc(since))
            ) or 0

        return await self._run("count_users_since", work)

    async def count_returning_users(self) -> int:
        """Users who viewed more than one product."""
        async def work(session: AsyncSession):
            return await session.scalar(
                select(func.count())
                .select_from(UserAnalytics)
                .where(func.json_array_length(UserAnalytics.viewed_products) > 1)
            ) or 0

        return await self._run("count_returning_users", work)

    async def upsert_sessions(self, sessions: Iterable[SessionRecord]) -> int:
        # last_active only advances, within the batch and against the store
        latest: Dict[str, datetime] = {}
        for s in sessions:
            last_active = to_naive_utc(s.last_active)
            if s.session_id not in latest or last_active > latest[s.session_id]:
                latest[s.session_id] = last_active
        if not latest:
            return 0
        rows = [{"session_id": sid, "last_active": ts} for sid, ts in latest.items()]

        async def work(session: AsyncSession):
            await session.execute(
                self._upsert(UserSession, rows, ("session_id",), (), grow=("last_active",))
            )
            return len(rows)

        return await self._run("upsert_sessions", work)

    async def count_active_sessions(self, since: datetime) -> int:
        async def work(session: AsyncSession):
            return await session.scalar(
                select(func.count())
                .select_from(UserSession)
                .where(UserSession.last_active >= to_naive_utc(since))
            ) or 0

        return await self._run("count_active_sessions", work)

    # -------------------------------------------------------------------------
    # search
    # -------------------------------------------------------------------------

    async def upsert_search_terms(self, terms: Iterable[SearchTerm]) -> int:
        rows = [t.model_dump() for t in terms]
        if not rows:
            return 0

        async def work(session: AsyncSession):
            await session.execute(self._upsert(SearchTermStat, rows, ("query",), ("count",)))
            return len(rows)

        return await self._run("upsert_search_terms", work)

    async def search_terms(self) -> List[SearchTerm]:
        async def work(session: AsyncSession):
            rows = await session.scalars(select(SearchTermStat).order_by(SearchTermStat.id))
            return [SearchTerm.model_validate(row) for row in rows]

        return await self._run("search_terms", work)

    async def add_search_events(self, events: Iterable[SearchEventRecord]) -> int:
        rows = [
            SearchEvent(query=e.query, results=e.results, timestamp=to_naive_utc(e.timestamp))
            for e in events
        ]

        async def work(session: AsyncSession):
            session.add_all(rows)
            await session.flush()
            return len(rows)

        return await self._run("add_search_events", work)

    async def zero_result_searches(self, limit: int) -> List[ZeroResultSearch]:
        """Queries that returned nothing, most frequent first."""
        async def work(session: AsyncSession):
            occurrences = func.count().label("occurrences")
            rows = await session.execute(
                select(SearchEvent.query, occurrences)
                .where(SearchEvent.results == 0)
                .group_by(SearchEvent.query)
                .order_by(occurrences.desc(), func.min(SearchEvent.id))
                .limit(limit)
            )
            return [ZeroResultSearch(query=row.query, count=row.occurrences) for row in rows]

        return await self._run("zero_result_searches", work)

    # -------------------------------------------------------------------------
    # real-time samples
    # -------------------------------------------------------------------------

    async def upsert_realtime_samples(self, samples: Iterable[RealtimeSample]) -> int:
        """Last write wins per (timestamp, metric_name); never a duplicate row."""
        latest = {}
        for sample in samples:
            latest[(sample.timestamp, sample.metric_name)] = sample.value
        rows = [
            {"timestamp": ts, "metric_name": name, "value": value}
            for (ts, name), value in latest.items()
        ]
        if not rows:
            return 0

        async def work(session: AsyncSession):
            await session.execute(
                self._upsert(RealtimeMetric, rows, ("timestamp", "metric_name"), ("value",))
            )
            return len(rows)

        return await self._run("upsert_realtime_samples", work)

    async def realtime_samples_since(self, minute: str) -> List[RealtimeSample]:
        async def work(session: AsyncSession):
            rows = await session.scalars(
                select(RealtimeMetric)
                .where(RealtimeMetric.timestamp >= minute)
                .order_by(RealtimeMetric.timestamp, RealtimeMetric.id)
            )
            return [RealtimeSample.model_validate(row) for row in rows]

        return await self._run("realtime_samples_since", work)
