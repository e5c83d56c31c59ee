"""
Aggregation Engine

Groups raw order records into time buckets, breaks them down by a field,
replays them into daily snapshots, and ranks collections (top-N).

Records can be pydantic models, ORM rows, or plain mappings; numeric fields
that are missing or ``None`` count as zero.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, TypeVar, Union

import structlog

from ecommerce_metrics.analytics.bucketing import Granularity, TimeBucketer
from ecommerce_metrics.analytics.schemas import FieldTotals, MetricSnapshot, PeriodBucket
from ecommerce_metrics.exceptions import InvalidArgument
from ecommerce_metrics.utils.time import day_key, parse_timestamp

logger = structlog.get_logger(__name__)

T = TypeVar("T")

UNKNOWN_FIELD_VALUE = "unknown"


# =============================================================================
# SORT FIELD SELECTION
# =============================================================================

# Wire name -> attribute name
PRODUCT_SORT_FIELDS: Dict[str, str] = {
    "views": "views",
    "cartAdds": "cart_adds",
    "viewToCartRate": "view_to_cart_rate",
    "price": "price",
}
DEFAULT_PRODUCT_SORT = "views"


@dataclass(frozen=True)
class ValidSortField:
    """The requested sort field is allowed"""
    field: str
    attribute: str
    fallback: bool = False


@dataclass(frozen=True)
class FallbackSortField:
    """The requested sort field was not allowed; ranking uses the default"""
    requested: Optional[str]
    field: str = DEFAULT_PRODUCT_SORT
    attribute: str = PRODUCT_SORT_FIELDS[DEFAULT_PRODUCT_SORT]
    fallback: bool = True


SortSelection = Union[ValidSortField, FallbackSortField]


def resolve_product_sort(requested: Optional[str]) -> SortSelection:
    """
    Resolve a product sort field.

    Unknown fields fall back to ``views`` instead of failing; the result
    records whether that happened. Snake-case attribute names are accepted
    alongside the wire names.
    """
    if requested is None or requested == "":
        return ValidSortField(DEFAULT_PRODUCT_SORT, PRODUCT_SORT_FIELDS[DEFAULT_PRODUCT_SORT])

    if requested in PRODUCT_SORT_FIELDS:
        return ValidSortField(requested, PRODUCT_SORT_FIELDS[requested])

    for wire_name, attribute in PRODUCT_SORT_FIELDS.items():
        if requested == attribute:
            return ValidSortField(wire_name, attribute)

    logger.info("Unknown product sort field, falling back", requested=requested)
    return FallbackSortField(requested=requested)


# =============================================================================
# RECORD ACCESS
# =============================================================================

def _field(record: Any, name: str) -> Any:
    if isinstance(record, dict):
        return record.get(name)
    return getattr(record, name, None)


def _number(record: Any, name: str) -> float:
    value = _field(record, name)
    if value is None:
        return 0
    try:
        return value if isinstance(value, (int, float)) else float(value)
    except (TypeError, ValueError):
        return 0


def _timestamp(record: Any) -> Optional[datetime]:
    value = _field(record, "timestamp")
    if value is None:
        return None
    try:
        return parse_timestamp(value)
    except ValueError:
        return None


# =============================================================================
# ENGINE
# =============================================================================

class AggregationEngine:
    """
    Count/sum rollups and top-N rankings over raw records.

    Example:
        engine = AggregationEngine()
        buckets = engine.aggregate_by_period(orders, "week")
        methods = engine.aggregate_by_field(orders, "payment_method")
        top = engine.top_n(products, "views", 5)
    """

    def __init__(self, bucketer: Optional[TimeBucketer] = None):
        self.bucketer = bucketer or TimeBucketer()

    def aggregate_by_period(
        self,
        records: Iterable[Any],
        granularity: Union[str, Granularity],
        now: Optional[datetime] = None,
    ) -> List[PeriodBucket]:
        """
        Group records inside the lookback window into time buckets.

        Args:
            records: Order-like records with timestamp/total/items
            granularity: hour, day, week or month
            now: End of the window (defaults to the current UTC time)

        Returns:
            Buckets in ascending key order
        """
        granularity = Granularity.parse(granularity)
        start, end = self.bucketer.window(granularity, now)

        buckets: Dict[str, PeriodBucket] = {}
        skipped = 0
        for record in records:
            ts = _timestamp(record)
            if ts is None:
                skipped += 1
                continue
            if ts < start or ts > end:
                continue

            key = self.bucketer.bucket_key(ts, granularity)
            bucket = buckets.get(key)
            if bucket is None:
                bucket = buckets[key] = PeriodBucket(bucket_key=key)
            bucket.count += 1
            bucket.revenue += _number(record, "total")
            bucket.items += int(_number(record, "items"))

        if skipped:
            logger.warning("Records without a usable timestamp skipped", count=skipped)

        ordered = [buckets[key] for key in sorted(buckets)]
        for bucket in ordered:
            bucket.revenue = round(bucket.revenue, 2)
        return ordered

    def aggregate_by_field(
        self,
        records: Iterable[Any],
        field_name: str,
    ) -> Dict[str, FieldTotals]:
        """
        Count and revenue per distinct value of ``field_name`` (full history).

        Records without the field are grouped under ``"unknown"``.
        """
        totals: Dict[str, FieldTotals] = {}
        for record in records:
            value = _field(record, field_name)
            key = UNKNOWN_FIELD_VALUE if value is None else str(value)
            entry = totals.get(key)
            if entry is None:
                entry = totals[key] = FieldTotals()
            entry.count += 1
            entry.revenue += _number(record, "total")
        for entry in totals.values():
            entry.revenue = round(entry.revenue, 2)
        return totals

    def top_n(self, items: Sequence[T], sort_field: str, n: int) -> List[T]:
        """
        Rank items descending by ``sort_field`` and keep the first ``n``.

        The sort is stable: items with equal values keep the order they had
        in ``items`` (the store's insertion order).

        Raises:
            InvalidArgument: If n is negative
        """
        if n is None or n < 0:
            raise InvalidArgument("limit", n)
        # reverse=True keeps equal elements in their original order
        ranked = sorted(items, key=lambda item: _number(item, sort_field), reverse=True)
        return ranked[:n]

    def daily_snapshots(self, records: Iterable[Any], name: str) -> List[MetricSnapshot]:
        """
        Replay records into one snapshot per calendar day (UTC).

        Used to rebuild stored daily aggregates from the raw order history.
        """
        days: Dict[str, MetricSnapshot] = {}
        for record in records:
            ts = _timestamp(record)
            if ts is None:
                continue
            key = day_key(ts)
            snapshot = days.get(key)
            if snapshot is None:
                snapshot = days[key] = MetricSnapshot(name=name, date=key)
            snapshot.count += 1
            snapshot.revenue += _number(record, "total")

        ordered = [days[key] for key in sorted(days)]
        for snapshot in ordered:
            snapshot.revenue = round(snapshot.revenue, 2)
        return ordered
