"""
Analytics Schemas

Pydantic models for the records read from the metric store and the payloads
returned by the query operations. Field names are snake_case in Python and
camelCase on the wire (``cartAdds``, ``totalSpent``...), which keeps the
JSON shape the dashboard clients already consume.
"""

from datetime import datetime
from typing import Annotated, Any, Dict, List, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from ecommerce_metrics.utils.time import minute_key, to_utc


class CamelModel(BaseModel):
    """Base model serialising with camelCase aliases"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


def _zero_if_missing(value: Any) -> Any:
    return 0 if value is None else value


# Missing numeric fields are read as zero, never as a validation failure
Count = Annotated[int, BeforeValidator(_zero_if_missing), Field(ge=0)]
Amount = Annotated[float, BeforeValidator(_zero_if_missing), Field(ge=0)]


# =============================================================================
# STORED RECORDS
# =============================================================================

class MetricSnapshot(CamelModel):
    """Named, dated scalar metric used for day-over-day comparison"""
    name: str
    date: str = Field(pattern=r"^\d{4}-\d{2}-\d{2}$")
    count: Count = 0
    revenue: Amount = 0.0


class OrderRecord(CamelModel):
    """Append-only order; absent numeric fields read as zero"""
    order_id: Optional[str] = None
    timestamp: datetime
    total: Amount = 0.0
    items: Count = 0
    payment_method: Optional[str] = None

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        return to_utc(v)


class ProductMetric(CamelModel):
    """Per-product engagement counters"""
    product_id: str
    name: Optional[str] = None
    category: Optional[str] = None
    views: Count = 0
    cart_adds: Count = 0
    view_to_cart_rate: Annotated[Amount, Field(le=1)] = 0.0
    price: Amount = 0.0


class UserMetric(CamelModel):
    """Per-user spend and browsing footprint"""
    user_id: str
    total_spent: Amount = 0.0
    first_seen: datetime
    viewed_products: List[str] = Field(default_factory=list)

    @field_validator("viewed_products", mode="before")
    @classmethod
    def dedupe_viewed_products(cls, v: Any) -> List[str]:
        # a set on the wire: keep first-seen order, drop repeats
        return list(dict.fromkeys(v or []))

    @field_validator("first_seen")
    @classmethod
    def normalize_first_seen(cls, v: datetime) -> datetime:
        return to_utc(v)


class SessionRecord(CamelModel):
    session_id: str
    last_active: datetime


class SearchTerm(CamelModel):
    query: str
    count: Count = 0


class SearchEventRecord(CamelModel):
    query: str
    results: Count = 0
    timestamp: datetime


class RealtimeSample(CamelModel):
    """Minute-level sample; identity is (timestamp, metric_name)"""
    timestamp: str
    metric_name: str = Field(min_length=1)
    value: float = Field(allow_inf_nan=False)

    @field_validator("timestamp", mode="before")
    @classmethod
    def truncate_to_minute(cls, v: Any) -> str:
        return minute_key(v)


# =============================================================================
# AGGREGATION RESULTS
# =============================================================================

class PeriodBucket(CamelModel):
    """Count/sum rollup for one time bucket"""
    bucket_key: str
    count: int = 0
    revenue: float = 0.0
    items: int = 0


class FieldTotals(CamelModel):
    count: int = 0
    revenue: float = 0.0


class ZeroResultSearch(CamelModel):
    query: str
    count: int


# =============================================================================
# QUERY PAYLOADS
# =============================================================================

class PageViewSummary(CamelModel):
    today: int = 0
    yesterday: int = 0
    change: float = 0.0


class SalesFigures(CamelModel):
    count: int = 0
    revenue: float = 0.0


class SalesSummary(CamelModel):
    today: SalesFigures
    yesterday: SalesFigures
    change: float = 0.0
    count_change: float = 0.0


class UserSummary(CamelModel):
    total: int = 0
    active: int = 0


class DashboardOverview(CamelModel):
    page_views: PageViewSummary
    sales: SalesSummary
    users: UserSummary
    conversion_rate: float = 0.0
    top_products: List[ProductMetric]
    recent_orders: List[OrderRecord]


class ProductAnalyticsResponse(CamelModel):
    products: List[ProductMetric]
    categories: List[str]
    sort_field: str
    sort_fallback: bool = False


class UserAnalyticsResponse(CamelModel):
    top_users: List[UserMetric]
    new_users: int
    returning_users: int
    total_users: int


class SalesAnalyticsResponse(CamelModel):
    period: str
    sales_data: List[PeriodBucket]
    payment_methods: Dict[str, FieldTotals]


class SearchAnalyticsResponse(CamelModel):
    top_search_terms: List[SearchTerm]
    zero_result_searches: List[ZeroResultSearch]
