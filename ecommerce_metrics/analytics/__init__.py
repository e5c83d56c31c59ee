"""
Analytics Module

Aggregation subsystem: repository, time bucketing, rollups, deltas, and the
dashboard composition built on top of them.
"""
from .aggregation import (
    AggregationEngine,
    FallbackSortField,
    SortSelection,
    ValidSortField,
    resolve_product_sort,
)
from .bucketing import Granularity, TimeBucketer
from .dashboard import DashboardComposer
from .deltas import DeltaCalculator
from .repository import MetricRepository
from .service import AnalyticsService

__all__ = [
    "AggregationEngine",
    "AnalyticsService",
    "DashboardComposer",
    "DeltaCalculator",
    "FallbackSortField",
    "Granularity",
    "MetricRepository",
    "SortSelection",
    "TimeBucketer",
    "ValidSortField",
    "resolve_product_sort",
]
