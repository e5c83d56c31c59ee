"""
Time Bucketing

Maps timestamps onto hour/day/week/month bucket keys and computes how far
back a query for each granularity scans.

All keys are built from UTC and sort lexically in chronological order.
Week keys use the ISO calendar for both the year and the week number, so a
date such as 2021-01-01 lands in ``2020-W53`` rather than pairing the
calendar year with the previous year's week.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, Tuple, Union

from ecommerce_metrics.exceptions import InvalidArgument
from ecommerce_metrics.utils.time import to_utc, utc_now


class Granularity(str, Enum):
    """Supported bucket sizes"""
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"

    @classmethod
    def parse(cls, value: Union[str, "Granularity"]) -> "Granularity":
        """
        Resolve a granularity from its name or legacy period alias.

        Raises:
            InvalidArgument: If the value names no granularity
        """
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower() if value is not None else ""
        try:
            return _ALIASES[key]
        except KeyError:
            raise InvalidArgument("period", value, allowed=sorted(_ALIASES)) from None


_ALIASES: Dict[str, Granularity] = {
    "hour": Granularity.HOUR,
    "hourly": Granularity.HOUR,
    "day": Granularity.DAY,
    "daily": Granularity.DAY,
    "week": Granularity.WEEK,
    "weekly": Granularity.WEEK,
    "month": Granularity.MONTH,
    "monthly": Granularity.MONTH,
}

LOOKBACK: Dict[Granularity, timedelta] = {
    Granularity.HOUR: timedelta(hours=24),
    Granularity.DAY: timedelta(days=30),
    Granularity.WEEK: timedelta(days=12 * 7),
    # 12 x 30 days, not calendar months
    Granularity.MONTH: timedelta(days=12 * 30),
}


class TimeBucketer:
    """
    Bucket keys and lookback windows per granularity.

    Example:
        bucketer = TimeBucketer()
        bucketer.bucket_key(ts, "day")        # '2025-01-15'
        bucketer.lookback_start(now, "week")  # now - 84 days
    """

    def bucket_key(self, timestamp: datetime, granularity: Union[str, Granularity]) -> str:
        granularity = Granularity.parse(granularity)
        ts = to_utc(timestamp)

        if granularity is Granularity.HOUR:
            return ts.strftime("%Y-%m-%dT%H:00")
        if granularity is Granularity.DAY:
            return ts.strftime("%Y-%m-%d")
        if granularity is Granularity.WEEK:
            iso_year, iso_week, _ = ts.isocalendar()
            return f"{iso_year}-W{iso_week:02d}"
        return ts.strftime("%Y-%m")

    def lookback_start(
        self,
        now: datetime,
        granularity: Union[str, Granularity],
    ) -> datetime:
        """Earliest timestamp a query at this granularity must scan."""
        granularity = Granularity.parse(granularity)
        return to_utc(now) - LOOKBACK[granularity]

    def window(
        self,
        granularity: Union[str, Granularity],
        now: datetime = None,
    ) -> Tuple[datetime, datetime]:
        """Inclusive ``(start, end)`` scan window ending at ``now``."""
        end = to_utc(now) if now is not None else utc_now()
        return self.lookback_start(end, granularity), end
