"""
Day-over-Day Deltas

Percentage change between two snapshots and the dashboard conversion rate.

Both use the denominator floor: a zero denominator is replaced by 1, so a
jump from 0 to 7 reads as 700% rather than failing. A missing snapshot on
either side yields 0.
"""

from typing import Any, Optional


def _value(snapshot: Any, field: str) -> float:
    if isinstance(snapshot, dict):
        value = snapshot.get(field)
    else:
        value = getattr(snapshot, field, None)
    return value or 0


def floor_denominator(value: float) -> float:
    """Substitute 1 for a zero denominator."""
    return value or 1


class DeltaCalculator:
    """
    Percentage deltas between scalar snapshots.

    Example:
        deltas = DeltaCalculator()
        deltas.percent_change(today_sales, yesterday_sales, field="revenue")
    """

    def __init__(self, precision: int = 2):
        self.precision = precision

    def percent_change(
        self,
        today: Optional[Any],
        yesterday: Optional[Any],
        field: str = "count",
    ) -> float:
        """
        Percentage change of ``field`` from yesterday to today.

        Returns:
            0 if either snapshot is absent, otherwise
            ``round((today - yesterday) / floor(yesterday) * 100, precision)``
        """
        if today is None or yesterday is None:
            return 0.0
        current = _value(today, field)
        previous = _value(yesterday, field)
        return round((current - previous) / floor_denominator(previous) * 100, self.precision)

    def conversion_rate(self, sales: Optional[Any], page_views: Optional[Any]) -> float:
        """Orders per page view today, as a percentage."""
        if sales is None or page_views is None:
            return 0.0
        orders = _value(sales, "count")
        views = _value(page_views, "count")
        return round(orders / floor_denominator(views) * 100, self.precision)
