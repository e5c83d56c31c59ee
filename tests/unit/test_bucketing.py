"""
Unit Tests - Time Bucketing
"""
from datetime import datetime, timedelta, timezone

import pytest

from ecommerce_metrics.analytics.bucketing import Granularity, TimeBucketer
from ecommerce_metrics.exceptions import InvalidArgument


class TestBucketKey:
    """Tests for TimeBucketer.bucket_key"""

    def test_keys_per_granularity(self):
        bucketer = TimeBucketer()
        ts = datetime(2025, 1, 15, 9, 42, 17, tzinfo=timezone.utc)

        assert bucketer.bucket_key(ts, "hour") == "2025-01-15T09:00"
        assert bucketer.bucket_key(ts, "day") == "2025-01-15"
        assert bucketer.bucket_key(ts, "week") == "2025-W03"
        assert bucketer.bucket_key(ts, "month") == "2025-01"

    def test_week_key_uses_iso_year_at_year_boundary(self):
        """2021-01-01 belongs to ISO week 53 of 2020"""
        bucketer = TimeBucketer()

        assert bucketer.bucket_key(datetime(2021, 1, 1, tzinfo=timezone.utc), "week") == "2020-W53"
        assert bucketer.bucket_key(datetime(2024, 12, 30, tzinfo=timezone.utc), "week") == "2025-W01"

    def test_week_keys_sort_chronologically(self):
        bucketer = TimeBucketer()
        start = datetime(2020, 11, 2, tzinfo=timezone.utc)
        days = [start + timedelta(days=7 * i) for i in range(20)]

        keys = [bucketer.bucket_key(d, "week") for d in days]

        assert keys == sorted(keys)
        assert len(set(keys)) == len(keys)

    def test_week_number_is_zero_padded(self):
        bucketer = TimeBucketer()
        assert bucketer.bucket_key(datetime(2025, 2, 3, tzinfo=timezone.utc), "week") == "2025-W06"

    def test_naive_timestamp_is_utc(self):
        bucketer = TimeBucketer()
        assert bucketer.bucket_key(datetime(2025, 1, 15, 23, 30), "day") == "2025-01-15"

    def test_offset_timestamp_is_converted_to_utc(self):
        bucketer = TimeBucketer()
        eastern = timezone(timedelta(hours=-5))
        ts = datetime(2025, 1, 15, 23, 30, tzinfo=eastern)

        assert bucketer.bucket_key(ts, "day") == "2025-01-16"
        assert bucketer.bucket_key(ts, "hour") == "2025-01-16T04:00"


class TestLookback:
    """Tests for lookback windows"""

    @pytest.mark.parametrize(
        "granularity, expected",
        [
            ("hour", timedelta(hours=24)),
            ("day", timedelta(days=30)),
            ("week", timedelta(days=84)),
            ("month", timedelta(days=360)),
        ],
    )
    def test_lookback_start(self, now, granularity, expected):
        assert TimeBucketer().lookback_start(now, granularity) == now - expected

    def test_window_ends_at_now(self, now):
        start, end = TimeBucketer().window("day", now)
        assert end == now
        assert start == now - timedelta(days=30)


class TestGranularity:
    """Tests for granularity parsing"""

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("hourly", Granularity.HOUR),
            ("daily", Granularity.DAY),
            ("weekly", Granularity.WEEK),
            ("monthly", Granularity.MONTH),
            ("Week", Granularity.WEEK),
            (Granularity.MONTH, Granularity.MONTH),
        ],
    )
    def test_aliases(self, value, expected):
        assert Granularity.parse(value) is expected

    @pytest.mark.parametrize("value", ["yearly", "", None, "minute"])
    def test_invalid_granularity(self, value):
        with pytest.raises(InvalidArgument) as exc_info:
            Granularity.parse(value)
        assert exc_info.value.parameter == "period"
