"""
Tests for the statistics aggregation utilities.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import pytest

from analytics_backend.models.schemas import AnalyticsTimeframe, UsageTimeframe
from analytics_backend.utils.statistics import (
    TrendDirection, describe, group_by_field, hourly_trend, median,
    percentile, performance_summary, split_trend, trend_direction, window_start,
)


class TestOrderStatistics:

    def test_median_odd(self):
        assert median([3, 1, 2]) == 2

    def test_median_even(self):
        assert median([1, 2, 3, 4]) == 2.5

    def test_median_empty(self):
        assert median([]) == 0

    @pytest.mark.parametrize("p, expected", [(95, 5), (50, 3), (20, 1), (0, 1), (100, 5)])
    def test_percentile_nearest_rank(self, p, expected):
        assert percentile([5, 3, 1, 4, 2], p) == expected

    def test_percentile_empty(self):
        assert percentile([], 95) == 0

    def test_percentile_single_value(self):
        assert percentile([7.5], 99) == 7.5


class TestHourlyTrend:

    def test_counts_naive_timestamps_by_hour(self):
        day = datetime(2026, 3, 1)
        counts = hourly_trend([day, day.replace(hour=13), day.replace(hour=13, minute=59)])

        assert len(counts) == 24
        assert counts[0] == 1
        assert counts[13] == 2
        assert sum(counts) == 3

    def test_aware_timestamps_use_requested_zone(self):
        plus_two = timezone(timedelta(hours=2))
        timestamp = datetime(2026, 3, 1, 23, 30, tzinfo=timezone.utc)

        assert hourly_trend([timestamp], tz=plus_two)[1] == 1

    def test_key_and_iso_strings(self):
        items = [{"at": "2026-03-01T05:10:00"}, {"at": "2026-03-01T05:50:00"}]

        assert hourly_trend(items, key=lambda item: item["at"])[5] == 2

    def test_empty(self):
        assert hourly_trend([]) == [0] * 24


class TestTrendDirection:

    def test_increasing(self):
        report = trend_direction([10, 10], [12, 12])

        assert report.trend == TrendDirection.INCREASING
        assert report.change == 20.0
        assert report.first_period_avg == 10.0
        assert report.second_period_avg == 12.0

    def test_decreasing(self):
        report = trend_direction([10], [5])

        assert report.trend == TrendDirection.DECREASING
        assert report.change == -50.0

    def test_small_change_is_stable(self):
        report = trend_direction([10], [10.2])

        assert report.trend == TrendDirection.STABLE
        assert report.change == pytest.approx(2.0)

    def test_exactly_five_percent_is_not_stable(self):
        assert trend_direction([100], [105]).trend == TrendDirection.INCREASING

    @pytest.mark.parametrize("first, second", [([], [1.0]), ([5.0], []), ([], [])])
    def test_insufficient_data(self, first, second):
        report = trend_direction(first, second)

        assert report.trend == TrendDirection.INSUFFICIENT_DATA
        assert report.change == 0
        assert report.to_dict() == {"trend": "insufficient_data", "change": 0.0}

    def test_zero_first_window(self):
        report = trend_direction([0, 0], [1])

        assert report.trend == TrendDirection.INCREASING
        assert report.change is None
        assert report.to_dict()["change"] is None

    def test_zero_both_windows(self):
        report = trend_direction([0], [0])

        assert report.trend == TrendDirection.STABLE
        assert report.change == 0

    def test_split_trend(self):
        report = split_trend([1, 2, 3, 4])

        assert report.trend == TrendDirection.INCREASING
        assert report.change == pytest.approx(133.33)
        assert report.first_period_avg == 1.5
        assert report.second_period_avg == 3.5

    def test_split_trend_single_sample(self):
        assert split_trend([4.0]).trend == TrendDirection.INSUFFICIENT_DATA


class TestReportBuildingBlocks:

    def test_describe(self):
        assert describe([1, 2, 3]) == {"count": 3, "mean": 2.0, "min": 1.0, "max": 3.0, "sum": 6.0}

    def test_describe_empty(self):
        assert describe([])["count"] == 0

    def test_performance_summary(self):
        summary = performance_summary([10, 20, 30, 40])

        assert summary["average"] == 25.0
        assert summary["median"] == 25.0
        assert summary["p95"] == 40.0
        assert summary["fastest"] == 10.0
        assert summary["slowest"] == 40.0

    def test_group_by_field_mappings_and_objects(self):
        @dataclass
        class Item:
            kind: str

        assert group_by_field([{"kind": "a"}, {"kind": "b"}, {"kind": "a"}], "kind") == {"a": 2, "b": 1}
        assert group_by_field([Item("x"), Item("x")], "kind") == {"x": 2}


class TestWindowStart:

    NOW = datetime(2026, 3, 31, 9, 15, tzinfo=timezone.utc)

    @pytest.mark.parametrize("timeframe, delta", [
        (UsageTimeframe.HOUR, timedelta(hours=1)),
        (UsageTimeframe.DAY, timedelta(days=1)),
        ("week", timedelta(days=7)),
    ])
    def test_fixed_windows(self, timeframe, delta):
        assert window_start(self.NOW, timeframe) == self.NOW - delta

    def test_month_clamps_to_shorter_month(self):
        assert window_start(self.NOW, AnalyticsTimeframe.MONTH) == datetime(
            2026, 2, 28, 9, 15, tzinfo=timezone.utc
        )

    def test_month_crosses_year_boundary(self):
        now = datetime(2026, 1, 10, tzinfo=timezone.utc)

        assert window_start(now, "month") == datetime(2025, 12, 10, tzinfo=timezone.utc)

    def test_year_from_leap_day(self):
        now = datetime(2028, 2, 29, tzinfo=timezone.utc)

        assert window_start(now, AnalyticsTimeframe.YEAR) == datetime(2027, 2, 28, tzinfo=timezone.utc)

    def test_unknown_timeframe(self):
        with pytest.raises(ValueError, match="Unknown timeframe: decade"):
            window_start(self.NOW, "decade")
