"""
Statistics aggregation utilities for usage and performance reporting.

All functions are pure: they take ordered sequences of numeric samples (or
timestamped items) and return plain numbers, histograms or small report
objects. Empty input never raises; it yields the documented zero value.

Functions:
- median / percentile: order statistics (percentile uses the nearest-rank
  method, not interpolation)
- hourly_trend: 24 bucket histogram of items by local hour of day
- trend_direction / split_trend: period-over-period mean comparison
- describe / performance_summary / group_by_field: report building blocks
- window_start: start of a named look-back window (hour, day, week, month, year)
"""

import calendar
import logging
import math
from collections import Counter
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, tzinfo
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Union

import numpy as np

logger = logging.getLogger(__name__)

HOURS_PER_DAY = 24
STABLE_CHANGE_PERCENT = 5.0
DEFAULT_PERCENTILE = 95.0


class TrendDirection(str, Enum):
    """Classification of a period-over-period change."""
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"
    INSUFFICIENT_DATA = "insufficient_data"


@dataclass(frozen=True)
class TrendReport:
    """Outcome of comparing two consecutive windows of samples.

    ``change`` is the percent change of the second window's mean over the
    first one, rounded to 2 decimals. It is ``None`` when the first window's
    mean is zero and the ratio is undefined.
    """
    trend: TrendDirection
    change: Optional[float]
    first_period_avg: Optional[float] = None
    second_period_avg: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["trend"] = self.trend.value
        return {key: value for key, value in data.items() if value is not None or key == "change"}


# =============================================================================
# ORDER STATISTICS
# =============================================================================

def median(values: Sequence[float]) -> float:
    """Middle value of ``values``; mean of the two middle values for even lengths.

    Returns 0 for an empty sequence.
    """
    if len(values) == 0:
        return 0.0
    return float(np.median(np.asarray(values, dtype=float)))


def percentile(values: Sequence[float], p: float) -> float:
    """Nearest-rank percentile.

    The rank is ``ceil(p / 100 * n) - 1`` clamped to the valid index range,
    so ``percentile([1, 2, 3, 4, 5], 95) == 5``. Returns 0 for an empty
    sequence.
    """
    if len(values) == 0:
        return 0.0
    ordered = sorted(values)
    index = math.ceil((p / 100) * len(ordered)) - 1
    index = min(max(0, index), len(ordered) - 1)
    return float(ordered[index])


# =============================================================================
# HOURLY TREND
# =============================================================================

def _local_hour(timestamp: datetime, tz: Optional[tzinfo]) -> int:
    if timestamp.tzinfo is None:
        return timestamp.hour
    return timestamp.astimezone(tz).hour


def hourly_trend(
    items: Iterable[Any],
    key: Optional[Callable[[Any], datetime]] = None,
    tz: Optional[tzinfo] = None,
) -> List[int]:
    """Count items per hour of day.

    Args:
        items: Timestamps, or objects carrying one (see ``key``)
        key: Extracts the timestamp from an item; identity by default
        tz: Zone used for aware timestamps; the system local zone when omitted.
            Naive timestamps are taken as already local.

    Returns:
        A list of 24 counts, index 0 being midnight to 1am
    """
    counts = [0] * HOURS_PER_DAY
    for item in items:
        timestamp = key(item) if key else item
        if isinstance(timestamp, str):
            timestamp = datetime.fromisoformat(timestamp)
        counts[_local_hour(timestamp, tz)] += 1
    return counts


# =============================================================================
# TREND DIRECTION
# =============================================================================

def trend_direction(first: Sequence[float], second: Sequence[float]) -> TrendReport:
    """Compare the means of two consecutive windows.

    A change under 5% either way is ``stable``. Fewer than two samples in
    total, or an empty window, yields ``insufficient_data`` with change 0.
    """
    if len(first) + len(second) < 2 or not first or not second:
        return TrendReport(trend=TrendDirection.INSUFFICIENT_DATA, change=0.0)

    first_avg = float(np.mean(np.asarray(first, dtype=float)))
    second_avg = float(np.mean(np.asarray(second, dtype=float)))

    if first_avg == 0:
        # Percent change from zero is undefined; classify by sign only.
        if second_avg == 0:
            trend = TrendDirection.STABLE
        elif second_avg > 0:
            trend = TrendDirection.INCREASING
        else:
            trend = TrendDirection.DECREASING
        return TrendReport(
            trend=trend,
            change=0.0 if second_avg == 0 else None,
            first_period_avg=round(first_avg, 2),
            second_period_avg=round(second_avg, 2),
        )

    change = (second_avg - first_avg) / first_avg * 100
    if abs(change) < STABLE_CHANGE_PERCENT:
        trend = TrendDirection.STABLE
    elif change > 0:
        trend = TrendDirection.INCREASING
    else:
        trend = TrendDirection.DECREASING

    return TrendReport(
        trend=trend,
        change=round(change, 2),
        first_period_avg=round(first_avg, 2),
        second_period_avg=round(second_avg, 2),
    )


def split_trend(samples: Sequence[float]) -> TrendReport:
    """Period-over-period trend of an ordered series split at its midpoint."""
    middle = len(samples) // 2
    return trend_direction(list(samples[:middle]), list(samples[middle:]))


# =============================================================================
# LOOK-BACK WINDOWS
# =============================================================================

FIXED_WINDOWS = {
    "hour": timedelta(hours=1),
    "day": timedelta(days=1),
    "week": timedelta(weeks=1),
}
CALENDAR_WINDOWS = {"month": 1, "year": 12}


def _months_before(moment: datetime, months: int) -> datetime:
    month_index = moment.year * 12 + moment.month - 1 - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def window_start(now: datetime, timeframe: Union[str, Enum]) -> datetime:
    """Start of the look-back window named ``timeframe`` that ends at ``now``.

    Hour, day and week are fixed durations. Month and year step back on the
    calendar, clamping the day to the length of the target month, so the
    month before March 31 starts on the last day of February.

    Raises:
        ValueError: If the timeframe is not one of the known windows
    """
    name = timeframe.value if isinstance(timeframe, Enum) else timeframe
    if name in FIXED_WINDOWS:
        return now - FIXED_WINDOWS[name]
    if name in CALENDAR_WINDOWS:
        return _months_before(now, CALENDAR_WINDOWS[name])
    raise ValueError(f"Unknown timeframe: {name}")


# =============================================================================
# REPORT BUILDING BLOCKS
# =============================================================================

def describe(values: Sequence[float]) -> Dict[str, float]:
    """Count, mean, min, max and sum of ``values`` (all zero when empty)."""
    if len(values) == 0:
        return {"count": 0, "mean": 0.0, "min": 0.0, "max": 0.0, "sum": 0.0}
    array = np.asarray(values, dtype=float)
    return {
        "count": int(array.size),
        "mean": float(array.mean()),
        "min": float(array.min()),
        "max": float(array.max()),
        "sum": float(array.sum()),
    }


def performance_summary(values: Sequence[float]) -> Dict[str, float]:
    """Latency-style summary: average, median, p95, fastest and slowest."""
    stats = describe(values)
    return {
        "count": stats["count"],
        "average": stats["mean"],
        "median": median(values),
        "p95": percentile(values, DEFAULT_PERCENTILE),
        "fastest": stats["min"],
        "slowest": stats["max"],
    }


def group_by_field(items: Iterable[Any], field: str) -> Dict[Any, int]:
    """Count items by the value of ``field`` (mapping key or attribute)."""
    def _value(item: Any) -> Any:
        if isinstance(item, Mapping):
            return item.get(field)
        return getattr(item, field, None)

    return dict(Counter(_value(item) for item in items))


__all__ = [
    "TrendDirection", "TrendReport",
    "median", "percentile", "hourly_trend",
    "trend_direction", "split_trend",
    "describe", "performance_summary", "group_by_field", "window_start",
    "DEFAULT_PERCENTILE",
]
