"""
Utility Functions Package for the Analytics Backend

- statistics.py: median, percentile, hourly trend and trend direction helpers
- monitoring.py: injectable clock, Prometheus instruments, process snapshot

Usage:
    from analytics_backend.utils import median, percentile, SystemClock

    p95 = percentile(latencies, 95)

Design Principles:
- Functions are stateless and side-effect free (monitoring excepted)
- Empty input yields a documented zero value instead of raising
"""

import logging

from .monitoring import Clock, SystemClock, elapsed_ms, get_process_metrics
from .statistics import (
    TrendDirection, TrendReport, describe, group_by_field, hourly_trend,
    median, percentile, performance_summary, split_trend, trend_direction,
)

logger = logging.getLogger(__name__)

__all__ = [
    "Clock", "SystemClock", "elapsed_ms", "get_process_metrics",
    "TrendDirection", "TrendReport", "describe", "group_by_field", "hourly_trend",
    "median", "percentile", "performance_summary", "split_trend", "trend_direction",
]
