"""
ANALYTICS BACKEND - MONITORING UTILITIES
========================================

Observability helpers shared by the scoring engines and the API layer.

Components:
- Clock / SystemClock: injectable time source used for processing durations
  and timestamps, so the engines are deterministic under test
- Prometheus metrics: analysis, prediction, batch and request instruments
- Process snapshot: psutil based memory/CPU/uptime figures for health checks

Dependencies:
- prometheus_client: Metrics collection
- psutil: Process information
"""

import logging
import os
import time
from datetime import datetime, timezone
from typing import Any, Dict, Protocol

import psutil
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

logger = logging.getLogger(__name__)


# =============================================================================
# CLOCK
# =============================================================================

class Clock(Protocol):
    """Time source consumed by the engines."""

    def monotonic(self) -> float:
        """Seconds from an arbitrary origin, never going backwards."""
        ...

    def now(self) -> datetime:
        """Current wall-clock time (timezone aware)."""
        ...


class SystemClock:
    """Clock backed by ``time.perf_counter`` and the system wall clock."""

    def monotonic(self) -> float:
        return time.perf_counter()

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


def elapsed_ms(clock: Clock, started: float) -> int:
    """Whole milliseconds elapsed on ``clock`` since ``started``."""
    return max(0, int((clock.monotonic() - started) * 1000))


# =============================================================================
# PROMETHEUS METRICS
# =============================================================================

ANALYSIS_COUNT = Counter(
    'analytics_text_analyses_total',
    'Total text analyses',
    ['analysis_type', 'status']
)

PREDICTION_COUNT = Counter(
    'analytics_predictions_total',
    'Total model predictions',
    ['model_type', 'status']
)

BATCH_SIZE = Histogram(
    'analytics_batch_size',
    'Number of items per batch request',
    ['operation'],
    buckets=(1, 2, 5, 10, 20, 50)
)

REQUEST_DURATION = Histogram(
    'analytics_http_request_duration_seconds',
    'Request duration in seconds',
    ['method', 'endpoint']
)


def record_analysis(analysis_type: str, success: bool = True) -> None:
    ANALYSIS_COUNT.labels(analysis_type=analysis_type, status="success" if success else "error").inc()


def record_prediction(model_type: str, success: bool = True) -> None:
    PREDICTION_COUNT.labels(model_type=model_type, status="success" if success else "error").inc()


def record_batch(operation: str, size: int) -> None:
    BATCH_SIZE.labels(operation=operation).observe(size)


def record_request(method: str, endpoint: str, duration_seconds: float) -> None:
    REQUEST_DURATION.labels(method=method, endpoint=endpoint).observe(duration_seconds)


def export_metrics() -> tuple:
    """Return the Prometheus exposition payload and its content type."""
    return generate_latest(), CONTENT_TYPE_LATEST


# =============================================================================
# PROCESS SNAPSHOT
# =============================================================================

def get_process_metrics() -> Dict[str, Any]:
    """Memory, CPU and uptime figures for the current process."""
    process = psutil.Process(os.getpid())
    with process.oneshot():
        memory = process.memory_info()
        return {
            "memory_rss_mb": round(memory.rss / 1024 / 1024, 2),
            "cpu_percent": process.cpu_percent(interval=None),
            "threads": process.num_threads(),
            "uptime_seconds": round(time.time() - process.create_time(), 2),
        }


__all__ = [
    "Clock", "SystemClock", "elapsed_ms",
    "record_analysis", "record_prediction", "record_batch", "record_request",
    "export_metrics", "get_process_metrics",
]
