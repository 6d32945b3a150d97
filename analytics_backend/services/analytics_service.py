"""
Analytics Service for the Analytics Backend

Facade over the heuristic engines that the API layer (or any other glue)
calls into:

- analyze / batch_analyze: text analysis through TextAnalysisEngine
- predict / batch_predict: feature scoring through PredictiveModelEngine
- aggregate: statistics over caller supplied samples
- get_model_metrics: static evaluation sheet per model kind

Single operations propagate their errors. Batch operations validate the
batch size up front, then capture per-item failures in the returned report.
Batch items may be raw mappings; each one is validated into its request
model inside the worker so a malformed item fails on its own.
"""

import logging
from datetime import datetime, timezone
from functools import lru_cache
from threading import RLock
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import numpy as np

from ..config import Settings, get_settings
from ..exceptions import InvalidBatchSizeError, UnsupportedKindError
from ..ml.predictive_models import PredictiveModelEngine
from ..ml.text_models import TextAnalysisEngine
from ..models.schemas import (
    AnalysisKind, AnalysisRequest, AnalysisResult, BatchReport, ModelKind,
    PredictionRequest, PredictionResult, StatisticsOp, StatisticsRequest,
)
from ..utils import statistics
from ..utils.monitoring import Clock, SystemClock, record_analysis, record_batch, record_prediction
from .batch_service import BatchCoordinator

logger = logging.getLogger(__name__)

AggregateValue = Union[float, List[int], statistics.TrendReport]


def _metric_label(kind: Any, kinds: type) -> str:
    # Unknown kinds share one label to bound metric cardinality.
    values = {member.value for member in kinds}
    return kind if kind in values else "unsupported"


class AnalyticsService:
    """Text analysis, prediction and statistics operations."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
        rng: Optional[np.random.Generator] = None,
        coordinator: Optional[BatchCoordinator] = None
    ):
        self.settings = settings or get_settings()
        self.clock = clock or SystemClock()

        engine_config = self.settings.engine
        self.text_engine = TextAnalysisEngine(config=engine_config, clock=self.clock)
        self.predictive_engine = PredictiveModelEngine(config=engine_config, rng=rng)
        self.coordinator = coordinator or BatchCoordinator(max_workers=engine_config.batch_workers)

        self.service_stats = {
            'total_analyses': 0,
            'total_predictions': 0,
            'failed_operations': 0,
            'service_start_time': self.clock.now(),
        }
        self._stats_lock = RLock()

        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")
        self.logger.info("AnalyticsService initialized")

    def _count(self, key: str) -> None:
        with self._stats_lock:
            self.service_stats[key] += 1

    @staticmethod
    def _check_batch_size(items: Sequence[Any], max_items: int) -> None:
        if not isinstance(items, (list, tuple)):
            raise InvalidBatchSizeError(0, max_items)
        if len(items) == 0 or len(items) > max_items:
            raise InvalidBatchSizeError(len(items), max_items)

    # =========================================================================
    # TEXT ANALYSIS
    # =========================================================================

    def analyze(self, request: Union[AnalysisRequest, Mapping[str, Any]]) -> AnalysisResult:
        """
        Analyse one text.

        Raises:
            UnsupportedKindError: Unknown analysis kind
            pydantic.ValidationError: A raw mapping that is not a valid request
        """
        if not isinstance(request, AnalysisRequest):
            request = AnalysisRequest.model_validate(request)

        try:
            result = self.text_engine.process(request)
        except Exception:
            self._count('failed_operations')
            record_analysis(_metric_label(request.kind, AnalysisKind), success=False)
            raise

        self._count('total_analyses')
        record_analysis(result.kind.value)
        return result

    async def batch_analyze(
        self,
        requests: Sequence[Any],
        max_items: Optional[int] = None
    ) -> BatchReport:
        """Analyse up to ``max_items`` texts concurrently (default from settings)."""
        max_items = max_items or self.settings.engine.max_analysis_batch
        self._check_batch_size(requests, max_items)
        record_batch("analysis", len(requests))

        return await self.coordinator.run(self.analyze, requests, label="analysis")

    # =========================================================================
    # PREDICTION
    # =========================================================================

    def predict(self, request: Union[PredictionRequest, Mapping[str, Any]]) -> PredictionResult:
        """
        Score one feature vector.

        Raises:
            UnsupportedKindError: Unknown model kind
            EntityFaultError: Empty or non-finite feature vector
        """
        if not isinstance(request, PredictionRequest):
            request = PredictionRequest.model_validate(request)

        try:
            result = self.predictive_engine.make_prediction(request)
        except Exception:
            self._count('failed_operations')
            record_prediction(_metric_label(request.kind, ModelKind), success=False)
            raise

        self._count('total_predictions')
        record_prediction(result.model_info["type"])
        return result

    async def batch_predict(
        self,
        requests: Sequence[Any],
        max_items: Optional[int] = None
    ) -> BatchReport:
        """Score up to ``max_items`` feature vectors concurrently (default from settings)."""
        max_items = max_items or self.settings.engine.max_prediction_batch
        self._check_batch_size(requests, max_items)
        record_batch("prediction", len(requests))

        return await self.coordinator.run(self.predict, requests, label="prediction")

    def get_model_metrics(self, kind: Union[str, ModelKind]) -> Dict[str, Any]:
        return self.predictive_engine.get_model_metrics(kind)

    # =========================================================================
    # STATISTICS
    # =========================================================================

    def aggregate(self, request: Union[StatisticsRequest, Mapping[str, Any]]) -> AggregateValue:
        """
        Run one statistics aggregation.

        ``percentile`` defaults to the 95th. ``trend_direction`` compares
        ``baseline`` against ``samples`` when a baseline is given, otherwise
        it splits ``samples`` in half.
        """
        if not isinstance(request, StatisticsRequest):
            request = StatisticsRequest.model_validate(request)

        try:
            op = StatisticsOp(request.op)
        except ValueError:
            raise UnsupportedKindError(f"Unsupported statistics operation: {request.op}") from None

        if op == StatisticsOp.MEDIAN:
            return statistics.median(request.samples)
        if op == StatisticsOp.PERCENTILE:
            p = request.percentile if request.percentile is not None else statistics.DEFAULT_PERCENTILE
            return statistics.percentile(request.samples, p)
        if op == StatisticsOp.HOURLY_TREND:
            return statistics.hourly_trend(request.timestamps)
        if request.baseline is not None:
            return statistics.trend_direction(request.baseline, request.samples)
        return statistics.split_trend(request.samples)

    # =========================================================================
    # HEALTH
    # =========================================================================

    def get_service_health(self) -> Dict[str, Any]:
        """Service counters and capabilities."""
        with self._stats_lock:
            stats = dict(self.service_stats)
        uptime_seconds = (self.clock.now() - stats.pop('service_start_time')).total_seconds()

        return {
            'status': 'healthy',
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'uptime_seconds': round(uptime_seconds, 2),
            'statistics': stats,
            'capabilities': {
                'analysis_types': [kind.value for kind in AnalysisKind],
                'model_types': [kind.value for kind in ModelKind],
                'statistics_ops': [op.value for op in StatisticsOp],
                'batch_limits': {
                    'analysis': self.settings.engine.max_analysis_batch,
                    'prediction': self.settings.engine.max_prediction_batch,
                },
            },
        }

    def shutdown(self) -> None:
        self.coordinator.shutdown(wait=False)


def create_analytics_service(
    settings: Optional[Settings] = None,
    clock: Optional[Clock] = None,
    rng: Optional[np.random.Generator] = None
) -> AnalyticsService:
    """
    Factory function to create an AnalyticsService instance.

    Args:
        settings: Application settings (cached settings when omitted)
        clock: Time source for processing durations
        rng: Generator for the regression noise term

    Returns:
        Configured AnalyticsService instance
    """
    return AnalyticsService(settings=settings, clock=clock, rng=rng)


@lru_cache(maxsize=1)
def get_analytics_service() -> AnalyticsService:
    """Get the shared AnalyticsService instance for dependency injection."""
    return create_analytics_service()


__all__ = ["AnalyticsService", "create_analytics_service", "get_analytics_service"]
