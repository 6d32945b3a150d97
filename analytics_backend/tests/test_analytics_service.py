"""
Tests for the AnalyticsService facade.
"""

import pytest
from pydantic import ValidationError

from analytics_backend.exceptions import EntityFaultError, InvalidBatchSizeError, UnsupportedKindError
from analytics_backend.models.schemas import AnalysisRequest, PredictionRequest, StatisticsRequest
from analytics_backend.services.analytics_service import AnalyticsService, create_analytics_service
from analytics_backend.utils.statistics import TrendDirection, TrendReport


def _analysis(text="I love it", kind="sentiment"):
    return {"text": text, "kind": kind}


def _prediction(features=(1.0, 2.0, 1.5), kind="clustering"):
    return {"features": list(features), "kind": kind}


class TestSingleOperations:

    def test_analyze_accepts_request_model(self, analytics_service):
        result = analytics_service.analyze(AnalysisRequest(text="I love it", kind="sentiment"))

        assert result.payload["sentiment"] == "positive"
        assert analytics_service.service_stats["total_analyses"] == 1

    def test_analyze_accepts_mapping(self, analytics_service):
        result = analytics_service.analyze({"text": "Hello", "analysisType": "translation"})

        assert result.payload["translated_text"] == "hola"

    def test_analyze_invalid_mapping(self, analytics_service):
        with pytest.raises(ValidationError):
            analytics_service.analyze({"kind": "sentiment"})

    def test_failed_analysis_is_counted(self, analytics_service):
        with pytest.raises(UnsupportedKindError):
            analytics_service.analyze(_analysis(kind="poetry"))

        assert analytics_service.service_stats["failed_operations"] == 1
        assert analytics_service.service_stats["total_analyses"] == 0

    def test_predict(self, analytics_service):
        result = analytics_service.predict(PredictionRequest(features=[1.0, 2.0, 3.0], kind="linear_regression"))

        assert result.prediction == pytest.approx(3.5)
        assert analytics_service.service_stats["total_predictions"] == 1

    def test_predict_entity_fault(self, analytics_service):
        with pytest.raises(EntityFaultError):
            analytics_service.predict(_prediction(features=[]))

        assert analytics_service.service_stats["failed_operations"] == 1

    def test_model_metrics(self, analytics_service):
        assert analytics_service.get_model_metrics("clustering")["metrics"]["silhouette_score"] == 0.73


class TestBatchOperations:

    @pytest.mark.asyncio
    async def test_batch_analyze_mixed_outcomes(self, analytics_service):
        report = await analytics_service.batch_analyze([
            _analysis(),
            _analysis(kind="poetry"),
            {"kind": "sentiment"},
            _analysis(text="bad", kind="sentiment"),
        ])

        assert [outcome.ok for outcome in report.outcomes] == [True, False, False, True]
        assert report.outcomes[1].error_message == "Unsupported analysis type: poetry"
        assert report.outcomes[3].value.payload["sentiment"] == "negative"
        assert report.summary.successful == 2
        assert report.summary.failed == 2

    @pytest.mark.asyncio
    async def test_batch_analyze_limit(self, analytics_service):
        await analytics_service.batch_analyze([_analysis()] * 10)

        with pytest.raises(InvalidBatchSizeError) as exc_info:
            await analytics_service.batch_analyze([_analysis()] * 11)

        assert exc_info.value.size == 11
        assert exc_info.value.max_items == 10
        assert "1-10" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_batch_analyze_explicit_limit(self, analytics_service):
        with pytest.raises(InvalidBatchSizeError):
            await analytics_service.batch_analyze([_analysis()] * 3, max_items=2)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("requests", [[], None, "not a list"])
    async def test_batch_analyze_rejects_empty_or_non_list(self, analytics_service, requests):
        with pytest.raises(InvalidBatchSizeError):
            await analytics_service.batch_analyze(requests)

    @pytest.mark.asyncio
    async def test_batch_predict_entity_fault_does_not_abort(self, analytics_service):
        report = await analytics_service.batch_predict([
            _prediction(),
            _prediction(features=[]),
            _prediction(features=[10.0, 10.0, 10.0], kind="anomaly_detection"),
        ])

        assert report.outcomes[0].value.prediction == "cluster_0"
        assert report.outcomes[1].ok is False
        assert report.outcomes[2].value.prediction == "anomaly"

    @pytest.mark.asyncio
    async def test_batch_predict_limit(self, analytics_service):
        await analytics_service.batch_predict([_prediction()] * 20)

        with pytest.raises(InvalidBatchSizeError):
            await analytics_service.batch_predict([_prediction()] * 21)


class TestAggregate:

    def test_median(self, analytics_service):
        assert analytics_service.aggregate({"op": "median", "samples": [1, 2, 3, 4]}) == 2.5

    def test_percentile_default(self, analytics_service):
        assert analytics_service.aggregate({"op": "percentile", "samples": [1, 2, 3, 4, 5]}) == 5

    def test_percentile_explicit(self, analytics_service):
        request = StatisticsRequest(op="percentile", samples=[1, 2, 3, 4, 5], percentile=50)

        assert analytics_service.aggregate(request) == 3

    def test_hourly_trend(self, analytics_service):
        counts = analytics_service.aggregate({
            "op": "hourly_trend",
            "timestamps": ["2026-03-01T08:15:00", "2026-03-01T08:45:00"],
        })

        assert counts[8] == 2

    def test_trend_with_baseline(self, analytics_service):
        report = analytics_service.aggregate({"op": "trend_direction", "baseline": [10], "samples": [5]})

        assert isinstance(report, TrendReport)
        assert report.trend == TrendDirection.DECREASING

    def test_trend_splits_samples(self, analytics_service):
        report = analytics_service.aggregate({"op": "trend_direction", "samples": [1, 2, 3, 4]})

        assert report.trend == TrendDirection.INCREASING

    def test_unknown_operation(self, analytics_service):
        with pytest.raises(UnsupportedKindError, match="Unsupported statistics operation: mode"):
            analytics_service.aggregate({"op": "mode", "samples": [1]})


class TestServiceHealth:

    def test_health_reports_counters_and_limits(self, analytics_service):
        analytics_service.analyze(_analysis())
        health = analytics_service.get_service_health()

        assert health["status"] == "healthy"
        assert health["uptime_seconds"] == 0
        assert health["statistics"]["total_analyses"] == 1
        assert health["capabilities"]["batch_limits"] == {"analysis": 10, "prediction": 20}
        assert "trend_direction" in health["capabilities"]["statistics_ops"]

    def test_factory(self, test_settings, fixed_clock):
        service = create_analytics_service(settings=test_settings, clock=fixed_clock)
        try:
            assert isinstance(service, AnalyticsService)
            assert service.settings is test_settings
        finally:
            service.shutdown()
