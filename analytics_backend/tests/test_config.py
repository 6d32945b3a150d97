"""
Tests for the pydantic-settings configuration layer.
"""

import pytest
from pydantic import ValidationError

from analytics_backend.config import Environment, EngineConfig, Settings


class TestSettings:

    def test_engine_defaults(self):
        config = EngineConfig()

        assert config.model_name == "demo-model-v1"
        assert config.default_target_language == "es"
        assert config.default_max_tokens == 100
        assert config.anomaly_threshold == 0.5
        assert config.max_analysis_batch == 10
        assert config.max_prediction_batch == 20

    def test_nested_environment_override(self, monkeypatch):
        monkeypatch.setenv("ENGINE__MAX_ANALYSIS_BATCH", "5")
        monkeypatch.setenv("ENVIRONMENT", "staging")

        settings = Settings()

        assert settings.engine.max_analysis_batch == 5
        assert settings.environment == Environment.STAGING

    def test_testing_flag_from_environment(self):
        # conftest exports TESTING=true before the app is imported
        assert Settings().is_testing

    def test_debug_rejected_in_production(self):
        with pytest.raises(ValidationError, match="DEBUG mode must be disabled"):
            Settings(environment="production", debug=True)

    def test_debug_rejected_in_production_from_environment(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "production")
        monkeypatch.setenv("DEBUG", "true")

        with pytest.raises(ValidationError, match="DEBUG mode must be disabled"):
            Settings()

    def test_debug_rejected_when_switching_to_production(self):
        settings = Settings(debug=True)

        with pytest.raises(ValidationError):
            settings.environment = Environment.PRODUCTION

    def test_production_without_debug(self):
        settings = Settings(environment="production", database={"url": "postgresql://db/analytics"})

        assert settings.is_production
        assert settings.get_environment_info()["database_dialect"] == "postgresql"

    def test_invalid_threshold(self):
        with pytest.raises(ValidationError):
            EngineConfig(anomaly_threshold=1.5)

    def test_environment_info(self, test_settings):
        info = test_settings.get_environment_info()

        assert info["environment"] == "testing"
        assert info["database_dialect"] == "sqlite"
        assert info["batch_limits"] == {"analysis": 10, "prediction": 20}
