"""
ANALYTICS BACKEND - CONFIGURATION SYSTEM
========================================

Type-safe configuration management built on pydantic-settings.

Key Features:
- Nested configuration models (engine, database, monitoring)
- Environment variable overrides with ``__`` as the nesting delimiter,
  e.g. ``ENGINE__MAX_ANALYSIS_BATCH=5`` or ``DATABASE__URL=sqlite:///./x.db``
- Optional ``.env`` file support
- Cached settings factory for dependency injection
"""

from __future__ import annotations

import logging
import os
from enum import Enum
from functools import lru_cache
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


# =============================================================================
# TYPE-SAFE ENUMERATIONS
# =============================================================================

class Environment(str, Enum):
    """Deployment environment types."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class LogLevel(str, Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


# =============================================================================
# CONFIGURATION MODELS
# =============================================================================

class EngineConfig(BaseModel):
    """Heuristic scoring engine configuration."""

    model_config = ConfigDict(protected_namespaces=())

    model_name: str = Field(default="demo-model-v1", description="Model label stamped on analysis results")
    model_version: str = Field(default="1.0.0", description="Version stamped on analysis and prediction results")

    # Text analysis
    default_target_language: str = Field(default="es", min_length=2, max_length=2)
    default_max_tokens: int = Field(default=100, ge=1, le=4000)

    # Predictive models
    anomaly_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    random_seed: Optional[int] = Field(
        default=None,
        description="Seed for the regression noise term; unseeded when empty"
    )

    # Batch processing
    max_analysis_batch: int = Field(default=10, ge=1, le=1000)
    max_prediction_batch: int = Field(default=20, ge=1, le=1000)
    batch_workers: int = Field(default=4, ge=1, le=64)


class DatabaseConfig(BaseModel):
    """Result persistence configuration."""

    url: str = Field(default="sqlite:///./analytics.db", description="SQLAlchemy database URL")
    echo: bool = False


class MonitoringConfig(BaseModel):
    """Observability configuration."""

    log_level: LogLevel = LogLevel.INFO
    log_format: str = Field(
        default="%(asctime)s | %(name)-20s | %(levelname)-8s | %(message)s"
    )
    enable_metrics: bool = True
    enable_request_logging: bool = True


# =============================================================================
# MAIN SETTINGS CLASS
# =============================================================================

class Settings(BaseSettings):
    """Application configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        validate_assignment=True,
        extra="ignore",
        protected_namespaces=(),
    )

    app_name: str = "Heuristic Analytics API"
    app_version: str = "1.0.0"
    app_description: str = "Text analysis, predictive scoring and usage statistics"

    environment: Environment = Environment.DEVELOPMENT
    debug: bool = False
    testing: bool = False

    host: str = Field(default="0.0.0.0", description="Server bind address")
    port: int = Field(default=8000, ge=1024, le=65535)

    engine: EngineConfig = Field(default_factory=EngineConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

    @model_validator(mode="after")
    def validate_environment_constraints(self):
        """Validate cross-field environment constraints."""
        if self.is_production and self.debug:
            raise ValueError("DEBUG mode must be disabled in production environment")
        if self.is_production and self.database.url.startswith("sqlite"):
            logger.warning("SQLite result store configured in production")
        return self

    @property
    def is_production(self) -> bool:
        return self.environment == Environment.PRODUCTION

    @property
    def is_testing(self) -> bool:
        return self.environment == Environment.TESTING or self.testing

    def get_environment_info(self) -> Dict[str, Any]:
        """Summarise the effective configuration for logs and the root endpoint."""
        return {
            "app_name": self.app_name,
            "app_version": self.app_version,
            "environment": self.environment.value,
            "debug": self.debug,
            "database_dialect": self.database.url.split(":", 1)[0],
            "metrics_enabled": self.monitoring.enable_metrics,
            "batch_limits": {
                "analysis": self.engine.max_analysis_batch,
                "prediction": self.engine.max_prediction_batch,
            },
        }


# =============================================================================
# SETTINGS FACTORY & LOGGING
# =============================================================================

@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()


def configure_logging(settings: Optional[Settings] = None) -> None:
    """Configure root logging from the monitoring settings."""
    settings = settings or get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.monitoring.log_level.value),
        format=settings.monitoring.log_format,
    )
    if os.getenv("TESTING", "").lower() == "true":
        logging.getLogger("analytics_backend").setLevel(logging.WARNING)


__all__ = [
    "Settings", "EngineConfig", "DatabaseConfig", "MonitoringConfig",
    "Environment", "LogLevel", "get_settings", "configure_logging",
]
