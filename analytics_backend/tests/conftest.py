"""
Pytest configuration and fixtures for the analytics backend.

Fixtures Provided:
- Deterministic collaborators: fixed and stepping clocks, zero-noise generator
- Settings and AnalyticsService built from them
- In-memory SQLite engine/session (StaticPool) and a ResultStore on top
- FastAPI test client with the service and database dependencies overridden

Usage:
    def test_example(client):
        response = client.post("/api/ai/analyze", json={"text": "Great", "kind": "sentiment"})
        assert response.status_code == 201

Dependencies:
- pytest / pytest-asyncio: test framework and async support
- FastAPI TestClient: API endpoint testing
- SQLAlchemy: in-memory result store
- unittest.mock: random generator stubbing
"""

import os

# Must be set before the application module builds its settings.
os.environ["TESTING"] = "true"
os.environ["DATABASE__URL"] = "sqlite:///:memory:"
os.environ["MONITORING__LOG_LEVEL"] = "WARNING"

from datetime import datetime, timezone
from typing import Generator
from unittest.mock import Mock

import numpy as np
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from analytics_backend.config import EngineConfig, Settings
from analytics_backend.main import app
from analytics_backend.ml.predictive_models import PredictiveModelEngine
from analytics_backend.ml.text_models import TextAnalysisEngine
from analytics_backend.models.database import Base, ResultStore, get_db_session
from analytics_backend.services.analytics_service import (
    AnalyticsService, create_analytics_service, get_analytics_service,
)

TEST_DATABASE_URL = "sqlite:///:memory:"
FIXED_NOW = datetime(2026, 1, 15, 12, 30, tzinfo=timezone.utc)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "api: mark test as API endpoint test")
    config.addinivalue_line("markers", "ml: mark test as heuristic engine test")
    config.addinivalue_line("markers", "integration: mark test as integration test")
    config.addinivalue_line("markers", "slow: mark test as slow running test")


# =============================================================================
# Deterministic collaborators
# =============================================================================

class FixedClock:
    """Clock whose time never moves."""

    def __init__(self, now: datetime = FIXED_NOW, monotonic: float = 100.0):
        self._now = now
        self._monotonic = monotonic

    def monotonic(self) -> float:
        return self._monotonic

    def now(self) -> datetime:
        return self._now


class SteppingClock(FixedClock):
    """Clock whose monotonic time advances by ``step`` seconds on every read."""

    def __init__(self, step: float = 0.25):
        super().__init__(monotonic=0.0)
        self.step = step

    def monotonic(self) -> float:
        self._monotonic += self.step
        return self._monotonic


@pytest.fixture
def fixed_clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def stepping_clock() -> SteppingClock:
    return SteppingClock()


@pytest.fixture
def zero_noise_rng() -> Mock:
    """Generator stub whose uniform draws are always zero."""
    rng = Mock(spec=np.random.Generator)
    rng.uniform.return_value = 0.0
    return rng


@pytest.fixture
def engine_config() -> EngineConfig:
    return EngineConfig()


@pytest.fixture
def text_engine(engine_config, fixed_clock) -> TextAnalysisEngine:
    return TextAnalysisEngine(config=engine_config, clock=fixed_clock)


@pytest.fixture
def predictive_engine(engine_config, zero_noise_rng) -> PredictiveModelEngine:
    return PredictiveModelEngine(config=engine_config, rng=zero_noise_rng)


@pytest.fixture
def test_settings() -> Settings:
    return Settings(environment="testing", database={"url": TEST_DATABASE_URL})


@pytest.fixture
def analytics_service(test_settings, fixed_clock, zero_noise_rng) -> Generator[AnalyticsService, None, None]:
    service = create_analytics_service(settings=test_settings, clock=fixed_clock, rng=zero_noise_rng)
    yield service
    service.shutdown()


# =============================================================================
# Database fixtures
# =============================================================================

@pytest.fixture
def test_engine():
    """In-memory database shared by every session of one test."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )
    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def test_db_session(test_engine) -> Generator[Session, None, None]:
    TestingSessionLocal = sessionmaker(autoflush=False, bind=test_engine, expire_on_commit=False)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def result_store(test_db_session) -> ResultStore:
    return ResultStore(test_db_session)


# =============================================================================
# FastAPI client
# =============================================================================

@pytest.fixture
def client(test_db_session, analytics_service) -> Generator[TestClient, None, None]:
    """Test client wired to the in-memory database and deterministic service."""

    def _override_get_db():
        yield test_db_session

    app.dependency_overrides[get_db_session] = _override_get_db
    app.dependency_overrides[get_analytics_service] = lambda: analytics_service

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
