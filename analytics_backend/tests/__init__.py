"""
Test Package for the Analytics Backend

Test suites for the heuristic analytics backend: scoring engines, statistics
utilities, batch coordination, the service facade and the HTTP API.

Test Structure:
- Engine Tests: text analysis and predictive scorers with fixed clocks and
  zero-noise random generators
- Statistics Tests: order statistics, hourly histograms and trend reports
- Service Tests: batch size limits, per-item failure capture, aggregation dispatch
- API Tests: FastAPI endpoints against an in-memory SQLite result store
- Configuration Tests: defaults, environment overrides and validation rules

Configuration:
Fixtures are centralized in conftest.py, providing:
- FastAPI test client with dependency overrides
- In-memory database session management
- Deterministic clocks and random generators

Usage:
    # Run all tests
    pytest

    # Run specific test module
    pytest analytics_backend/tests/test_api.py

    # Run only API tests
    pytest -m api
"""
