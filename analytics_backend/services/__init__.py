"""
Analytics Backend Services Package

Orchestration between the API layer and the heuristic engines:
- AnalyticsService: analyze, predict, aggregate and their batch variants
- BatchCoordinator: ordered, partial-failure tolerant fan-out on a thread pool

Usage:
    from analytics_backend.services import get_analytics_service

    @app.post("/api/ai/analyze")
    async def analyze(
        request: AnalysisRequest,
        service: AnalyticsService = Depends(get_analytics_service)
    ):
        return service.analyze(request)
"""

import logging

from .analytics_service import AnalyticsService, create_analytics_service, get_analytics_service
from .batch_service import BatchCoordinator

logger = logging.getLogger(__name__)

__all__ = [
    "AnalyticsService", "BatchCoordinator",
    "create_analytics_service", "get_analytics_service",
]
