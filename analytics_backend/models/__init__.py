"""
Analytics Backend Models Package

Pydantic value objects shared by the engines and the API, and the
SQLAlchemy result store.

Components:
- schemas.py: request/result value objects, batch reports, API envelopes
- database.py: AnalysisRecord / PredictionRecord, DatabaseManager, ResultStore

Usage:
    from analytics_backend.models import AnalysisRequest, ResultStore
"""

import logging

from .database import (
    AnalysisRecord, Base, DatabaseManager, PredictionRecord, ResultStore,
    get_database_manager, get_db_session,
)
from .schemas import (
    AnalysisKind, AnalysisOptions, AnalysisRequest, AnalysisResult,
    BatchOutcome, BatchReport, BatchSummary,
    ModelKind, PredictionOptions, PredictionRequest, PredictionResult,
    StatisticsOp, StatisticsRequest,
)

logger = logging.getLogger(__name__)

__all__ = [
    "AnalysisKind", "AnalysisOptions", "AnalysisRequest", "AnalysisResult",
    "ModelKind", "PredictionOptions", "PredictionRequest", "PredictionResult",
    "BatchOutcome", "BatchReport", "BatchSummary",
    "StatisticsOp", "StatisticsRequest",
    "Base", "AnalysisRecord", "PredictionRecord", "DatabaseManager", "ResultStore",
    "get_database_manager", "get_db_session",
]
