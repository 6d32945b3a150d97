"""
ANALYTICS BACKEND - PYDANTIC SCHEMAS
====================================

Pydantic v2 value objects shared by the scoring core and the API layer.

Structure:
- Enumerations of the closed kind sets (analysis, model, statistics op)
- Text analysis request/result
- Prediction request/result
- Batch outcome/report (generic over the per-item result)
- Statistics request
- Data points and their reporting windows
- API envelopes (stored results, pagination, health)

Request models accept the legacy camelCase field names (``analysisType``,
``modelType``, ``maxTokens``, ``returnProbabilities``) as validation aliases.
Request ``kind`` fields are deliberately plain strings: an unknown kind is
reported by the engine as ``UnsupportedKindError`` rather than rejected by
schema validation.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.types import NonNegativeInt, PositiveInt

T = TypeVar("T")

Confidence = Field(ge=0.0, le=1.0, description="Confidence score (0-1)")


# =============================================================================
# ENUMERATIONS
# =============================================================================

class AnalysisKind(str, Enum):
    """Text analysis kinds."""
    SENTIMENT = "sentiment"
    CLASSIFICATION = "classification"
    SUMMARIZATION = "summarization"
    TRANSLATION = "translation"
    ENTITY_EXTRACTION = "entity_extraction"


class ModelKind(str, Enum):
    """Predictive model kinds."""
    LINEAR_REGRESSION = "linear_regression"
    CLASSIFICATION = "classification"
    CLUSTERING = "clustering"
    ANOMALY_DETECTION = "anomaly_detection"


class StatisticsOp(str, Enum):
    """Statistics aggregation operations."""
    MEDIAN = "median"
    PERCENTILE = "percentile"
    HOURLY_TREND = "hourly_trend"
    TREND_DIRECTION = "trend_direction"


class AnalyticsTimeframe(str, Enum):
    """Look-back windows of the data point analytics report."""
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


class UsageTimeframe(str, Enum):
    """Look-back windows of the usage report."""
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


class ExportFormat(str, Enum):
    """Data point export formats."""
    CSV = "csv"
    JSON = "json"


# =============================================================================
# BASE SCHEMA
# =============================================================================

class BaseSchema(BaseModel):
    """Base schema: immutable value objects, no stray fields."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
        protected_namespaces=(),
    )


# =============================================================================
# TEXT ANALYSIS
# =============================================================================

class AnalysisOptions(BaseSchema):
    """Per-request analysis options."""

    language: Optional[str] = Field(
        None, min_length=2, max_length=2,
        description="Target language for translation",
        examples=["es", "fr"]
    )
    max_tokens: Optional[int] = Field(
        None, ge=1, le=4000,
        validation_alias=AliasChoices("max_tokens", "maxTokens"),
        description="Summary token budget (accepted, not used by the heuristic)"
    )
    confidence: Optional[float] = Field(
        None, ge=0.0, le=1.0,
        description="Caller's minimum confidence, recorded with the result"
    )


class AnalysisRequest(BaseSchema):
    """A single text analysis request."""

    text: str = Field(min_length=1, max_length=10000, description="Text to analyse")
    kind: str = Field(
        validation_alias=AliasChoices("kind", "analysis_type", "analysisType"),
        description="Analysis kind",
        examples=[kind.value for kind in AnalysisKind]
    )
    options: AnalysisOptions = Field(default_factory=AnalysisOptions)


class AnalysisResult(BaseSchema):
    """Wrapped result of one text analysis."""

    kind: AnalysisKind
    confidence: float = Confidence
    payload: Dict[str, Any] = Field(description="Kind-specific analyzer output")
    processing_time_ms: NonNegativeInt
    tokens_used_estimate: NonNegativeInt = Field(description="floor(len(text) / 4)")
    model: str
    version: str


# =============================================================================
# PREDICTIONS
# =============================================================================

class PredictionOptions(BaseSchema):
    """Per-request prediction options."""

    threshold: Optional[float] = Field(None, ge=0.0, le=1.0, description="Anomaly threshold")
    return_probabilities: bool = Field(
        default=False,
        validation_alias=AliasChoices("return_probabilities", "returnProbabilities"),
        description="Return class probabilities (classification only)"
    )


class PredictionRequest(BaseSchema):
    """A single prediction request over a numeric feature vector."""

    features: List[float] = Field(description="Ordered feature vector", examples=[[1.0, 2.0, 1.5]])
    kind: str = Field(
        validation_alias=AliasChoices("kind", "model_type", "modelType"),
        description="Model kind",
        examples=[kind.value for kind in ModelKind]
    )
    options: PredictionOptions = Field(default_factory=PredictionOptions)


class PredictionResult(BaseSchema):
    """Wrapped result of one prediction."""

    prediction: Union[float, str]
    confidence: float = Confidence
    probabilities: Optional[Dict[str, float]] = None
    model_info: Dict[str, Any] = Field(description="Model kind, version, accuracy and scorer metadata")
    details: Dict[str, Any] = Field(default_factory=dict, description="Scorer-specific figures")


# =============================================================================
# BATCH
# =============================================================================

class BatchOutcome(BaseModel, Generic[T]):
    """Outcome of one batch item, at its zero-based input position."""

    model_config = ConfigDict(frozen=True)

    index: NonNegativeInt
    ok: bool
    value: Optional[T] = None
    error_message: Optional[str] = None


class BatchSummary(BaseSchema):
    """Batch success/failure counts."""

    total: NonNegativeInt
    successful: NonNegativeInt
    failed: NonNegativeInt


class BatchReport(BaseModel, Generic[T]):
    """Ordered batch outcomes plus their summary."""

    model_config = ConfigDict(frozen=True)

    outcomes: List[BatchOutcome[T]]
    summary: BatchSummary


class BatchAnalysisRequest(BaseSchema):
    """Batch of raw analysis requests; each item is validated on its own."""

    requests: List[Dict[str, Any]]


class BatchPredictionRequest(BaseSchema):
    """Batch of raw prediction requests; each item is validated on its own."""

    requests: List[Dict[str, Any]]


# =============================================================================
# STATISTICS
# =============================================================================

class StatisticsRequest(BaseSchema):
    """Statistics aggregation request."""

    op: str = Field(description="Aggregation", examples=[op.value for op in StatisticsOp])
    samples: List[float] = Field(default_factory=list)
    percentile: Optional[float] = Field(None, ge=0.0, le=100.0)
    timestamps: List[datetime] = Field(default_factory=list, description="Items for hourly_trend")
    baseline: Optional[List[float]] = Field(
        None, description="First window for trend_direction; samples are split in half when omitted"
    )


class StatisticsResponse(BaseSchema):
    """Aggregation result."""

    op: StatisticsOp
    result: Any


# =============================================================================
# DATA POINTS
# =============================================================================

class DataPointCreate(BaseSchema):
    """Categorised numeric observation submitted by a caller."""

    value: float = Field(allow_inf_nan=False, description="Observed value")
    category: str = Field(min_length=1, max_length=100, description="Grouping label")
    metadata: Optional[Dict[str, Any]] = Field(None, description="Free-form attributes stored as JSON")


# =============================================================================
# API ENVELOPES
# =============================================================================

class StoredAnalysis(BaseSchema):
    """Analysis result together with the id of its persisted record."""

    id: PositiveInt
    result: AnalysisResult


class StoredPrediction(BaseSchema):
    """Prediction result together with the id of its persisted record."""

    id: PositiveInt
    result: PredictionResult


class PaginatedResponse(BaseSchema):
    """Paginated history listing."""

    items: List[Dict[str, Any]] = Field(description="Items for current page")
    total: NonNegativeInt = Field(description="Total number of items")
    page: PositiveInt = Field(description="Current page number")
    limit: PositiveInt = Field(description="Items per page")
    total_pages: NonNegativeInt = Field(description="Total number of pages")


class HealthCheckResponse(BaseSchema):
    """Health check response."""

    status: str = Field(description="Overall health")
    version: str = Field(description="Application version")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    services: Dict[str, str] = Field(description="Individual service statuses")
    process: Dict[str, Any] = Field(default_factory=dict, description="Process resource usage")


__all__ = [
    "BaseSchema",
    "AnalysisKind", "ModelKind", "StatisticsOp", "AnalyticsTimeframe", "UsageTimeframe", "ExportFormat",
    "AnalysisOptions", "AnalysisRequest", "AnalysisResult",
    "PredictionOptions", "PredictionRequest", "PredictionResult",
    "BatchOutcome", "BatchSummary", "BatchReport",
    "BatchAnalysisRequest", "BatchPredictionRequest",
    "StatisticsRequest", "StatisticsResponse", "DataPointCreate",
    "StoredAnalysis", "StoredPrediction", "PaginatedResponse", "HealthCheckResponse",
]
