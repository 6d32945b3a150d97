"""
ANALYTICS BACKEND - FASTAPI APPLICATION
=======================================

HTTP glue over the analytics core:
- Text analysis:   POST /api/ai/analyze, POST /api/ai/batch-analyze, GET /api/ai/history
- Predictions:     POST /api/ml/predict, POST /api/ml/batch-predict, GET /api/ml/history,
                   GET /api/ml/models/{model_type}/metrics
- Statistics:      POST /api/stats/aggregate, GET /api/metrics/performance,
                   GET /api/metrics/usage
- Data points:     POST /api/data/points, GET /api/data/points, GET /api/data/analytics,
                   GET /api/data/export
- Operations:      GET /, /health, /health/ready, /health/detailed, /liveness, /metrics

Every response carries an ``X-Correlation-ID`` header. Callers identify
themselves with the ``X-User-Id`` header; there is no authentication.

Routes that touch the database are plain functions, which FastAPI runs in
its thread pool. The batch routes await the engines' executor fan-out and
hand their persistence to the thread pool explicitly.
"""

import csv
import io
import json
import logging
import math
import platform
import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from functools import partial
from typing import Any, Callable, Dict, List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .config import configure_logging, get_settings
from .exceptions import AnalyticsError
from .ml import get_capabilities
from .models.database import (
    ResultStore, get_database_manager, get_db_session, record_timestamp,
)
from .models.schemas import (
    AnalysisRequest, AnalyticsTimeframe, BatchAnalysisRequest, BatchPredictionRequest, BatchReport,
    DataPointCreate, ExportFormat, HealthCheckResponse, PaginatedResponse, PredictionRequest,
    StatisticsOp, StatisticsRequest, StatisticsResponse, StoredAnalysis, StoredPrediction,
    UsageTimeframe,
)
from .services.analytics_service import AnalyticsService, get_analytics_service
from .utils import statistics
from .utils.monitoring import export_metrics, get_process_metrics, record_request

settings = get_settings()
configure_logging(settings)
logger = logging.getLogger(__name__)

ANONYMOUS_USER = "anonymous"
PERFORMANCE_WINDOW_HOURS = 24
PERFORMANCE_MAX_RECORDS = 1000
HIGH_CONFIDENCE = 0.8
LOW_CONFIDENCE = 0.5
MEMORY_WARNING_MB = 512
EXPORT_CSV_HEADER = ["id", "timestamp", "value", "category", "metadata"]


# =============================================================================
# Middleware
# =============================================================================

class MonitoringMiddleware:
    """Assigns a correlation id to each request and records its duration."""

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start_time = time.perf_counter()
        request = Request(scope, receive)

        correlation_id = str(uuid.uuid4())
        request.state.correlation_id = correlation_id

        async def send_with_correlation_id(message):
            if message["type"] == "http.response.start":
                headers = list(message.get("headers", []))
                headers.append((b"x-correlation-id", correlation_id.encode()))
                message["headers"] = headers
            await send(message)

        try:
            await self.app(scope, receive, send_with_correlation_id)
        finally:
            duration = time.perf_counter() - start_time
            route = scope.get("route")
            endpoint = getattr(route, "path", "unmatched")

            if settings.monitoring.enable_metrics:
                record_request(request.method, endpoint, duration)
            if settings.monitoring.enable_request_logging:
                logger.info(
                    f"{request.method} {endpoint} completed in {duration * 1000:.1f}ms",
                    extra={
                        "correlation_id": correlation_id,
                        "method": request.method,
                        "url": str(request.url),
                        "duration_ms": duration * 1000
                    }
                )


# =============================================================================
# Application Lifespan
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"Environment: {settings.environment.value}")

    database = get_database_manager().health_check()
    logger.info(f"Database status: {database['status']}")
    logger.info("Startup completed successfully")

    yield

    logger.info("Shutting down API server")
    if get_analytics_service.cache_info().currsize:
        get_analytics_service().shutdown()
        get_analytics_service.cache_clear()
    logger.info("Shutdown completed")


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description=settings.app_description,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

app.add_middleware(MonitoringMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Exception Handlers
# =============================================================================

def _error_response(request: Request, status_code: int, error: Any, **extra: Any) -> JSONResponse:
    content = {
        "error": error,
        "status_code": status_code,
        "correlation_id": getattr(request.state, 'correlation_id', 'unknown'),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    content.update(extra)
    return JSONResponse(status_code=status_code, content=content)


@app.exception_handler(AnalyticsError)
async def analytics_exception_handler(request: Request, exc: AnalyticsError):
    logger.warning(f"{type(exc).__name__}: {exc.message}", extra={
        "correlation_id": getattr(request.state, 'correlation_id', 'unknown'),
        "exception_type": type(exc).__name__
    })
    return _error_response(request, exc.status_code, exc.message, error_type=type(exc).__name__)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return _error_response(request, exc.status_code, exc.detail)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    details = [
        {"field": ".".join(str(part) for part in error["loc"]), "message": error["msg"]}
        for error in exc.errors()
    ]
    return _error_response(request, 422, "Validation failed", details=details)


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {str(exc)}", extra={
        "correlation_id": getattr(request.state, 'correlation_id', 'unknown'),
        "exception_type": type(exc).__name__
    })
    return _error_response(request, 500, "Internal server error")


# =============================================================================
# Dependencies
# =============================================================================

def get_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    """Opaque caller identity from the ``X-User-Id`` header."""
    return x_user_id.strip() if x_user_id and x_user_id.strip() else ANONYMOUS_USER


def get_result_store(session: Session = Depends(get_db_session)) -> ResultStore:
    return ResultStore(session)


def _paginate(items: List[Dict[str, Any]], total: int, page: int, limit: int) -> PaginatedResponse:
    return PaginatedResponse(
        items=items,
        total=total,
        page=page,
        limit=limit,
        total_pages=math.ceil(total / limit) if total else 0,
    )


def _check_database(session: Session) -> Dict[str, Any]:
    """Run ``SELECT 1`` on the request session and report status and latency."""
    start_time = time.perf_counter()
    try:
        healthy = session.execute(text("SELECT 1")).scalar() == 1
        error = None if healthy else "SELECT 1 returned an unexpected value"
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        session.rollback()
        healthy, error = False, str(e)

    return {
        "status": "healthy" if healthy else "unhealthy",
        "response_time_ms": round((time.perf_counter() - start_time) * 1000, 2),
        "error": error,
    }


def _persist_batch(
    report: BatchReport,
    raw_requests: List[Dict[str, Any]],
    parse: Callable[[Dict[str, Any]], Any],
    save: Callable[[Any, Any], Any]
) -> List[Dict[str, Any]]:
    """Store every successful outcome of a batch; failures are reported per item."""
    results = []
    for outcome in report.outcomes:
        if outcome.ok:
            record = save(parse(raw_requests[outcome.index]), outcome.value)
            results.append({
                "index": outcome.index,
                "success": True,
                "id": record.id,
                "result": outcome.value.model_dump(mode="json"),
            })
        else:
            results.append({"index": outcome.index, "success": False, "error": outcome.error_message})
    return results


# =============================================================================
# Health & Monitoring Endpoints
# =============================================================================

@app.get("/", tags=["Root"])
async def root():
    """API root endpoint."""
    return {
        "message": settings.app_name,
        "version": settings.app_version,
        "status": "operational",
        "docs": "/docs" if settings.debug else "disabled",
        "health": "/health",
        "environment": settings.get_environment_info(),
        "capabilities": get_capabilities(),
    }


@app.get("/health", response_model=HealthCheckResponse, tags=["Health"])
def health_check(
    service: AnalyticsService = Depends(get_analytics_service),
    session: Session = Depends(get_db_session)
):
    """Health check endpoint for load balancers."""
    service_health = service.get_service_health()

    services = {
        "database": _check_database(session)["status"],
        "analytics": service_health["status"],
    }
    status = "healthy" if all(value == "healthy" for value in services.values()) else "degraded"

    return HealthCheckResponse(
        status=status,
        version=__version__,
        services=services,
        process=get_process_metrics(),
    )


@app.get("/health/ready", tags=["Health"])
def readiness_check(session: Session = Depends(get_db_session)):
    """Readiness check: the service can take traffic once the database answers."""
    timestamp = datetime.now(timezone.utc).isoformat()
    if _check_database(session)["status"] != "healthy":
        return JSONResponse(
            status_code=503,
            content={"status": "not ready", "error": "Database connection failed", "timestamp": timestamp}
        )
    return {"status": "ready", "timestamp": timestamp}


@app.get("/health/detailed", tags=["Health"])
def detailed_health_check(session: Session = Depends(get_db_session)):
    """Database, memory and environment checks; 503 when any check is unhealthy."""
    start_time = time.perf_counter()
    process = get_process_metrics()

    checks = {
        "database": _check_database(session),
        "memory": {
            "status": "healthy" if process["memory_rss_mb"] < MEMORY_WARNING_MB else "warning",
            "usage": process,
        },
        "environment": {
            "status": "healthy",
            "python_version": platform.python_version(),
            "platform": platform.system().lower(),
            "arch": platform.machine(),
            "environment": settings.environment.value,
        },
    }
    healthy = all(check["status"] in ("healthy", "warning") for check in checks.values())
    if not healthy:
        logger.warning("Detailed health check failed", extra={
            "checks": {name: check["status"] for name, check in checks.items()}
        })

    content = {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime_seconds": process["uptime_seconds"],
        "version": __version__,
        "checks": checks,
        "response_time_ms": round((time.perf_counter() - start_time) * 1000, 2),
    }
    return JSONResponse(status_code=200 if healthy else 503, content=content)


@app.get("/liveness", tags=["Health"])
async def liveness_check():
    """Kubernetes liveness check."""
    return {
        "status": "alive",
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


@app.get("/metrics", tags=["Monitoring"])
async def metrics():
    """Prometheus metrics endpoint."""
    if not settings.monitoring.enable_metrics:
        raise HTTPException(status_code=404, detail="Metrics are disabled")

    payload, content_type = export_metrics()
    return Response(content=payload, media_type=content_type)


# =============================================================================
# Text Analysis Endpoints
# =============================================================================

@app.post("/api/ai/analyze", response_model=StoredAnalysis, status_code=201, tags=["AI Analysis"])
def analyze_text(
    request: AnalysisRequest,
    req: Request,
    user_id: str = Depends(get_user_id),
    service: AnalyticsService = Depends(get_analytics_service),
    store: ResultStore = Depends(get_result_store)
):
    """Analyse one text and store the result."""
    result = service.analyze(request)
    record = store.save_analysis(user_id, request, result)

    logger.info("AI analysis completed", extra={
        "correlation_id": getattr(req.state, 'correlation_id', 'unknown'),
        "user_id": user_id,
        "analysis_id": record.id,
        "analysis_type": result.kind.value,
        "processing_time_ms": result.processing_time_ms
    })
    return StoredAnalysis(id=record.id, result=result)


@app.post("/api/ai/batch-analyze", tags=["AI Analysis"])
async def batch_analyze_text(
    body: BatchAnalysisRequest,
    user_id: str = Depends(get_user_id),
    service: AnalyticsService = Depends(get_analytics_service),
    store: ResultStore = Depends(get_result_store)
):
    """Analyse up to the configured number of texts; failures are reported per item."""
    report = await service.batch_analyze(body.requests)
    results = await run_in_threadpool(
        _persist_batch, report, body.requests,
        AnalysisRequest.model_validate, partial(store.save_analysis, user_id)
    )

    logger.info("Batch AI analysis completed", extra={
        "user_id": user_id,
        "total": report.summary.total,
        "successful": report.summary.successful
    })
    return {"results": results, "summary": report.summary.model_dump()}


@app.get("/api/ai/history", response_model=PaginatedResponse, tags=["AI Analysis"])
def analysis_history(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    analysis_type: Optional[str] = Query(None, alias="analysisType"),
    user_id: str = Depends(get_user_id),
    store: ResultStore = Depends(get_result_store)
):
    """Newest-first page of the caller's analyses."""
    records, total = store.list_analyses(user_id, kind=analysis_type, page=page, limit=limit)
    return _paginate([record.to_dict(exclude_fields=["user_id"]) for record in records], total, page, limit)


# =============================================================================
# Prediction Endpoints
# =============================================================================

@app.post("/api/ml/predict", response_model=StoredPrediction, status_code=201, tags=["ML Predictions"])
def predict(
    request: PredictionRequest,
    req: Request,
    user_id: str = Depends(get_user_id),
    service: AnalyticsService = Depends(get_analytics_service),
    store: ResultStore = Depends(get_result_store)
):
    """Score one feature vector and store the result."""
    result = service.predict(request)
    record = store.save_prediction(user_id, request, result)

    logger.info("ML prediction completed", extra={
        "correlation_id": getattr(req.state, 'correlation_id', 'unknown'),
        "user_id": user_id,
        "prediction_id": record.id,
        "model_type": result.model_info["type"]
    })
    return StoredPrediction(id=record.id, result=result)


@app.post("/api/ml/batch-predict", tags=["ML Predictions"])
async def batch_predict(
    body: BatchPredictionRequest,
    user_id: str = Depends(get_user_id),
    service: AnalyticsService = Depends(get_analytics_service),
    store: ResultStore = Depends(get_result_store)
):
    """Score up to the configured number of feature vectors; failures are reported per item."""
    report = await service.batch_predict(body.requests)
    results = await run_in_threadpool(
        _persist_batch, report, body.requests,
        PredictionRequest.model_validate, partial(store.save_prediction, user_id)
    )

    logger.info("Batch ML prediction completed", extra={
        "user_id": user_id,
        "total": report.summary.total,
        "successful": report.summary.successful
    })
    return {"results": results, "summary": report.summary.model_dump()}


@app.get("/api/ml/history", response_model=PaginatedResponse, tags=["ML Predictions"])
def prediction_history(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    model_type: Optional[str] = Query(None, alias="modelType"),
    user_id: str = Depends(get_user_id),
    store: ResultStore = Depends(get_result_store)
):
    """Newest-first page of the caller's predictions."""
    records, total = store.list_predictions(user_id, kind=model_type, page=page, limit=limit)
    return _paginate([record.to_dict(exclude_fields=["user_id"]) for record in records], total, page, limit)


@app.get("/api/ml/models/{model_type}/metrics", tags=["ML Predictions"])
async def model_metrics(model_type: str, service: AnalyticsService = Depends(get_analytics_service)):
    """Static evaluation sheet of one model kind."""
    return service.get_model_metrics(model_type)


# =============================================================================
# Statistics Endpoints
# =============================================================================

@app.post("/api/stats/aggregate", response_model=StatisticsResponse, tags=["Statistics"])
async def aggregate(request: StatisticsRequest, service: AnalyticsService = Depends(get_analytics_service)):
    """Median, percentile, hourly histogram or trend over the supplied samples."""
    result = service.aggregate(request)
    if isinstance(result, statistics.TrendReport):
        result = result.to_dict()
    return StatisticsResponse(op=StatisticsOp(request.op), result=result)


@app.get("/api/metrics/performance", tags=["Statistics"])
def performance_metrics(
    hours: int = Query(PERFORMANCE_WINDOW_HOURS, ge=1, le=24 * 30),
    store: ResultStore = Depends(get_result_store)
):
    """Processing time and confidence figures over the recent window, across all callers."""
    since = datetime.now(timezone.utc) - timedelta(hours=hours)
    analyses = store.recent_analyses(since)[-PERFORMANCE_MAX_RECORDS:]
    predictions = store.recent_predictions(since)[-PERFORMANCE_MAX_RECORDS:]

    processing_times = [record.processing_time_ms for record in analyses]
    confidences = [record.confidence for record in predictions]
    confidence_stats = statistics.describe(confidences)

    return {
        "window_hours": hours,
        "ai_analysis": {
            "total_requests": len(analyses),
            "processing_time": statistics.performance_summary(processing_times),
            "processing_time_trend": statistics.split_trend(processing_times).to_dict(),
            "by_type": statistics.group_by_field(analyses, "analysis_type"),
        },
        "ml_predictions": {
            "total_predictions": len(predictions),
            "average_confidence": confidence_stats["mean"],
            "median_confidence": statistics.median(confidences),
            "high_confidence_predictions": sum(1 for value in confidences if value > HIGH_CONFIDENCE),
            "low_confidence_predictions": sum(1 for value in confidences if value < LOW_CONFIDENCE),
            "by_model": statistics.group_by_field(predictions, "model_type"),
        },
        "trends": {
            "requests_per_hour": statistics.hourly_trend(analyses, key=record_timestamp),
            "predictions_per_hour": statistics.hourly_trend(predictions, key=record_timestamp),
        },
    }


@app.get("/api/metrics/usage", tags=["Statistics"])
def usage_metrics(
    timeframe: UsageTimeframe = Query(UsageTimeframe.DAY),
    user_id: str = Depends(get_user_id),
    store: ResultStore = Depends(get_result_store)
):
    """The caller's own analysis, prediction and data point volume over the window."""
    end = datetime.now(timezone.utc)
    start = statistics.window_start(end, timeframe)

    analyses = store.recent_analyses(start, user_id=user_id)
    predictions = store.recent_predictions(start, user_id=user_id)

    return {
        "timeframe": timeframe.value,
        "period": {"start": start.isoformat(), "end": end.isoformat()},
        "ai_analysis": {
            "total_requests": len(analyses),
            "total_tokens_used": sum(record.tokens_used for record in analyses),
            "average_processing_time": statistics.describe(
                [record.processing_time_ms for record in analyses]
            )["mean"],
            "by_type": statistics.group_by_field(analyses, "analysis_type"),
        },
        "ml_predictions": {
            "total_predictions": len(predictions),
            "average_confidence": statistics.describe([record.confidence for record in predictions])["mean"],
            "by_model": statistics.group_by_field(predictions, "model_type"),
        },
        "data_management": {
            "data_points_created": store.count_data_points(user_id, start),
        },
    }


# =============================================================================
# Data Point Endpoints
# =============================================================================

@app.post("/api/data/points", status_code=201, tags=["Data"])
def create_data_point(
    point: DataPointCreate,
    user_id: str = Depends(get_user_id),
    store: ResultStore = Depends(get_result_store)
):
    """Store one categorised value for the caller."""
    record = store.save_data_point(user_id, point)

    logger.info("Data point created", extra={
        "user_id": user_id,
        "data_point_id": record.id,
        "category": record.category
    })
    return record.to_dict(exclude_fields=["user_id"])


@app.get("/api/data/points", response_model=PaginatedResponse, tags=["Data"])
def list_data_points(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    category: Optional[str] = Query(None),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    user_id: str = Depends(get_user_id),
    store: ResultStore = Depends(get_result_store)
):
    """Newest-first page of the caller's data points; date bounds are inclusive."""
    records, total = store.list_data_points(
        user_id, category=category, start=start_date, end=end_date, page=page, limit=limit
    )
    return _paginate([record.to_dict(exclude_fields=["user_id"]) for record in records], total, page, limit)


@app.get("/api/data/analytics", tags=["Data"])
def data_analytics(
    category: Optional[str] = Query(None),
    timeframe: AnalyticsTimeframe = Query(AnalyticsTimeframe.MONTH),
    user_id: str = Depends(get_user_id),
    store: ResultStore = Depends(get_result_store)
):
    """Summary statistics and trend of the caller's values over the window.

    The category breakdown always covers every point the caller owns,
    regardless of the window and the category filter.
    """
    end = datetime.now(timezone.utc)
    start = statistics.window_start(end, timeframe)

    points = store.data_points_between(user_id, start, end, category=category)
    values = [record.value for record in points]

    return {
        "timeframe": timeframe.value,
        "period": {"start": start.isoformat(), "end": end.isoformat()},
        "total_points": len(points),
        "statistics": statistics.describe(values),
        "category_breakdown": store.category_breakdown(user_id),
        "trends": statistics.split_trend(values).to_dict(),
    }


@app.get("/api/data/export", tags=["Data"])
def export_data(
    category: Optional[str] = Query(None),
    export_format: ExportFormat = Query(ExportFormat.CSV, alias="format"),
    user_id: str = Depends(get_user_id),
    store: ResultStore = Depends(get_result_store)
):
    """Download the caller's data points, newest first, as CSV or JSON."""
    records = store.export_data_points(user_id, category=category)
    filename = f"data-export-{int(time.time() * 1000)}.{export_format.value}"
    headers = {"Content-Disposition": f"attachment; filename={filename}"}

    logger.info("Data exported", extra={
        "user_id": user_id,
        "format": export_format.value,
        "record_count": len(records)
    })

    if export_format == ExportFormat.CSV:
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(EXPORT_CSV_HEADER)
        for record in records:
            writer.writerow([
                record.id,
                record_timestamp(record).isoformat(),
                record.value,
                record.category,
                json.dumps(record.point_metadata or {}),
            ])
        return Response(content=buffer.getvalue(), media_type="text/csv", headers=headers)

    return JSONResponse(
        content={
            "export_date": datetime.now(timezone.utc).isoformat(),
            "total_records": len(records),
            "data": [record.to_dict(exclude_fields=["user_id"]) for record in records],
        },
        headers=headers
    )


# =============================================================================
# Development Server
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "analytics_backend.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.monitoring.log_level.value.lower(),
        access_log=settings.debug
    )
