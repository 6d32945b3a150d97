"""
ANALYTICS BACKEND - RESULT PERSISTENCE LAYER
============================================

SQLAlchemy 2.0 persistence for analysis and prediction results and for
user-submitted data points:
- Declarative models: AnalysisRecord, PredictionRecord, DataPointRecord
- DatabaseManager: engine and session factory ownership
- ResultStore: save / paginated listing / time-window queries / category rollups
- FastAPI dependencies: get_database_manager, get_db_session

Timestamps are stored in UTC. SQLite drops the offset on storage, so values
read back are re-tagged as UTC before they leave this module.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Dict, Generator, List, Optional, Tuple, Type, TypeVar

from sqlalchemy import (
    DateTime, Float, Integer, JSON, MetaData, String, Text, create_engine, func, select, text
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import get_settings
from .schemas import (
    AnalysisRequest, AnalysisResult, DataPointCreate, PredictionRequest, PredictionResult,
)

logger = logging.getLogger(__name__)
RecordType = TypeVar("RecordType", bound="ResultRecord")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def timing_decorator(func):
    """Decorator to time database operations."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        start_time = time.perf_counter()
        try:
            result = func(*args, **kwargs)
            logger.debug(f"{func.__name__} took {time.perf_counter() - start_time:.3f}s")
            return result
        except Exception as e:
            logger.error(f"{func.__name__} failed after {time.perf_counter() - start_time:.3f}s: {e}")
            raise

    return wrapper


# =============================================================================
# DECLARATIVE BASE
# =============================================================================

class Base(DeclarativeBase):
    """SQLAlchemy 2.0 declarative base."""

    metadata = MetaData(
        naming_convention={
            "ix": "ix_%(table_name)s_%(column_0_N_label)s",
            "uq": "uq_%(table_name)s_%(column_0_N_name)s",
            "ck": "ck_%(table_name)s_%(constraint_name)s",
            "pk": "pk_%(table_name)s"
        }
    )


class UserOwnedRecord(Base):
    """Columns shared by every row stored on behalf of a caller."""

    __abstract__ = True

    id: Mapped[int] = mapped_column(Integer, primary_key=True, comment="Primary key")
    user_id: Mapped[str] = mapped_column(
        String(255), nullable=False, index=True, comment="Opaque caller identity"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False, index=True,
        comment="Record creation timestamp (UTC)"
    )

    def to_dict(self, exclude_fields: Optional[List[str]] = None) -> Dict[str, Any]:
        """Convert the record to a JSON-ready dictionary keyed by column name."""
        exclude_fields = exclude_fields or []
        result = {}
        for attribute in self.__mapper__.column_attrs:
            name = attribute.columns[0].name
            if name in exclude_fields:
                continue
            value = getattr(self, attribute.key)
            if isinstance(value, datetime):
                value = _as_utc(value).isoformat()
            result[name] = value
        return result


class ResultRecord(UserOwnedRecord):
    """Columns shared by every stored result."""

    __abstract__ = True

    confidence: Mapped[float] = mapped_column(Float, nullable=False)


# =============================================================================
# RESULT MODELS
# =============================================================================

class AnalysisRecord(ResultRecord):
    """Stored text analysis."""

    __tablename__ = "analysis_records"

    analysis_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    options: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    result: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, comment="Analyzer payload")
    tokens_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    processing_time_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    model: Mapped[str] = mapped_column(String(100), nullable=False)
    model_version: Mapped[str] = mapped_column(String(20), nullable=False)

    def __repr__(self) -> str:
        return f"<AnalysisRecord(id={self.id}, type='{self.analysis_type}', user='{self.user_id}')>"


class PredictionRecord(ResultRecord):
    """Stored prediction."""

    __tablename__ = "prediction_records"

    model_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    features: Mapped[List[float]] = mapped_column(JSON, nullable=False)
    threshold: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    prediction: Mapped[str] = mapped_column(String(100), nullable=False, comment="Label or stringified value")
    probabilities: Mapped[Optional[Dict[str, float]]] = mapped_column(JSON, nullable=True)
    details: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    model_version: Mapped[str] = mapped_column(String(20), nullable=False)
    accuracy: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    def __repr__(self) -> str:
        return f"<PredictionRecord(id={self.id}, type='{self.model_type}', user='{self.user_id}')>"


class DataPointRecord(UserOwnedRecord):
    """Categorised numeric observation submitted by a caller."""

    __tablename__ = "data_points"

    value: Mapped[float] = mapped_column(Float, nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    # "metadata" is reserved on declarative classes
    point_metadata: Mapped[Optional[Dict[str, Any]]] = mapped_column("metadata", JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<DataPointRecord(id={self.id}, category='{self.category}', user='{self.user_id}')>"


# =============================================================================
# DATABASE MANAGER
# =============================================================================

class DatabaseManager:
    """Owns the engine and session factory for one database URL."""

    def __init__(self, url: str = "sqlite:///./analytics.db", echo: bool = False):
        self.url = url
        self.echo = echo
        self._engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None
        self._initialized = False

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError("DatabaseManager not initialized")
        return self._engine

    def _get_engine_config(self) -> Dict[str, Any]:
        config: Dict[str, Any] = {"echo": self.echo, "pool_pre_ping": True}

        if self.url.startswith("sqlite"):
            config["connect_args"] = {"check_same_thread": False}
            if ":memory:" in self.url or self.url in ("sqlite://", "sqlite:///"):
                # One shared connection, otherwise every session sees an empty database.
                config["poolclass"] = StaticPool

        return config

    @timing_decorator
    def initialize(self) -> None:
        """Create the engine, session factory and tables."""
        if self._initialized:
            logger.warning("DatabaseManager already initialized")
            return

        try:
            self._engine = create_engine(self.url, **self._get_engine_config())
            self._session_factory = sessionmaker(
                bind=self._engine,
                class_=Session,
                autoflush=False,
                expire_on_commit=False
            )
            Base.metadata.create_all(bind=self._engine)
            self._initialized = True
            logger.info(f"DatabaseManager initialized ({self.url.split(':', 1)[0]})")

        except Exception as e:
            logger.error(f"DatabaseManager initialization failed: {e}")
            raise

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """Session scope: commit on success, rollback on error."""
        if not self._session_factory:
            raise RuntimeError("Session factory not initialized")

        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error(f"Database session error: {e}")
            raise
        finally:
            session.close()

    def health_check(self) -> Dict[str, Any]:
        """Run a trivial query and report its latency."""
        start_time = time.perf_counter()
        try:
            with self.get_session() as session:
                healthy = session.execute(text("SELECT 1")).scalar() == 1
            return {
                "status": "healthy" if healthy else "unhealthy",
                "database_type": self.url.split(":", 1)[0],
                "response_time_ms": round((time.perf_counter() - start_time) * 1000, 2),
            }
        except Exception as e:
            return {"status": "unhealthy", "error": str(e), "error_type": type(e).__name__}

    def dispose(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
        self._initialized = False


# =============================================================================
# RESULT STORE
# =============================================================================

class ResultStore:
    """Persistence sink for analysis and prediction results."""

    def __init__(self, session: Session):
        self.session = session

    def save_analysis(
        self,
        user_id: str,
        request: AnalysisRequest,
        result: AnalysisResult,
        created_at: Optional[datetime] = None
    ) -> AnalysisRecord:
        record = AnalysisRecord(
            user_id=user_id,
            analysis_type=result.kind.value,
            text=request.text,
            options=request.options.model_dump(exclude_none=True) or None,
            result=result.payload,
            confidence=result.confidence,
            tokens_used=result.tokens_used_estimate,
            processing_time_ms=result.processing_time_ms,
            model=result.model,
            model_version=result.version,
            created_at=_as_utc(created_at) or _utcnow(),
        )
        self.session.add(record)
        self.session.flush()
        logger.debug(f"Stored analysis {record.id}", extra={"user_id": user_id})
        return record

    def save_prediction(
        self,
        user_id: str,
        request: PredictionRequest,
        result: PredictionResult,
        created_at: Optional[datetime] = None
    ) -> PredictionRecord:
        record = PredictionRecord(
            user_id=user_id,
            model_type=result.model_info["type"],
            features=list(request.features),
            threshold=request.options.threshold,
            prediction=str(result.prediction),
            confidence=result.confidence,
            probabilities=result.probabilities,
            details=result.details or None,
            model_version=result.model_info["version"],
            accuracy=result.model_info.get("accuracy"),
            created_at=_as_utc(created_at) or _utcnow(),
        )
        self.session.add(record)
        self.session.flush()
        logger.debug(f"Stored prediction {record.id}", extra={"user_id": user_id})
        return record

    def _paginate(
        self,
        model: Type[RecordType],
        kind_column: Any,
        user_id: str,
        kind: Optional[str],
        page: int,
        limit: int
    ) -> Tuple[List[RecordType], int]:
        conditions = [model.user_id == user_id]
        if kind:
            conditions.append(kind_column == kind)

        total = self.session.scalar(select(func.count()).select_from(model).where(*conditions)) or 0
        records = self.session.scalars(
            select(model)
            .where(*conditions)
            .order_by(model.created_at.desc(), model.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()
        return list(records), total

    def list_analyses(
        self, user_id: str, kind: Optional[str] = None, page: int = 1, limit: int = 10
    ) -> Tuple[List[AnalysisRecord], int]:
        """Newest-first page of a user's analyses and the total count."""
        return self._paginate(AnalysisRecord, AnalysisRecord.analysis_type, user_id, kind, page, limit)

    def list_predictions(
        self, user_id: str, kind: Optional[str] = None, page: int = 1, limit: int = 10
    ) -> Tuple[List[PredictionRecord], int]:
        """Newest-first page of a user's predictions and the total count."""
        return self._paginate(PredictionRecord, PredictionRecord.model_type, user_id, kind, page, limit)

    def recent_analyses(self, since: datetime, user_id: Optional[str] = None) -> List[AnalysisRecord]:
        """Analyses created at or after ``since``, oldest first."""
        query = select(AnalysisRecord).where(AnalysisRecord.created_at >= _as_utc(since))
        if user_id is not None:
            query = query.where(AnalysisRecord.user_id == user_id)
        return list(self.session.scalars(query.order_by(AnalysisRecord.created_at)).all())

    def recent_predictions(self, since: datetime, user_id: Optional[str] = None) -> List[PredictionRecord]:
        """Predictions created at or after ``since``, oldest first."""
        query = select(PredictionRecord).where(PredictionRecord.created_at >= _as_utc(since))
        if user_id is not None:
            query = query.where(PredictionRecord.user_id == user_id)
        return list(self.session.scalars(query.order_by(PredictionRecord.created_at)).all())

    # -------------------------------------------------------------------------
    # Data points
    # -------------------------------------------------------------------------

    def save_data_point(
        self,
        user_id: str,
        point: DataPointCreate,
        created_at: Optional[datetime] = None
    ) -> DataPointRecord:
        record = DataPointRecord(
            user_id=user_id,
            value=point.value,
            category=point.category,
            point_metadata=point.metadata,
            created_at=_as_utc(created_at) or _utcnow(),
        )
        self.session.add(record)
        self.session.flush()
        logger.debug(f"Stored data point {record.id}", extra={"user_id": user_id})
        return record

    @staticmethod
    def _data_point_conditions(
        user_id: str,
        category: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> List[Any]:
        conditions = [DataPointRecord.user_id == user_id]
        if category:
            conditions.append(DataPointRecord.category == category)
        if start is not None:
            conditions.append(DataPointRecord.created_at >= _as_utc(start))
        if end is not None:
            conditions.append(DataPointRecord.created_at <= _as_utc(end))
        return conditions

    def list_data_points(
        self,
        user_id: str,
        category: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        page: int = 1,
        limit: int = 10
    ) -> Tuple[List[DataPointRecord], int]:
        """Newest-first page of a user's data points, both date bounds inclusive."""
        conditions = self._data_point_conditions(user_id, category, start, end)

        total = self.session.scalar(
            select(func.count()).select_from(DataPointRecord).where(*conditions)
        ) or 0
        records = self.session.scalars(
            select(DataPointRecord)
            .where(*conditions)
            .order_by(DataPointRecord.created_at.desc(), DataPointRecord.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()
        return list(records), total

    def data_points_between(
        self,
        user_id: str,
        start: datetime,
        end: datetime,
        category: Optional[str] = None
    ) -> List[DataPointRecord]:
        """A user's data points inside ``[start, end]``, oldest first."""
        conditions = self._data_point_conditions(user_id, category, start, end)
        return list(self.session.scalars(
            select(DataPointRecord)
            .where(*conditions)
            .order_by(DataPointRecord.created_at, DataPointRecord.id)
        ).all())

    def category_breakdown(self, user_id: str) -> List[Dict[str, Any]]:
        """Count, average, sum, min and max of the value per category, over all of a user's points."""
        rows = self.session.execute(
            select(
                DataPointRecord.category,
                func.count(DataPointRecord.id),
                func.avg(DataPointRecord.value),
                func.sum(DataPointRecord.value),
                func.min(DataPointRecord.value),
                func.max(DataPointRecord.value),
            )
            .where(DataPointRecord.user_id == user_id)
            .group_by(DataPointRecord.category)
            .order_by(DataPointRecord.category)
        ).all()
        return [
            {
                "category": category,
                "count": count,
                "average": float(average),
                "sum": float(total),
                "min": float(minimum),
                "max": float(maximum),
            }
            for category, count, average, total, minimum, maximum in rows
        ]

    def export_data_points(self, user_id: str, category: Optional[str] = None) -> List[DataPointRecord]:
        """Every matching data point of a user, newest first."""
        conditions = self._data_point_conditions(user_id, category)
        return list(self.session.scalars(
            select(DataPointRecord)
            .where(*conditions)
            .order_by(DataPointRecord.created_at.desc(), DataPointRecord.id.desc())
        ).all())

    def count_data_points(self, user_id: str, since: datetime) -> int:
        conditions = self._data_point_conditions(user_id, start=since)
        return self.session.scalar(
            select(func.count()).select_from(DataPointRecord).where(*conditions)
        ) or 0


def record_timestamp(record: UserOwnedRecord) -> datetime:
    """UTC creation time of a stored record."""
    return _as_utc(record.created_at)


# =============================================================================
# DEPENDENCIES
# =============================================================================

_db_manager: Optional[DatabaseManager] = None


def get_database_manager(url: Optional[str] = None, echo: bool = False) -> DatabaseManager:
    """Get or create the process-wide database manager."""
    global _db_manager

    if _db_manager is None:
        if url is None:
            settings = get_settings()
            url, echo = settings.database.url, settings.database.echo
        _db_manager = DatabaseManager(url, echo=echo)
        _db_manager.initialize()

    return _db_manager


def get_db_session() -> Generator[Session, None, None]:
    """FastAPI dependency for database sessions."""
    manager = get_database_manager()
    with manager.get_session() as session:
        yield session


__all__ = [
    "Base", "UserOwnedRecord", "ResultRecord", "AnalysisRecord", "PredictionRecord", "DataPointRecord",
    "DatabaseManager", "ResultStore", "record_timestamp",
    "get_database_manager", "get_db_session",
]
