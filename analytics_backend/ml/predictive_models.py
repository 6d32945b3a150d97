"""
Predictive Models Module for the Analytics Backend

Fixed-weight scorers over numeric feature vectors:
- Linear regression (weighted sum plus bias and a small noise term)
- Binary classification (logistic sigmoid over a weighted sum)
- Clustering (nearest of three fixed centroids)
- Anomaly detection (deviation from per-feature normal ranges)

Feature vectors may be shorter or longer than a scorer's weight table: only
the shared prefix is scored, extra weights or extra features are ignored and
missing features are never defaulted to zero.

The regression noise is drawn from an injected ``numpy.random.Generator`` so
callers can make predictions reproducible.
"""

import logging
import math
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import numpy as np

from ..config import EngineConfig
from ..exceptions import EntityFaultError, UnsupportedKindError
from ..models.schemas import ModelKind, PredictionOptions, PredictionRequest, PredictionResult

logger = logging.getLogger(__name__)

# =============================================================================
# MODEL CONSTANTS
# =============================================================================

MODEL_VERSION = "1.0.0"
DEFAULT_ACCURACY = 0.85
PRECISION = 3

REGRESSION_WEIGHTS = (0.5, -0.3, 0.8, 0.2, -0.1)
REGRESSION_BIAS = 1.2
REGRESSION_NOISE = 0.05
REGRESSION_CONFIDENCE = 0.85
REGRESSION_R_SQUARED = 0.82

CLASSIFIER_WEIGHTS = (0.7, -0.4, 0.6, -0.2, 0.3)
CLASSIFIER_BIAS = 0.1
CLASSIFIER_THRESHOLD = 0.5
CLASSIFIER_ACCURACY = 0.89

CENTROIDS = (
    (1.0, 2.0, 1.5),
    (-1.0, 0.5, -0.5),
    (2.5, -1.0, 3.0),
)
MIN_CLUSTER_CONFIDENCE = 0.1
DISTANCE_SCALE = 10.0

NORMAL_RANGES = (
    (-2.0, 2.0),
    (-1.0, 3.0),
    (0.0, 4.0),
    (-3.0, 1.0),
    (-1.0, 2.0),
)
ANOMALY_CONFIDENCE_OFFSET = 0.1

MODEL_TRAINING_DATE = "2024-01-15"
MODEL_DATASET_SIZE = 10000
MODEL_FEATURES = ["feature_1", "feature_2", "feature_3", "feature_4", "feature_5"]
MODEL_METRICS: Dict[ModelKind, Dict[str, float]] = {
    ModelKind.LINEAR_REGRESSION: {
        "mse": 0.15,
        "rmse": 0.39,
        "mae": 0.28,
        "r_squared": 0.82,
    },
    ModelKind.CLASSIFICATION: {
        "accuracy": 0.89,
        "precision": 0.87,
        "recall": 0.91,
        "f1_score": 0.89,
        "auc_roc": 0.94,
    },
    ModelKind.CLUSTERING: {
        "silhouette_score": 0.73,
        "inertia": 145.6,
        "calinski_harabasz": 89.2,
        "davies_bouldin": 0.68,
    },
    ModelKind.ANOMALY_DETECTION: {
        "precision": 0.76,
        "recall": 0.82,
        "f1_score": 0.79,
        "false_positive_rate": 0.05,
    },
}


@dataclass
class ScorerOutput:
    """Raw output of one scorer, before it is wrapped into a PredictionResult."""
    prediction: Union[float, str]
    confidence: float
    metadata: Dict[str, Any]
    probabilities: Optional[Dict[str, float]] = None
    details: Dict[str, Any] = field(default_factory=dict)


def _sigmoid(score: float) -> float:
    if score >= 0:
        return 1.0 / (1.0 + math.exp(-score))
    z = math.exp(score)
    return z / (1.0 + z)


# =============================================================================
# PREDICTIVE MODEL ENGINE
# =============================================================================

class PredictiveModelEngine:
    """
    Heuristic predictive model engine.

    Holds only its configuration and the random generator used for the
    regression noise term; draws from the generator are serialised so one
    engine can serve a thread pool.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        rng: Optional[np.random.Generator] = None
    ):
        self.config = config or EngineConfig()
        self.rng = rng if rng is not None else np.random.default_rng(self.config.random_seed)
        self._rng_lock = threading.Lock()
        self._scorers: Dict[ModelKind, Callable[[np.ndarray, PredictionOptions], ScorerOutput]] = {
            ModelKind.LINEAR_REGRESSION: lambda features, options: self.linear_regression(features),
            ModelKind.CLASSIFICATION: lambda features, options: self.classification(
                features, options.return_probabilities
            ),
            ModelKind.CLUSTERING: lambda features, options: self.clustering(features),
            ModelKind.ANOMALY_DETECTION: lambda features, options: self.anomaly_detection(
                features, options.threshold
            ),
        }

        logger.info("PredictiveModelEngine initialized")

    @staticmethod
    def resolve_kind(kind: Union[str, ModelKind]) -> ModelKind:
        """Map a raw kind tag onto ``ModelKind``."""
        try:
            return ModelKind(kind)
        except ValueError:
            raise UnsupportedKindError(f"Unsupported model type: {kind}") from None

    @staticmethod
    def validate_features(features: Sequence[Any]) -> np.ndarray:
        """Convert a feature vector to a float array, rejecting empty or non-finite input."""
        if features is None or len(features) == 0:
            raise EntityFaultError("Features must be a non-empty array of numbers")
        for index, value in enumerate(features):
            if isinstance(value, bool) or not isinstance(value, (int, float, np.number)):
                raise EntityFaultError(f"Feature at index {index} is not a number")
        array = np.asarray(features, dtype=float)
        if not np.isfinite(array).all():
            index = int(np.flatnonzero(~np.isfinite(array))[0])
            raise EntityFaultError(f"Feature at index {index} is not a finite number")
        return array

    @staticmethod
    def _ensure_finite(kind: ModelKind, output: ScorerOutput) -> None:
        """Reject scorer output that overflowed, e.g. from features near the float limit."""
        figures = {"prediction": output.prediction, "confidence": output.confidence}
        figures.update({f"probabilities.{key}": value for key, value in (output.probabilities or {}).items()})
        figures.update({f"details.{key}": value for key, value in output.details.items()})

        for name, value in figures.items():
            if isinstance(value, (int, float)) and not math.isfinite(value):
                logger.warning(
                    f"Non-finite {name} from {kind.value} scorer",
                    extra={"model_type": kind.value}
                )
                raise EntityFaultError(f"Features produce a non-finite {name} for {kind.value}")

    def _noise(self) -> float:
        with self._rng_lock:
            return float(self.rng.uniform(-REGRESSION_NOISE, REGRESSION_NOISE))

    # -------------------------------------------------------------------------
    # Scorers
    # -------------------------------------------------------------------------

    def linear_regression(self, features: np.ndarray) -> ScorerOutput:
        weights = np.asarray(REGRESSION_WEIGHTS)
        n = min(len(features), len(weights))

        prediction = REGRESSION_BIAS + float(np.dot(features[:n], weights[:n]))
        prediction += self._noise()

        return ScorerOutput(
            prediction=round(prediction, PRECISION),
            confidence=REGRESSION_CONFIDENCE,
            metadata={
                "algorithm": "linear_regression",
                "coefficients": list(REGRESSION_WEIGHTS[:len(features)]),
                "bias": REGRESSION_BIAS,
                "r_squared": REGRESSION_R_SQUARED,
            },
        )

    def classification(self, features: np.ndarray, return_probabilities: bool = False) -> ScorerOutput:
        weights = np.asarray(CLASSIFIER_WEIGHTS)
        n = min(len(features), len(weights))

        score = CLASSIFIER_BIAS + float(np.dot(features[:n], weights[:n]))
        probability = _sigmoid(score)

        output = ScorerOutput(
            prediction="positive" if probability > CLASSIFIER_THRESHOLD else "negative",
            confidence=round(abs(probability - CLASSIFIER_THRESHOLD) * 2, PRECISION),
            metadata={
                "algorithm": "logistic_regression",
                "threshold": CLASSIFIER_THRESHOLD,
                "accuracy": CLASSIFIER_ACCURACY,
            },
        )
        if return_probabilities:
            output.probabilities = {
                "positive": round(probability, PRECISION),
                "negative": round(1 - probability, PRECISION),
            }
        return output

    def clustering(self, features: np.ndarray) -> ScorerOutput:
        """Assign the nearest centroid; ties keep the lowest cluster index."""
        min_distance = math.inf
        assigned = 0

        for index, centroid in enumerate(CENTROIDS):
            n = min(len(features), len(centroid))
            distance = float(np.linalg.norm(features[:n] - np.asarray(centroid[:n])))
            if distance < min_distance:
                min_distance = distance
                assigned = index

        confidence = max(MIN_CLUSTER_CONFIDENCE, 1 - min_distance / DISTANCE_SCALE)

        return ScorerOutput(
            prediction=f"cluster_{assigned}",
            confidence=round(confidence, PRECISION),
            metadata={
                "algorithm": "kmeans",
                "clusters": len(CENTROIDS),
                "centroids": [list(centroid) for centroid in CENTROIDS],
            },
            details={"distance": round(min_distance, PRECISION)},
        )

    def anomaly_detection(self, features: np.ndarray, threshold: Optional[float] = None) -> ScorerOutput:
        """
        Score how far features fall outside their normal ranges.

        Each out-of-range feature adds its distance to the nearer range bound;
        the sum is normalised by ``2 * len(features)`` and capped at 1.
        """
        if threshold is None:
            threshold = self.config.anomaly_threshold

        deviation = 0.0
        out_of_range = 0
        for value, (low, high) in zip(features.tolist(), NORMAL_RANGES):
            if value < low or value > high:
                out_of_range += 1
                deviation += min(abs(value - low), abs(value - high))

        score = min(1.0, deviation / (len(features) * 2))
        confidence = min(1.0, abs(score - threshold) + ANOMALY_CONFIDENCE_OFFSET)

        return ScorerOutput(
            prediction="anomaly" if score > threshold else "normal",
            confidence=round(confidence, PRECISION),
            metadata={
                "algorithm": "isolation_forest",
                "threshold": threshold,
                "normal_ranges": [
                    {"min": low, "max": high} for low, high in NORMAL_RANGES[:len(features)]
                ],
            },
            details={
                "anomaly_score": round(score, PRECISION),
                "out_of_range_features": out_of_range,
            },
        )

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    def make_prediction(self, request: PredictionRequest) -> PredictionResult:
        """
        Run the scorer selected by ``request.kind`` and wrap its output.

        Raises:
            UnsupportedKindError: If the kind is not a known model kind
            EntityFaultError: If the feature vector is empty or not finite
        """
        kind = self.resolve_kind(request.kind)
        features = self.validate_features(request.features)

        try:
            output = self._scorers[kind](features, request.options)
        except Exception as e:
            logger.error(
                f"Prediction failed for {kind.value}: {str(e)}",
                extra={"model_type": kind.value}
            )
            raise

        self._ensure_finite(kind, output)

        model_info = {
            "type": kind.value,
            "version": MODEL_VERSION,
            "accuracy": output.metadata.get("accuracy", DEFAULT_ACCURACY),
        }
        model_info.update(
            {key: value for key, value in output.metadata.items() if key not in model_info}
        )

        return PredictionResult(
            prediction=output.prediction,
            confidence=output.confidence,
            probabilities=output.probabilities,
            model_info=model_info,
            details=output.details,
        )

    def get_model_metrics(self, kind: Union[str, ModelKind]) -> Dict[str, Any]:
        """Static evaluation sheet for a model kind."""
        kind = self.resolve_kind(kind)
        return {
            "model_type": kind.value,
            "version": MODEL_VERSION,
            "training_date": MODEL_TRAINING_DATE,
            "metrics": dict(MODEL_METRICS[kind]),
            "dataset_size": MODEL_DATASET_SIZE,
            "features": list(MODEL_FEATURES),
        }


def create_predictive_engine(
    config: Optional[EngineConfig] = None,
    rng: Optional[np.random.Generator] = None
) -> PredictiveModelEngine:
    """Factory function to create a PredictiveModelEngine."""
    return PredictiveModelEngine(config=config, rng=rng)


def get_available_models() -> List[str]:
    """Model kinds served by the engine."""
    return [kind.value for kind in ModelKind]


__all__ = [
    "PredictiveModelEngine", "ScorerOutput",
    "create_predictive_engine", "get_available_models",
    "REGRESSION_WEIGHTS", "CLASSIFIER_WEIGHTS", "CENTROIDS", "NORMAL_RANGES", "MODEL_METRICS",
]
