"""
Analytics Backend ML Package

Deterministic heuristic "models" behind the analytics API. Nothing here is
trained or loaded from disk: every model is a fixed word list, keyword table,
weight vector or threshold.

Usage:
    from analytics_backend.ml import create_text_engine, create_predictive_engine

    text_engine = create_text_engine()
    result = text_engine.process(AnalysisRequest(text="Great work", kind="sentiment"))

    predictive_engine = create_predictive_engine(rng=np.random.default_rng(42))
    result = predictive_engine.make_prediction(
        PredictionRequest(features=[1.0, 2.0, 1.5], kind="clustering")
    )
"""

import logging
from typing import Dict, List

from .predictive_models import PredictiveModelEngine, create_predictive_engine, get_available_models
from .text_models import TextAnalysisEngine, create_text_engine
from ..models.schemas import AnalysisKind

logging.getLogger(__name__).addHandler(logging.NullHandler())


def get_available_analyses() -> List[str]:
    """Analysis kinds served by the text engine."""
    return [kind.value for kind in AnalysisKind]


def get_capabilities() -> Dict[str, List[str]]:
    return {
        "text_analysis": get_available_analyses(),
        "predictive_models": get_available_models(),
    }


__all__ = [
    "TextAnalysisEngine", "create_text_engine",
    "PredictiveModelEngine", "create_predictive_engine",
    "get_available_analyses", "get_available_models", "get_capabilities",
]
