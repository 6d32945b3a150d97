"""
Heuristic Analytics Backend Package

Provides deterministic heuristic analytics services:
- Text analysis (sentiment, classification, summarization, translation, entities)
- Predictive scoring over numeric feature vectors
- Usage and performance statistics
- FastAPI application in ``analytics_backend.main``
"""

__version__ = "1.0.0"

# Initialize package-level logging
import logging
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

__all__ = ["__version__"]
