"""
Text Models Module for the Analytics Backend

This module implements the heuristic text analysis engine:
- Sentiment analysis (fixed positive/negative word lists)
- Topic classification (keyword hits per category)
- Extractive summarization (leading sentences)
- Dictionary translation (en -> es/fr)
- Entity extraction (email, phone, date, url, money patterns)

Features:
- Deterministic word lists, keyword tables and regex patterns
- Dispatch table keyed by ``AnalysisKind``
- Injected clock for processing durations
- Results wrapped into ``AnalysisResult`` with model name/version stamps

Known limitation: entity positions are those of the first occurrence of the
matched text, so a value repeated in the input reports the same
``start_index`` for every match.

Classification ties keep the earlier category in ``CATEGORY_KEYWORDS``
order. A last-wins reduce over the scores gives ties to the later category
instead, so clients used to that rule will see "game" classified as
entertainment rather than sports, and text with no keyword hits as
technology rather than sports.

Entity patterns are compiled with ``re.ASCII``: ``\\d`` and ``\\b`` only see
ASCII digits and word characters.
"""

import logging
import re
from typing import Any, Callable, Dict, List, Optional, Pattern, Tuple, Union

from ..config import EngineConfig
from ..exceptions import UnsupportedKindError
from ..models.schemas import AnalysisKind, AnalysisRequest, AnalysisResult
from ..utils.monitoring import Clock, SystemClock, elapsed_ms

logger = logging.getLogger(__name__)

# =============================================================================
# HEURISTIC TABLES
# =============================================================================

POSITIVE_WORDS = frozenset([
    "good", "great", "excellent", "amazing", "wonderful",
    "fantastic", "love", "like", "happy", "joy",
])
NEGATIVE_WORDS = frozenset([
    "bad", "terrible", "awful", "hate", "dislike",
    "sad", "angry", "frustrated", "disappointed",
])

SENTIMENT_BASE_CONFIDENCE = 0.5
SENTIMENT_STEP = 0.1
SENTIMENT_MAX_CONFIDENCE = 0.9
NEUTRAL_CONFIDENCE = 0.6

# Order matters: ties keep the earlier category.
CATEGORY_KEYWORDS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("technology", ("ai", "machine learning", "software", "computer", "programming", "code")),
    ("business", ("revenue", "profit", "market", "sales", "customer", "strategy")),
    ("science", ("research", "study", "experiment", "data", "analysis", "hypothesis")),
    ("entertainment", ("movie", "music", "game", "fun", "entertainment", "show")),
    ("sports", ("game", "team", "player", "score", "match", "competition")),
)

CATEGORY_STEP = 0.2
CATEGORY_BASE_CONFIDENCE = 0.1
CATEGORY_MAX_CONFIDENCE = 0.95

SENTENCE_SPLIT = re.compile(r"[.!?]+")
SUMMARY_RATIO = 0.3
SUMMARY_MIN_SENTENCES = 1
SUMMARY_MAX_SENTENCES = 3

SOURCE_LANGUAGE = "en"
TRANSLATION_CONFIDENCE = 0.85
# Applied in insertion order.
TRANSLATIONS: Dict[str, Dict[str, str]] = {
    "es": {
        "hello": "hola",
        "world": "mundo",
        "good": "bueno",
        "morning": "mañana",
        "thank you": "gracias",
    },
    "fr": {
        "hello": "bonjour",
        "world": "monde",
        "good": "bon",
        "morning": "matin",
        "thank you": "merci",
    },
}

ENTITY_CONFIDENCE = 0.9
ENTITY_PATTERNS: Tuple[Tuple[str, Pattern], ...] = (
    ("email", re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Z|a-z]{2,}\b", re.ASCII)),
    ("phone", re.compile(r"\b\d{3}-\d{3}-\d{4}\b", re.ASCII)),
    ("date", re.compile(r"\b\d{1,2}/\d{1,2}/\d{4}\b", re.ASCII)),
    ("url", re.compile(r"https?://[^\s]+", re.ASCII)),
    ("money", re.compile(r"\$\d+(?:,\d{3})*(?:\.\d{2})?", re.ASCII)),
)

DEFAULT_RESULT_CONFIDENCE = 0.8
LOG_TEXT_PREVIEW = 100
CHARS_PER_TOKEN = 4


def _clamp(value: int, lower: int, upper: int) -> int:
    return min(upper, max(lower, value))


# =============================================================================
# TEXT ANALYSIS ENGINE
# =============================================================================

class TextAnalysisEngine:
    """
    Heuristic text analysis engine.

    The engine is stateless apart from its injected configuration and clock,
    so a single instance can be shared between threads.
    """

    def __init__(self, config: Optional[EngineConfig] = None, clock: Optional[Clock] = None):
        self.config = config or EngineConfig()
        self.clock = clock or SystemClock()
        self._analyzers: Dict[AnalysisKind, Callable[[str, Any], Dict[str, Any]]] = {
            AnalysisKind.SENTIMENT: lambda text, options: self.analyze_sentiment(text),
            AnalysisKind.CLASSIFICATION: lambda text, options: self.classify_text(text),
            AnalysisKind.SUMMARIZATION: lambda text, options: self.summarize_text(text, options.max_tokens),
            AnalysisKind.TRANSLATION: lambda text, options: self.translate_text(text, options.language),
            AnalysisKind.ENTITY_EXTRACTION: lambda text, options: self.extract_entities(text),
        }

        logger.info("TextAnalysisEngine initialized")

    @staticmethod
    def resolve_kind(kind: Union[str, AnalysisKind]) -> AnalysisKind:
        """Map a raw kind tag onto ``AnalysisKind``."""
        try:
            return AnalysisKind(kind)
        except ValueError:
            raise UnsupportedKindError(f"Unsupported analysis type: {kind}") from None

    # -------------------------------------------------------------------------
    # Analyzers
    # -------------------------------------------------------------------------

    def analyze_sentiment(self, text: str) -> Dict[str, Any]:
        started = self.clock.monotonic()
        words = text.lower().split()

        positive = sum(1 for word in words if word in POSITIVE_WORDS)
        negative = sum(1 for word in words if word in NEGATIVE_WORDS)
        score = positive - negative

        if score > 0:
            sentiment = "positive"
            confidence = min(SENTIMENT_MAX_CONFIDENCE, SENTIMENT_BASE_CONFIDENCE + SENTIMENT_STEP * score)
        elif score < 0:
            sentiment = "negative"
            confidence = min(SENTIMENT_MAX_CONFIDENCE, SENTIMENT_BASE_CONFIDENCE + SENTIMENT_STEP * abs(score))
        else:
            sentiment = "neutral"
            confidence = NEUTRAL_CONFIDENCE

        return {
            "sentiment": sentiment,
            "confidence": confidence,
            "scores": {
                "positive": positive,
                "negative": negative,
                "neutral": len(words) - positive - negative,
            },
            "processing_time_ms": elapsed_ms(self.clock, started),
        }

    def classify_text(self, text: str) -> Dict[str, Any]:
        """Score each category by the number of its keywords found in the text.

        A keyword is a plain substring match, counted at most once.
        """
        started = self.clock.monotonic()
        text_lower = text.lower()

        all_scores = []
        for category, keywords in CATEGORY_KEYWORDS:
            score = sum(1 for keyword in keywords if keyword in text_lower)
            all_scores.append({
                "category": category,
                "score": score,
                "confidence": min(CATEGORY_MAX_CONFIDENCE, CATEGORY_STEP * score + CATEGORY_BASE_CONFIDENCE),
            })

        top = all_scores[0]
        for candidate in all_scores[1:]:
            if candidate["score"] > top["score"]:
                top = candidate

        return {
            "category": top["category"],
            "confidence": top["confidence"],
            "all_scores": all_scores,
            "processing_time_ms": elapsed_ms(self.clock, started),
        }

    def summarize_text(self, text: str, max_tokens: Optional[int] = None) -> Dict[str, Any]:
        """Keep the leading 30% of sentences (between one and three).

        ``max_tokens`` is echoed back only; the heuristic ignores it.
        """
        started = self.clock.monotonic()
        if max_tokens is None:
            max_tokens = self.config.default_max_tokens

        sentences = [segment for segment in SENTENCE_SPLIT.split(text) if segment.strip()]
        count = _clamp(int(len(sentences) * SUMMARY_RATIO), SUMMARY_MIN_SENTENCES, SUMMARY_MAX_SENTENCES)
        summary = ". ".join(sentences[:count]) + "."

        ratio = len(summary) / len(text) if text else 0.0

        return {
            "summary": summary,
            "original_length": len(text),
            "summary_length": len(summary),
            "compression_ratio": f"{ratio:.2f}",
            "max_tokens": max_tokens,
            "processing_time_ms": elapsed_ms(self.clock, started),
        }

    def translate_text(self, text: str, target_language: Optional[str] = None) -> Dict[str, Any]:
        started = self.clock.monotonic()
        target_language = target_language or self.config.default_target_language

        translated = text.lower()
        for english, replacement in TRANSLATIONS.get(target_language, {}).items():
            translated = re.sub(re.escape(english), replacement, translated, flags=re.IGNORECASE)

        return {
            "original_text": text,
            "translated_text": translated,
            "source_language": SOURCE_LANGUAGE,
            "target_language": target_language,
            "confidence": TRANSLATION_CONFIDENCE,
            "processing_time_ms": elapsed_ms(self.clock, started),
        }

    def extract_entities(self, text: str) -> Dict[str, Any]:
        started = self.clock.monotonic()

        entities: List[Dict[str, Any]] = []
        for entity_type, pattern in ENTITY_PATTERNS:
            for match in pattern.finditer(text):
                value = match.group(0)
                start = text.find(value)
                entities.append({
                    "text": value,
                    "type": entity_type,
                    "confidence": ENTITY_CONFIDENCE,
                    "start_index": start,
                    "end_index": start + len(value),
                })

        return {
            "entities": entities,
            "total_entities": len(entities),
            "processing_time_ms": elapsed_ms(self.clock, started),
        }

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    def process(self, request: AnalysisRequest) -> AnalysisResult:
        """
        Run the analyzer selected by ``request.kind`` and wrap its payload.

        Args:
            request: Validated analysis request

        Returns:
            AnalysisResult carrying the analyzer payload

        Raises:
            UnsupportedKindError: If the kind is not a known analysis kind
        """
        started = self.clock.monotonic()
        kind = self.resolve_kind(request.kind)

        try:
            payload = self._analyzers[kind](request.text, request.options)
        except Exception as e:
            logger.error(
                f"Text analysis failed for {kind.value}: {str(e)}",
                extra={"analysis_type": kind.value, "text": request.text[:LOG_TEXT_PREVIEW]}
            )
            raise

        return AnalysisResult(
            kind=kind,
            confidence=payload.get("confidence", DEFAULT_RESULT_CONFIDENCE),
            payload=payload,
            processing_time_ms=elapsed_ms(self.clock, started),
            tokens_used_estimate=len(request.text) // CHARS_PER_TOKEN,
            model=self.config.model_name,
            version=self.config.model_version,
        )


def create_text_engine(
    config: Optional[EngineConfig] = None,
    clock: Optional[Clock] = None
) -> TextAnalysisEngine:
    """Factory function to create a TextAnalysisEngine."""
    return TextAnalysisEngine(config=config, clock=clock)


__all__ = [
    "TextAnalysisEngine", "create_text_engine",
    "POSITIVE_WORDS", "NEGATIVE_WORDS", "CATEGORY_KEYWORDS",
    "TRANSLATIONS", "ENTITY_PATTERNS",
]
