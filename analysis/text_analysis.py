"""Text Analysis Engine for keywords, topics and sentiment.

Everything here is a deterministic bag-of-tokens heuristic driven by the
YAML lexicon in ``sentiment_lexicon.yaml``. No method raises on user
text: unknown or empty input yields neutral results.
"""

import re
import logging
from collections import Counter
from pathlib import Path
from typing import Iterable, Optional, Union

import yaml

from schemas.context import EmotionalContext
from schemas.analysis import TextAnalysisResult

logger = logging.getLogger(__name__)

# Whitespace (including full-width space) plus Japanese and ASCII punctuation.
# Apostrophes are kept so contractions like "don't" stay one token.
TOKEN_DELIMITERS = re.compile(r"[\s、。，．！？!?,.;:：；「」『』（）()\[\]【】{}…・\"“”]+")

MAX_KEYWORDS = 5
MAX_TOPICS = 3


class TextAnalysisEngine:
    """
    Derives lightweight conversation signals from message text:
    1. Tokenization on a fixed punctuation/whitespace set
    2. Keywords (top 5 by frequency, stoplist removed)
    3. Topics (top 3 content tokens)
    4. Sentiment score with intensifier/diminisher/negator modifiers
    5. Emotional bucket for a score
    """

    INTENSIFIER_MULTIPLIER = 1.5
    DIMINISHER_MULTIPLIER = 0.5

    def __init__(self, lexicon_path: Optional[Union[str, Path]] = None):
        """
        Initialize the engine.

        Args:
            lexicon_path: Path to a lexicon YAML (defaults to the bundled one)
        """
        if lexicon_path is None:
            lexicon_path = Path(__file__).parent / "sentiment_lexicon.yaml"

        lexicon = self._load_lexicon(lexicon_path)

        # Positive entries are checked before negative ones
        self.positive_words = {
            str(word): float(weight)
            for word, weight in (lexicon.get("positive") or {}).items()
        }
        self.negative_words = {
            str(word): float(weight)
            for word, weight in (lexicon.get("negative") or {}).items()
        }

        modifiers = lexicon.get("modifiers") or {}
        self.intensifiers = set(modifiers.get("intensifiers") or [])
        self.diminishers = set(modifiers.get("diminishers") or [])
        self.negators = list(modifiers.get("negators") or [])

        self.keyword_stopwords = set(lexicon.get("keyword_stopwords") or [])
        self.topic_stopwords = list(lexicon.get("topic_stopwords") or [])

        logger.debug(
            f"Lexicon loaded: {len(self.positive_words)} positive, "
            f"{len(self.negative_words)} negative entries"
        )

    def _load_lexicon(self, path: Union[str, Path]) -> dict:
        """Load the sentiment lexicon from YAML."""
        with open(path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}

    def tokenize(self, text: Optional[str]) -> list[str]:
        """
        Split text into lowercase tokens.

        Args:
            text: Free-form text (None is treated as empty)

        Returns:
            Tokens in order of appearance, never empty strings
        """
        if not text:
            return []
        return [token for token in TOKEN_DELIMITERS.split(text.lower()) if token]

    def extract_keywords(self, tokens: list[str]) -> list[str]:
        """
        Get the five most frequent tokens outside the function-word stoplist.

        Ties keep first-occurrence order.
        """
        counts = Counter(t for t in tokens if t not in self.keyword_stopwords)
        return self._rank(counts, MAX_KEYWORDS)

    def extract_topics(self, tokens: list[str]) -> list[str]:
        """Get the three most frequent content tokens."""
        counts = Counter(t for t in tokens if self._is_topic_candidate(t))
        return self._rank(counts, MAX_TOPICS)

    def _is_topic_candidate(self, token: str) -> bool:
        if len(token) <= 1 or token in self.keyword_stopwords:
            return False
        return not any(stop in token for stop in self.topic_stopwords)

    @staticmethod
    def _rank(counts: Counter, limit: int) -> list[str]:
        # Counter preserves insertion (first occurrence) order and sorted() is stable
        ranked = sorted(counts.items(), key=lambda item: -item[1])
        return [token for token, _ in ranked[:limit]]

    def score_sentiment(self, tokens: list[str]) -> float:
        """
        Score sentiment in [-1, 1].

        Each lexicon hit contributes its weight, scaled by 1.5 after an
        intensifier or 0.5 after a diminisher, and negated when the next
        token contains a negator. The sum is divided by max(1, n/10) so
        long messages are not automatically extreme.

        Args:
            tokens: Output of tokenize()

        Returns:
            Clamped sentiment score
        """
        total = 0.0

        for i, token in enumerate(tokens):
            weight = self._emotional_weight(token)
            if weight == 0:
                continue

            multiplier = 1.0
            if i > 0:
                previous = tokens[i - 1]
                if previous in self.intensifiers:
                    multiplier = self.INTENSIFIER_MULTIPLIER
                elif previous in self.diminishers:
                    multiplier = self.DIMINISHER_MULTIPLIER

            if i + 1 < len(tokens):
                following = tokens[i + 1]
                if any(neg in following for neg in self.negators):
                    multiplier *= -1

            total += weight * multiplier

        score = total / max(1.0, len(tokens) / 10)
        return max(-1.0, min(1.0, score))

    def _emotional_weight(self, token: str) -> float:
        for word, weight in self.positive_words.items():
            if word in token:
                return weight
        for word, weight in self.negative_words.items():
            if word in token:
                return weight
        return 0.0

    def classify_emotion(self, score: float) -> EmotionalContext:
        """Bucket a sentiment score into an emotional context."""
        if score > 0.5:
            return EmotionalContext.VERY_POSITIVE
        if score > 0.2:
            return EmotionalContext.POSITIVE
        if score < -0.5:
            return EmotionalContext.VERY_NEGATIVE
        if score < -0.2:
            return EmotionalContext.NEGATIVE
        return EmotionalContext.NEUTRAL

    def analyze_tokens(self, tokens: list[str]) -> TextAnalysisResult:
        """Run every extractor over an already tokenized text."""
        sentiment = self.score_sentiment(tokens)
        return TextAnalysisResult(
            keywords=self.extract_keywords(tokens),
            topics=self.extract_topics(tokens),
            emotional_context=self.classify_emotion(sentiment),
            sentiment=sentiment
        )

    def analyze(self, text: Optional[str]) -> TextAnalysisResult:
        """Analyze a single text."""
        return self.analyze_tokens(self.tokenize(text))

    def analyze_messages(self, contents: Iterable[str]) -> TextAnalysisResult:
        """Analyze several message texts as one bag of tokens."""
        tokens: list[str] = []
        for content in contents:
            tokens.extend(self.tokenize(content))
        return self.analyze_tokens(tokens)
