"""Persona and classification enums."""

from enum import Enum


class Persona(str, Enum):
    """Behavioral profile of the assistant."""
    CARING = "caring"
    STRICT = "strict"
    FUN = "fun"


class Role(str, Enum):
    """Author of a conversation message."""
    USER = "user"
    ASSISTANT = "assistant"

    @classmethod
    def _missing_(cls, value):
        # Older clients send "model" for assistant turns
        if value == "model":
            return cls.ASSISTANT
        return None


class EmotionalContext(str, Enum):
    """Emotional bucket derived from a sentiment score."""
    VERY_POSITIVE = "very_positive"
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"
    VERY_NEGATIVE = "very_negative"

    @property
    def rank(self) -> int:
        """Ordering from most negative (0) to most positive (4)."""
        return _EMOTION_RANKS[self]


_EMOTION_RANKS = {
    EmotionalContext.VERY_NEGATIVE: 0,
    EmotionalContext.NEGATIVE: 1,
    EmotionalContext.NEUTRAL: 2,
    EmotionalContext.POSITIVE: 3,
    EmotionalContext.VERY_POSITIVE: 4,
}


class ResponseIntent(str, Enum):
    """Superficial intent of an assistant reply."""
    QUESTION_ANSWER = "question_answer"
    CAUTION = "caution"
    ADVICE = "advice"
    GENERAL = "general"
