"""Text and response analysis schemas."""

from pydantic import BaseModel, Field

from .context import EmotionalContext, ResponseIntent


class TextAnalysisResult(BaseModel):
    """Signals derived from free-form text."""
    keywords: list[str] = Field(default_factory=list, max_length=5)
    topics: list[str] = Field(default_factory=list, max_length=3)
    emotional_context: EmotionalContext = EmotionalContext.NEUTRAL
    sentiment: float = Field(0.0, ge=-1.0, le=1.0)


class AssistantResponseAnalysis(BaseModel):
    """Analysis of a generated assistant reply."""
    content: str
    intent: ResponseIntent = ResponseIntent.GENERAL
    key_points: list[str] = Field(default_factory=list, max_length=3)
    topics: list[str] = Field(default_factory=list, max_length=3)
    sentiment_label: EmotionalContext = EmotionalContext.NEUTRAL
    follow_up_suggestions: list[str] = Field(default_factory=list, max_length=3)


class RePrimingReport(BaseModel):
    """Outcome of replaying prior turns into a fresh model session."""
    replayed: int = 0
    failed: list[int] = Field(
        default_factory=list,
        description="Indexes of turns that could not be replayed"
    )
