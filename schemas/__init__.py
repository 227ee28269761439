"""Pydantic schemas for the Persona Chat Assistant."""

from .context import Persona, Role, EmotionalContext, ResponseIntent
from .analysis import TextAnalysisResult, AssistantResponseAnalysis, RePrimingReport

__all__ = [
    "Persona",
    "Role",
    "EmotionalContext",
    "ResponseIntent",
    "TextAnalysisResult",
    "AssistantResponseAnalysis",
    "RePrimingReport",
]
