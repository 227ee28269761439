"""Agents for the Persona Chat Assistant."""

from .persona_prompt_builder import PersonaPromptBuilder
from .response_analyzer import ResponseAnalyzer

__all__ = [
    "PersonaPromptBuilder",
    "ResponseAnalyzer",
]
