"""Heuristic text analysis."""

from .text_analysis import TextAnalysisEngine

__all__ = ["TextAnalysisEngine"]
