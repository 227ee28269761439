"""Conversation context manager for prompt context window management."""

import logging
from typing import List, Optional

from analysis.text_analysis import TextAnalysisEngine
from schemas.analysis import AssistantResponseAnalysis
from schemas.context import Role
from .models import ConversationSummary, Message

logger = logging.getLogger(__name__)


class ConversationContextManager:
    """Maintains the rolling summary of one conversation."""

    # Configuration
    DEFAULT_WINDOW_SIZE = 10  # Messages included in the summary window

    def __init__(
        self,
        engine: TextAnalysisEngine,
        window_size: int = DEFAULT_WINDOW_SIZE,
        summary: Optional[ConversationSummary] = None
    ):
        """
        Initialize context manager.

        Args:
            engine: Text analysis engine
            window_size: Number of most recent messages summarized
            summary: Previously persisted summary to resume from
        """
        self.engine = engine
        self.window_size = window_size
        self.summary = summary.model_copy(deep=True) if summary else ConversationSummary()

    def update_context(self, history: List[Message]) -> ConversationSummary:
        """
        Recompute the summary over the most recent window.

        The previous assistant analysis is carried over; everything else is
        derived from the window alone.

        Args:
            history: Full or windowed message history, oldest first

        Returns:
            The updated ConversationSummary
        """
        window = history[-self.window_size:] if self.window_size > 0 else []

        analysis = self.engine.analyze_messages(msg.content for msg in window)

        last_user = next(
            (msg.content for msg in reversed(window) if msg.role == Role.USER),
            None
        )
        last_assistant = next(
            (msg.content for msg in reversed(window) if msg.role == Role.ASSISTANT),
            None
        )

        self.summary = ConversationSummary(
            keywords=analysis.keywords,
            topics=analysis.topics,
            emotional_context=analysis.emotional_context,
            sentiment_score=analysis.sentiment,
            last_timestamp=window[-1].timestamp if window else None,
            last_user_message=last_user,
            last_assistant_message=last_assistant,
            last_assistant_analysis=self.summary.last_assistant_analysis
        )

        logger.debug(
            f"Context updated: {len(window)} messages, "
            f"emotion={self.summary.emotional_context.value}, "
            f"topics={self.summary.topics}"
        )
        return self.summary

    def record_assistant_analysis(
        self,
        analysis: AssistantResponseAnalysis
    ) -> ConversationSummary:
        """Attach the latest assistant reply analysis to the summary."""
        self.summary = self.summary.model_copy(
            update={"last_assistant_analysis": analysis}
        )
        return self.summary

    def summarize_for_prompt(self) -> str:
        """
        Get the context digest injected ahead of the transcript.

        Returns:
            Formatted digest; sentinel values when nothing is known yet
        """
        summary = self.summary
        parts = ["=== 会話の要約 ==="]

        parts.append("直近のやり取り:")
        parts.append(f"ユーザー: {summary.last_user_message or '(なし)'}")
        parts.append(f"AI: {summary.last_assistant_message or '(なし)'}")

        parts.append(f"キーワード: {', '.join(summary.keywords) or '(なし)'}")
        parts.append(f"トピック: {', '.join(summary.topics) or '(なし)'}")
        parts.append(
            f"感情の状態: {summary.emotional_context.value} "
            f"({summary.sentiment_score:+.2f})"
        )

        previous = summary.last_assistant_analysis
        if previous:
            parts.append(f"前回の応答の意図: {previous.intent.value}")
            if previous.key_points:
                parts.append("前回の要点:")
                for point in previous.key_points:
                    parts.append(f"- {point}")
            if previous.follow_up_suggestions:
                parts.append(f"話の続き候補: {' / '.join(previous.follow_up_suggestions)}")

        parts.append("=== 要約ここまで ===")
        return "\n".join(parts)
