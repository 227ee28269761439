"""Response Analyzer for generated assistant replies."""

import re
from typing import List

from analysis.text_analysis import TextAnalysisEngine
from schemas.analysis import AssistantResponseAnalysis
from schemas.context import ResponseIntent

MAX_KEY_POINTS = 3
MAX_FOLLOW_UPS = 3

BULLET_LINE = re.compile(r"^\s*(?:[-*+]\s+|[・•]\s*|\d{1,2}[.)．]\s*)(?P<point>.+)$")


class ResponseAnalyzer:
    """Classifies and summarizes assistant replies with surface markers."""

    def __init__(self, engine: TextAnalysisEngine):
        """Initialize analyzer with marker lists."""
        self.engine = engine
        self.question_markers = ["?", "？"]
        self.caution_markers = [
            "注意", "気をつけ", "気を付け", "危険", "危ない", "ダメ", "だめ",
            "いけません", "控え", "careful", "warning", "avoid", "danger",
        ]
        self.advice_markers = [
            "した方がいい", "したほうがいい", "しましょう", "おすすめ", "お勧め",
            "してみて", "するといい", "べき", "なさい", "コツ",
            "should", "recommend", "try ",
        ]
        self.follow_ups_by_intent = {
            ResponseIntent.CAUTION: "気をつけることをもう少し詳しく教えて",
            ResponseIntent.ADVICE: "他のやり方もある？",
        }

    def analyze(self, content: str) -> AssistantResponseAnalysis:
        """
        Analyze a reply.

        Args:
            content: Assistant reply text

        Returns:
            AssistantResponseAnalysis with intent, key points, topics,
            sentiment label and follow-up suggestions
        """
        intent = self.classify_intent(content)
        tokens = self.engine.tokenize(content)
        topics = self.engine.extract_topics(tokens)
        sentiment = self.engine.score_sentiment(tokens)

        return AssistantResponseAnalysis(
            content=content,
            intent=intent,
            key_points=self.extract_key_points(content),
            topics=topics,
            sentiment_label=self.engine.classify_emotion(sentiment),
            follow_up_suggestions=self._suggest_follow_ups(intent, topics)
        )

    def classify_intent(self, content: str) -> ResponseIntent:
        """Classify intent in priority order: question, caution, advice."""
        content_lower = content.lower()

        if any(marker in content_lower for marker in self.question_markers):
            return ResponseIntent.QUESTION_ANSWER
        if any(marker in content_lower for marker in self.caution_markers):
            return ResponseIntent.CAUTION
        if any(marker in content_lower for marker in self.advice_markers):
            return ResponseIntent.ADVICE
        return ResponseIntent.GENERAL

    def extract_key_points(self, content: str) -> List[str]:
        """Get up to three bullet or numbered lines, markdown emphasis removed."""
        points = []
        for line in content.splitlines():
            match = BULLET_LINE.match(line)
            if not match:
                continue
            point = match.group("point").replace("**", "").strip()
            if point:
                points.append(point)
            if len(points) >= MAX_KEY_POINTS:
                break
        return points

    def _suggest_follow_ups(self, intent: ResponseIntent, topics: List[str]) -> List[str]:
        suggestions = []
        if intent in self.follow_ups_by_intent:
            suggestions.append(self.follow_ups_by_intent[intent])
        for topic in topics:
            suggestions.append(f"{topic}についてもっと教えて")
        return suggestions[:MAX_FOLLOW_UPS]
