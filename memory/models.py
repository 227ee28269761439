"""Memory data models."""

import uuid
from typing import Optional, List
from pydantic import BaseModel, ConfigDict, Field

from schemas.context import Persona, Role, EmotionalContext
from schemas.analysis import AssistantResponseAnalysis


class Message(BaseModel):
    """A single immutable message in a conversation."""
    model_config = ConfigDict(frozen=True)

    role: Role
    content: str
    timestamp: int  # milliseconds since epoch


class ConversationSummary(BaseModel):
    """Rolling summary of the most recent context window."""
    keywords: List[str] = Field(default_factory=list, max_length=5)
    topics: List[str] = Field(default_factory=list, max_length=3)
    emotional_context: EmotionalContext = EmotionalContext.NEUTRAL
    sentiment_score: float = Field(0.0, ge=-1.0, le=1.0)
    last_timestamp: Optional[int] = None
    last_user_message: Optional[str] = None
    last_assistant_message: Optional[str] = None
    last_assistant_analysis: Optional[AssistantResponseAnalysis] = None


class Session(BaseModel):
    """A persisted chat session."""
    session_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    messages: List[Message] = Field(default_factory=list)
    persona: Persona = Persona.CARING
    created_at: int
    last_accessed_at: int
    user_name: Optional[str] = None
    summary: Optional[ConversationSummary] = None

    def append_message(
        self,
        role: Role,
        content: str,
        now: int,
        max_messages: int = 100
    ) -> Message:
        """
        Append a message, evicting the oldest ones beyond the cap.

        Args:
            role: Message author
            content: Message text
            now: Current time in milliseconds
            max_messages: Maximum number of retained messages

        Returns:
            The appended Message
        """
        # Keep timestamps non-decreasing even if the clock goes backwards
        if self.messages:
            now = max(now, self.messages[-1].timestamp)

        message = Message(role=role, content=content, timestamp=now)
        self.messages.append(message)
        overflow = len(self.messages) - max_messages
        if overflow > 0:
            del self.messages[:overflow]
        self.last_accessed_at = now
        return message

    def recent_messages(self, limit: int = 10) -> List[Message]:
        """Get the most recent messages in chronological order."""
        if limit <= 0:
            return []
        return list(self.messages[-limit:])
