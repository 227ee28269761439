"""Memory system for session persistence and conversation context."""

from .models import Message, Session, ConversationSummary
from .storage import KeyValueStorage, InMemoryStorage, SQLiteStorage
from .session_store import SessionStore
from .context_manager import ConversationContextManager

__all__ = [
    "Message",
    "Session",
    "ConversationSummary",
    "KeyValueStorage",
    "InMemoryStorage",
    "SQLiteStorage",
    "SessionStore",
    "ConversationContextManager",
]
