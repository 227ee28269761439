"""Session store with TTL expiry and a bounded message list."""

import time
import logging
from typing import Callable, List, Optional

from pydantic import ValidationError as PydanticValidationError

from exceptions import StorageError
from schemas.context import Persona, Role
from .models import Message, Session
from .storage import KeyValueStorage, InMemoryStorage

logger = logging.getLogger(__name__)


def current_time_ms() -> int:
    """Wall clock in milliseconds."""
    return int(time.time() * 1000)


class SessionStore:
    """
    Persists chat sessions in a KeyValueStorage.

    - Sessions expire once ``now - last_accessed_at`` exceeds the TTL; the
      TTL is checked on every read.
    - At most ``max_messages`` messages are kept, oldest evicted first.
    - Corrupt records are treated as absent and removed.
    - If the backend fails, the store switches to in-memory storage for the
      rest of the process. Storage failures never reach the caller.
    """

    CURRENT_SESSION_KEY = "currentSessionId"
    SESSION_KEY_PREFIX = "session_"
    DEFAULT_TTL_MS = 24 * 60 * 60 * 1000
    DEFAULT_MAX_MESSAGES = 100

    def __init__(
        self,
        storage: Optional[KeyValueStorage] = None,
        ttl_ms: int = DEFAULT_TTL_MS,
        max_messages: int = DEFAULT_MAX_MESSAGES,
        clock: Callable[[], int] = current_time_ms
    ):
        """
        Initialize session store.

        Args:
            storage: Storage backend (defaults to in-memory)
            ttl_ms: Session time-to-live in milliseconds
            max_messages: Maximum messages retained per session
            clock: Millisecond clock, injectable for tests
        """
        self.storage = storage or InMemoryStorage()
        self.ttl_ms = ttl_ms
        self.max_messages = max_messages
        self.clock = clock
        self.degraded = False
        self._removal_listeners: List[Callable[[str], None]] = []

    def now(self) -> int:
        return self.clock()

    def _key(self, session_id: str) -> str:
        return f"{self.SESSION_KEY_PREFIX}{session_id}"

    # Storage access with in-memory fallback

    def _fall_back(self, error: StorageError):
        logger.warning(
            f"Session storage failed ({error}); "
            "continuing with in-memory sessions for this process"
        )
        self.storage = InMemoryStorage()
        self.degraded = True

    def _read(self, key: str) -> Optional[str]:
        try:
            return self.storage.get(key)
        except StorageError as e:
            self._fall_back(e)
            return self.storage.get(key)

    def _write(self, key: str, value: str):
        try:
            self.storage.set(key, value)
        except StorageError as e:
            self._fall_back(e)
            self.storage.set(key, value)

    def _remove(self, key: str):
        try:
            self.storage.remove(key)
        except StorageError as e:
            self._fall_back(e)
            self.storage.remove(key)

    # Session lifecycle

    def create_session(
        self,
        persona: Persona = Persona.CARING,
        user_name: Optional[str] = None,
        session_id: Optional[str] = None
    ) -> Session:
        """
        Create, persist and select a new session.

        Args:
            persona: Initial persona
            user_name: Optional name used to address the user
            session_id: Optional caller-chosen identifier

        Returns:
            The new Session
        """
        now = self.now()
        data = {"persona": persona, "user_name": user_name, "created_at": now, "last_accessed_at": now}
        if session_id:
            data["session_id"] = session_id
        session = Session(**data)
        self.save(session)
        logger.info(f"Created new session: {session.session_id}")
        return session

    def load(self, session_id: str) -> Optional[Session]:
        """
        Load a session if it exists and has not expired.

        Expired and corrupt records are removed.

        Args:
            session_id: Session ID

        Returns:
            Session or None
        """
        key = self._key(session_id)
        raw = self._read(key)
        if raw is None:
            return None

        try:
            session = Session.model_validate_json(raw)
        except (PydanticValidationError, ValueError) as e:
            logger.warning(f"Discarding corrupt session {session_id}: {e}")
            self.delete(session_id)
            return None

        if self.is_expired(session):
            logger.info(f"Session {session_id} expired")
            self.delete(session_id)
            return None

        if len(session.messages) > self.max_messages:
            session.messages = session.messages[-self.max_messages:]

        return session

    def is_expired(self, session: Session) -> bool:
        return self.now() - session.last_accessed_at > self.ttl_ms

    def save(self, session: Session) -> Session:
        """
        Persist a session and mark it as the current one.

        Args:
            session: Session to store (last_accessed_at is refreshed)

        Returns:
            The stored Session
        """
        session.last_accessed_at = max(session.last_accessed_at, self.now())
        if len(session.messages) > self.max_messages:
            session.messages = session.messages[-self.max_messages:]

        self._write(self._key(session.session_id), session.model_dump_json())
        self._write(self.CURRENT_SESSION_KEY, session.session_id)
        return session

    def add_removal_listener(self, listener: Callable[[str], None]):
        """Register a callback invoked with the ID of every deleted session."""
        self._removal_listeners.append(listener)

    def delete(self, session_id: str):
        """Remove a session and clear the current pointer if it matches."""
        self._remove(self._key(session_id))
        if self._read(self.CURRENT_SESSION_KEY) == session_id:
            self._remove(self.CURRENT_SESSION_KEY)

        for listener in self._removal_listeners:
            listener(session_id)

    def get_current(self) -> Optional[Session]:
        """Get the most recently saved session, if still valid."""
        session_id = self._read(self.CURRENT_SESSION_KEY)
        if not session_id:
            return None
        return self.load(session_id)

    def initialize_session(self, persona: Persona = Persona.CARING) -> Session:
        """Resume the current session or start a new one."""
        existing = self.get_current()
        if existing:
            return self.save(existing)
        return self.create_session(persona=persona)

    def append_message(self, session: Session, role: Role, content: str) -> Message:
        """Append a timestamped message to a session (not persisted)."""
        return session.append_message(
            role=role,
            content=content,
            now=self.now(),
            max_messages=self.max_messages
        )

    def purge_expired(self) -> int:
        """
        Remove expired and corrupt sessions.

        Returns:
            Number of removed sessions
        """
        try:
            keys = self.storage.keys()
        except StorageError as e:
            self._fall_back(e)
            keys = self.storage.keys()

        removed = 0
        for key in keys:
            if not key.startswith(self.SESSION_KEY_PREFIX):
                continue
            session_id = key[len(self.SESSION_KEY_PREFIX):]
            if self.load(session_id) is None:
                removed += 1

        if removed:
            logger.info(f"Purged {removed} expired sessions")
        return removed
