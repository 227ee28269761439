"""Response orchestrator for the Persona Chat Assistant."""

import logging
import threading
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Tuple

from pydantic import BaseModel

from config.settings import Settings
from exceptions import (
    MESSAGE_LENGTH_ERROR_TEMPLATE,
    ValidationError,
    GenerationError,
    GenerationFailureKind,
    GenerationTimeoutError,
    EmptyResponseError,
    StorageError,
    classify_generation_failure,
)
from schemas.analysis import RePrimingReport
from schemas.context import Persona, Role

# Analysis components
from analysis.text_analysis import TextAnalysisEngine
from agents.persona_prompt_builder import PersonaPromptBuilder
from agents.response_analyzer import ResponseAnalyzer

# LLM components
from llm.factory import create_llm_client, LLMProvider
from llm.model_session import ModelSession, ModelSessionFactory, create_model_session_factory

# Memory components
from memory.context_manager import ConversationContextManager
from memory.models import ConversationSummary, Message, Session
from memory.session_store import SessionStore
from memory.storage import SQLiteStorage, InMemoryStorage

logger = logging.getLogger(__name__)


class ChatResult(BaseModel):
    """Result of one generate_response turn."""
    content: str
    session_id: str
    persona: Persona
    summary: ConversationSummary
    history: List[Message]
    timestamp: int


class PersonaSwitchResult(BaseModel):
    """Result of a persona switch."""
    session_id: str
    persona: Persona
    greeting: str
    report: RePrimingReport


class _SessionLock:
    """A session lock and the number of callers holding or waiting for it."""

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0


class ResponseOrchestrator:
    """
    Top-level controller for conversations.

    All collaborators are injected or built from settings; nothing is
    shared through module-level state. Operations on one session run one
    at a time, callers on the same session wait for the lock.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        session_store: Optional[SessionStore] = None,
        model_session_factory: Optional[ModelSessionFactory] = None,
        engine: Optional[TextAnalysisEngine] = None,
        prompt_builder: Optional[PersonaPromptBuilder] = None,
        response_analyzer: Optional[ResponseAnalyzer] = None
    ):
        """
        Initialize orchestrator.

        Args:
            settings: Application settings
            session_store: Session persistence (default: SQLite at settings.db_path)
            model_session_factory: Builds model sessions (default: from settings.llm_provider)
            engine: Text analysis engine
            prompt_builder: Persona prompt builder
            response_analyzer: Assistant reply analyzer
        """
        self.settings = settings or Settings()

        self.engine = engine or TextAnalysisEngine()
        self.prompt_builder = prompt_builder or PersonaPromptBuilder()
        self.response_analyzer = response_analyzer or ResponseAnalyzer(self.engine)

        self.session_store = session_store or self._init_session_store()

        self.model_session_factory = model_session_factory
        if self.model_session_factory is None:
            self.model_session_factory = self._init_model_session_factory()

        self._executor = ThreadPoolExecutor(
            max_workers=self.settings.generation_workers,
            thread_name_prefix="generation"
        )
        self._locks: Dict[str, _SessionLock] = {}
        self._locks_guard = threading.Lock()

        # Least recently used first; bounded by settings.session_cache_size
        self._contexts: "OrderedDict[str, ConversationContextManager]" = OrderedDict()
        self._model_sessions: "OrderedDict[str, Tuple[Persona, ModelSession]]" = OrderedDict()
        self._cache_guard = threading.Lock()

        self.session_store.add_removal_listener(self._forget)

    def _init_session_store(self) -> SessionStore:
        """Initialize session persistence, in memory if SQLite is unavailable."""
        try:
            storage = SQLiteStorage(db_path=self.settings.db_path)
            logger.info(f"Session storage initialized: {self.settings.db_path}")
        except StorageError as e:
            logger.warning(f"Failed to initialize session storage, using memory: {e}")
            storage = InMemoryStorage()

        return SessionStore(
            storage=storage,
            ttl_ms=self.settings.session_ttl_ms,
            max_messages=self.settings.max_messages
        )

    def _init_model_session_factory(self) -> Optional[ModelSessionFactory]:
        """Initialize the LLM client based on settings."""
        api_key = self.settings.get_llm_api_key()

        if not api_key:
            logger.warning(
                f"No API key for {self.settings.llm_provider}. "
                "Response generation is disabled."
            )
            return None

        provider = LLMProvider(self.settings.llm_provider)
        llm_client = create_llm_client(
            provider=provider,
            api_key=api_key,
            model=self.settings.llm_model
        )
        logger.info(
            f"LLM client initialized: {self.settings.llm_provider} "
            f"({llm_client.get_model_name()})"
        )
        return create_model_session_factory(
            llm_client,
            temperature=self.settings.temperature,
            max_tokens=self.settings.max_output_tokens
        )

    # Sessions

    @contextmanager
    def _session_lock(self, session_id: str) -> Iterator[None]:
        """
        Hold the session's lock for the duration of the block.

        A lock lives only while some caller holds or waits for it, so the
        lock table never outgrows the number of in-flight operations.
        """
        with self._locks_guard:
            entry = self._locks.get(session_id)
            if entry is None:
                entry = self._locks[session_id] = _SessionLock()
            entry.users += 1

        try:
            with entry.lock:
                yield
        finally:
            with self._locks_guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._locks[session_id]

    def _cache_get(self, cache: OrderedDict, session_id: str):
        with self._cache_guard:
            value = cache.get(session_id)
            if value is not None:
                cache.move_to_end(session_id)
            return value

    def _cache_put(self, cache: OrderedDict, session_id: str, value):
        with self._cache_guard:
            cache[session_id] = value
            cache.move_to_end(session_id)
            while len(cache) > self.settings.session_cache_size:
                evicted, _ = cache.popitem(last=False)
                logger.debug(f"Evicted cached state for session {evicted}")

    def _forget(self, session_id: str):
        """Drop cached per-session state."""
        with self._cache_guard:
            self._contexts.pop(session_id, None)
            self._model_sessions.pop(session_id, None)

    def purge_expired(self) -> int:
        """Delete expired sessions and their cached state."""
        return self.session_store.purge_expired()

    def get_or_create_session(self, session_id: Optional[str] = None) -> Session:
        """
        Load a live session or create a fresh one.

        An unknown or expired ID starts a new session under the same ID.
        """
        if session_id:
            session = self.session_store.load(session_id)
            if session:
                return session
            self._forget(session_id)

        return self.session_store.create_session(
            persona=Persona(self.settings.default_persona),
            session_id=session_id
        )

    def start_session(
        self,
        persona: Optional[Persona] = None,
        user_name: Optional[str] = None
    ) -> Session:
        """
        Start a new session with the persona's welcome message.

        Args:
            persona: Initial persona (default from settings)
            user_name: Optional name used to address the user

        Returns:
            The new Session
        """
        persona = Persona(persona or self.settings.default_persona)
        session = self.session_store.create_session(persona=persona, user_name=user_name)
        greeting = self.prompt_builder.get_welcome_message(persona, user_name)
        self.session_store.append_message(session, Role.ASSISTANT, greeting)
        session.summary = self._context_for(session).update_context(session.messages)
        return self.session_store.save(session)

    def get_history(self, session_id: str) -> Optional[List[Message]]:
        """Get conversation history for display."""
        session = self.session_store.load(session_id)
        if not session:
            return None
        return list(session.messages)

    def get_context(self, session_id: str) -> Optional[ConversationSummary]:
        """Get the latest conversation summary."""
        session = self.session_store.load(session_id)
        if not session:
            return None
        return session.summary or ConversationSummary()

    def _context_for(self, session: Session) -> ConversationContextManager:
        context = self._cache_get(self._contexts, session.session_id)
        if context is None:
            context = ConversationContextManager(
                engine=self.engine,
                window_size=self.settings.context_window,
                summary=session.summary
            )
            self._cache_put(self._contexts, session.session_id, context)
        return context

    # Generation

    def validate_message(self, text: str) -> str:
        """
        Validate a user message.

        Returns:
            The trimmed message

        Raises:
            ValidationError: If the message is not 1..max_message_length characters after trimming
        """
        if not isinstance(text, str):
            raise ValidationError("Message must be a string")

        limit = self.settings.max_message_length
        content = text.strip()
        if not content or len(content) > limit:
            raise ValidationError(
                f"Message length must be between 1 and {limit} characters",
                user_message=MESSAGE_LENGTH_ERROR_TEMPLATE.format(max_length=limit)
            )
        return content

    def generate_response(self, session_id: Optional[str], text: str) -> ChatResult:
        """
        Process a user message end-to-end.

        Identical messages are not deduplicated; each call is its own turn.

        Args:
            session_id: Session ID (a new session is created when None or unknown)
            text: User message

        Returns:
            ChatResult with the reply, summary and history

        Raises:
            ValidationError: Invalid message, raised before any side effect
            GenerationTimeoutError: The model did not answer in time
            EmptyResponseError: The model answered with no text
            GenerationError: The model call failed
        """
        content = self.validate_message(text)

        if not session_id:
            session_id = self.get_or_create_session().session_id

        with self._session_lock(session_id):
            session = self.get_or_create_session(session_id)
            return self._generate_locked(session, content)

    def _generate_locked(self, session: Session, content: str) -> ChatResult:
        window = self.settings.context_window
        context = self._context_for(session)

        self.session_store.append_message(session, Role.USER, content)
        session.summary = context.update_context(session.messages)

        recent = session.recent_messages(window)
        prompt = self.prompt_builder.build_contextual_prompt(
            persona=session.persona,
            summary_digest=context.summarize_for_prompt(),
            recent_messages=recent
        )
        # The user turn is kept even if generation fails
        self.session_store.save(session)

        model_session = self._ensure_model_session(session)
        reply = self._send_with_timeout(model_session, prompt)

        if not reply or not reply.strip():
            logger.error(f"Empty response for session {session.session_id}")
            raise EmptyResponseError()

        reply = self._personalize(reply.strip(), session.user_name)
        analysis = self.response_analyzer.analyze(reply)

        model_session.record_exchange(prompt, reply)
        message = self.session_store.append_message(session, Role.ASSISTANT, reply)
        context.update_context(session.messages)
        session.summary = context.record_assistant_analysis(analysis)
        self.session_store.save(session)

        logger.info(
            f"Session {session.session_id}: reply generated "
            f"(intent={analysis.intent.value}, emotion={session.summary.emotional_context.value})"
        )

        return ChatResult(
            content=reply,
            session_id=session.session_id,
            persona=session.persona,
            summary=session.summary,
            history=list(session.messages),
            timestamp=message.timestamp
        )

    def _ensure_model_session(self, session: Session) -> ModelSession:
        """Get the session's model session, re-priming a new one when needed."""
        cached = self._cache_get(self._model_sessions, session.session_id)
        if cached and cached[0] == session.persona:
            return cached[1]

        if self.model_session_factory is None:
            raise GenerationError("No LLM client configured", kind=GenerationFailureKind.OTHER)

        model_session = self.model_session_factory(
            self.prompt_builder.get_system_prompt(session.persona)
        )
        # The newest user turn travels inside the prompt, not the replay
        report = self.prompt_builder.reprime(model_session, session.messages[:-1])
        if report.failed:
            logger.warning(
                f"Session {session.session_id}: {len(report.failed)} turns not replayed"
            )
        self._cache_put(self._model_sessions, session.session_id, (session.persona, model_session))
        return model_session

    def _send_with_timeout(self, model_session: ModelSession, prompt: str) -> str:
        """Race the generation call against the deadline."""
        timeout_ms = self.settings.generation_timeout_ms
        future = self._executor.submit(model_session.send, prompt)

        try:
            return future.result(timeout=timeout_ms / 1000)
        except FuturesTimeoutError:
            # Best effort only; a late reply is dropped with the future
            future.cancel()
            logger.warning(f"Generation timed out after {timeout_ms} ms")
            raise GenerationTimeoutError(f"Generation exceeded {timeout_ms} ms") from None
        except GenerationError as e:
            logger.error(f"Generation failed ({e.kind.value}): {e}")
            raise
        except Exception as e:
            kind = classify_generation_failure(e)
            logger.error(f"Generation failed ({kind.value}): {e}")
            raise GenerationError(str(e), kind=kind) from e

    @staticmethod
    def _personalize(reply: str, user_name: Optional[str]) -> str:
        """Address the user by name instead of the generic あなた."""
        if user_name and user_name.strip():
            return reply.replace("あなた", user_name.strip())
        return reply

    # Persona

    def switch_persona(self, session_id: str, persona: Persona) -> PersonaSwitchResult:
        """
        Switch a session's persona, keeping its history.

        Args:
            session_id: Session ID
            persona: New persona

        Returns:
            PersonaSwitchResult with the greeting and re-priming report
        """
        persona = Persona(persona)

        with self._session_lock(session_id):
            session = self.get_or_create_session(session_id)
            model_session, report = self.prompt_builder.switch_persona(
                session=session,
                new_persona=persona,
                model_session_factory=self.model_session_factory,
                now=self.session_store.now(),
                max_messages=self.session_store.max_messages
            )
            if model_session is not None:
                self._cache_put(self._model_sessions, session_id, (persona, model_session))
            else:
                with self._cache_guard:
                    self._model_sessions.pop(session_id, None)

            session.summary = self._context_for(session).update_context(session.messages)
            self.session_store.save(session)

        return PersonaSwitchResult(
            session_id=session_id,
            persona=persona,
            greeting=session.messages[-1].content,
            report=report
        )

    def close(self):
        """Stop accepting generation work; abandoned calls are not awaited."""
        self._executor.shutdown(wait=False, cancel_futures=True)
