"""Stateful model sessions on top of stateless LLM clients.

A model session mirrors a provider-side chat: it is created with a persona
system prompt, can be re-primed by replaying earlier turns, and keeps the
exchanges that were actually delivered to the caller.
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable, List

from exceptions import GenerationError, GenerationFailureKind, classify_generation_failure
from .base_client import BaseLLMClient, ChatMessage

logger = logging.getLogger(__name__)


class ModelSession(ABC):
    """A conversation held open with the external generation model."""

    def __init__(self, system_prompt: str):
        self.system_prompt = system_prompt

    @abstractmethod
    def send(self, prompt: str) -> str:
        """
        Generate a reply to the prompt.

        Must not mutate the session: a reply that arrives after the caller
        gave up is simply dropped, so only record_exchange() adds history.

        Raises:
            GenerationError: If the provider call fails
        """
        pass

    @abstractmethod
    def replay(self, role: str, content: str) -> None:
        """
        Replay one earlier turn into the session.

        Raises:
            GenerationError: If the turn cannot be replayed
        """
        pass

    @abstractmethod
    def record_exchange(self, prompt: str, reply: str) -> None:
        """Record a delivered prompt/reply pair."""
        pass


ModelSessionFactory = Callable[[str], ModelSession]


class LLMModelSession(ModelSession):
    """Model session backed by a BaseLLMClient."""

    MAX_HISTORY_CHARS = 30000

    def __init__(
        self,
        llm_client: BaseLLMClient,
        system_prompt: str,
        temperature: float = 0.7,
        max_tokens: int = 1000,
        max_history_chars: int = MAX_HISTORY_CHARS
    ):
        """
        Initialize model session.

        Args:
            llm_client: Client used for generation
            system_prompt: Persona system prompt
            temperature: Sampling temperature
            max_tokens: Maximum tokens per reply
            max_history_chars: Character budget for retained history
        """
        super().__init__(system_prompt)
        self.llm_client = llm_client
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.max_history_chars = max_history_chars
        self.history: List[ChatMessage] = []

    def _history_chars(self) -> int:
        return sum(len(msg.content) for msg in self.history)

    def send(self, prompt: str) -> str:
        """Send prompt with the system prompt and retained history."""
        messages = [ChatMessage(role="system", content=self.system_prompt)]
        messages.extend(self.history)
        messages.append(ChatMessage(role="user", content=prompt))

        try:
            response = self.llm_client.chat(
                messages=messages,
                temperature=self.temperature,
                max_tokens=self.max_tokens
            )
        except GenerationError:
            raise
        except Exception as e:
            kind = classify_generation_failure(e)
            raise GenerationError(str(e), kind=kind) from e

        return response.content

    def replay(self, role: str, content: str) -> None:
        """Append an earlier turn to the history."""
        if not content or not content.strip():
            raise GenerationError(
                "Cannot replay an empty turn",
                kind=GenerationFailureKind.INVALID_INPUT
            )
        if self._history_chars() + len(content) > self.max_history_chars:
            raise GenerationError(
                "Replayed history exceeds the context budget",
                kind=GenerationFailureKind.CONTEXT_LENGTH_EXCEEDED
            )

        chat_role = "assistant" if role == "assistant" else "user"
        self.history.append(ChatMessage(role=chat_role, content=content))

    def record_exchange(self, prompt: str, reply: str) -> None:
        """Append the exchange, dropping the oldest turns over budget."""
        self.history.append(ChatMessage(role="user", content=prompt))
        self.history.append(ChatMessage(role="assistant", content=reply))

        while len(self.history) > 2 and self._history_chars() > self.max_history_chars:
            self.history.pop(0)


def create_model_session_factory(
    llm_client: BaseLLMClient,
    temperature: float = 0.7,
    max_tokens: int = 1000
) -> ModelSessionFactory:
    """
    Build a factory producing LLMModelSession objects for one client.

    Args:
        llm_client: Client shared by all sessions
        temperature: Sampling temperature
        max_tokens: Maximum tokens per reply

    Returns:
        Callable taking a system prompt and returning a new ModelSession
    """
    def factory(system_prompt: str) -> ModelSession:
        logger.debug(
            f"Starting model session on {llm_client.get_provider_name()} "
            f"({llm_client.get_model_name()})"
        )
        return LLMModelSession(
            llm_client=llm_client,
            system_prompt=system_prompt,
            temperature=temperature,
            max_tokens=max_tokens
        )

    return factory
