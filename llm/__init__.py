"""LLM client abstraction layer."""

from .base_client import BaseLLMClient, ChatMessage, LLMResponse
from .factory import create_llm_client, LLMProvider
from .model_session import (
    ModelSession,
    ModelSessionFactory,
    LLMModelSession,
    create_model_session_factory,
)

__all__ = [
    "BaseLLMClient",
    "ChatMessage",
    "LLMResponse",
    "create_llm_client",
    "LLMProvider",
    "ModelSession",
    "ModelSessionFactory",
    "LLMModelSession",
    "create_model_session_factory",
]
