"""Anthropic Claude LLM client implementation."""

import os
import logging
from typing import Dict, List, Optional, Tuple

from .base_client import BaseLLMClient, ChatMessage, LLMResponse

logger = logging.getLogger(__name__)

# Placeholder user turn when a replayed history opens with the assistant greeting
CONVERSATION_OPENER = "(会話開始)"


def to_anthropic_messages(messages: List[ChatMessage]) -> Tuple[str, List[Dict[str, str]]]:
    """
    Convert chat messages to the Messages API shape.

    The API takes the system prompt separately and requires turns to
    alternate starting with the user. Persona greetings can follow an
    assistant reply, so consecutive turns of one role are merged.

    Args:
        messages: Provider-neutral chat messages

    Returns:
        Tuple of (system prompt, alternating turns)
    """
    system_parts = []
    turns: List[Dict[str, str]] = []

    for msg in messages:
        if msg.role == "system":
            system_parts.append(msg.content)
            continue

        role = "assistant" if msg.role == "assistant" else "user"
        if turns and turns[-1]["role"] == role:
            turns[-1]["content"] += "\n\n" + msg.content
        else:
            turns.append({"role": role, "content": msg.content})

    if turns and turns[0]["role"] == "assistant":
        turns.insert(0, {"role": "user", "content": CONVERSATION_OPENER})

    return "\n\n".join(system_parts), turns


class AnthropicClient(BaseLLMClient):
    """Anthropic Claude client."""

    DEFAULT_MODEL = "claude-3-5-haiku-latest"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None
    ):
        """
        Initialize Anthropic client.

        Args:
            api_key: Anthropic API key (falls back to ANTHROPIC_API_KEY env var)
            model: Model to use (default: claude-3-5-haiku-latest)
        """
        self.api_key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        self.model = model or self.DEFAULT_MODEL
        self.client = None

        if self.api_key:
            import anthropic
            self.client = anthropic.Anthropic(api_key=self.api_key)
            logger.info(f"Anthropic client initialized with model: {self.model}")
        else:
            logger.warning("No Anthropic API key provided")

    def chat(
        self,
        messages: List[ChatMessage],
        temperature: float = 0.7,
        max_tokens: int = 1000
    ) -> LLMResponse:
        """Send a Messages API request."""
        if not self.client:
            raise RuntimeError("Anthropic client not initialized. Check API key.")

        system_prompt, turns = to_anthropic_messages(messages)
        request = {
            "model": self.model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": turns,
        }
        if system_prompt:
            request["system"] = system_prompt

        try:
            response = self.client.messages.create(**request)
        except Exception as e:
            logger.error(f"Anthropic API error: {e}")
            raise

        text = "".join(block.text for block in response.content if block.type == "text")

        usage = None
        if response.usage:
            usage = {
                "prompt_tokens": response.usage.input_tokens,
                "completion_tokens": response.usage.output_tokens,
                "total_tokens": response.usage.input_tokens + response.usage.output_tokens,
            }

        return LLMResponse(content=text, usage=usage, finish_reason=response.stop_reason)

    def get_provider_name(self) -> str:
        return "anthropic"

    def get_model_name(self) -> str:
        return self.model
