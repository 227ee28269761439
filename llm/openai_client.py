"""OpenAI LLM client implementation."""

import os
import logging
from typing import Optional, List

from .base_client import BaseLLMClient, ChatMessage, LLMResponse

logger = logging.getLogger(__name__)


class OpenAIClient(BaseLLMClient):
    """OpenAI chat completions client."""

    DEFAULT_MODEL = "gpt-4o-mini"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None
    ):
        """
        Initialize OpenAI client.

        Args:
            api_key: OpenAI API key (falls back to OPENAI_API_KEY env var)
            model: Model to use (default: gpt-4o-mini)
        """
        self.api_key = api_key or os.environ.get("OPENAI_API_KEY")
        self.model = model or self.DEFAULT_MODEL
        self.client = None

        if self.api_key:
            from openai import OpenAI
            self.client = OpenAI(api_key=self.api_key)
            logger.info(f"OpenAI client initialized with model: {self.model}")
        else:
            logger.warning("No OpenAI API key provided")

    def chat(
        self,
        messages: List[ChatMessage],
        temperature: float = 0.7,
        max_tokens: int = 1000
    ) -> LLMResponse:
        """
        Send a chat completion request.

        A reply stopped by the content filter comes back with empty content
        so the caller treats it like any other empty response.
        """
        if not self.client:
            raise RuntimeError("OpenAI client not initialized. Check API key.")

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[msg.model_dump() for msg in messages],
                temperature=temperature,
                max_completion_tokens=max_tokens,
            )
        except Exception as e:
            logger.error(f"OpenAI API error: {e}")
            raise

        choice = response.choices[0]
        if choice.finish_reason == "content_filter":
            logger.warning("OpenAI reply blocked by content filter")
            text = ""
        else:
            text = choice.message.content or ""

        usage = None
        if response.usage:
            usage = response.usage.model_dump(
                include={"prompt_tokens", "completion_tokens", "total_tokens"}
            )

        return LLMResponse(content=text, usage=usage, finish_reason=choice.finish_reason)

    def get_provider_name(self) -> str:
        return "openai"

    def get_model_name(self) -> str:
        return self.model
