"""Tests for provider clients with mocked SDKs."""

import pytest
from unittest.mock import Mock

from llm.anthropic_client import AnthropicClient, to_anthropic_messages, CONVERSATION_OPENER
from llm.base_client import ChatMessage
from llm.gemini_client import GeminiClient, safe_get_response_text
from llm.openai_client import OpenAIClient

HISTORY = [
    ChatMessage(role="system", content="SYSTEM"),
    ChatMessage(role="assistant", content="はじめまして"),
    ChatMessage(role="assistant", content="こんにちは"),
    ChatMessage(role="user", content="元気？"),
]


class TestAnthropicClient:
    """Test Anthropic message conversion and responses."""

    def test_turns_alternate_starting_with_user(self):
        """Test leading and consecutive assistant turns are normalized."""
        system, turns = to_anthropic_messages(HISTORY)

        assert system == "SYSTEM"
        assert [t["role"] for t in turns] == ["user", "assistant", "user"]
        assert turns[0]["content"] == CONVERSATION_OPENER
        assert turns[1]["content"] == "はじめまして\n\nこんにちは"

    def test_chat_joins_text_blocks(self):
        """Test only text blocks form the reply."""
        client = AnthropicClient(api_key=None)
        client.client = Mock()
        client.client.messages.create.return_value = Mock(
            content=[Mock(type="text", text="元気"), Mock(type="tool_use"), Mock(type="text", text="よ")],
            usage=Mock(input_tokens=10, output_tokens=2),
            stop_reason="end_turn",
        )

        response = client.chat(HISTORY)

        request = client.client.messages.create.call_args.kwargs
        assert request["system"] == "SYSTEM"
        assert response.content == "元気よ"
        assert response.usage["total_tokens"] == 12

    def test_chat_without_key(self):
        """Test an unconfigured client refuses to chat."""
        client = AnthropicClient(api_key=None)
        client.client = None

        with pytest.raises(RuntimeError):
            client.chat(HISTORY)


class TestOpenAIClient:
    """Test OpenAI responses."""

    def make_client(self, finish_reason="stop", content="元気よ"):
        client = OpenAIClient(api_key=None)
        client.client = Mock()
        choice = Mock(finish_reason=finish_reason)
        choice.message.content = content
        client.client.chat.completions.create.return_value = Mock(choices=[choice], usage=None)
        return client

    def test_chat_passes_messages_through(self):
        """Test messages are sent with their roles."""
        client = self.make_client()
        response = client.chat(HISTORY, temperature=0.3)

        request = client.client.chat.completions.create.call_args.kwargs
        assert request["messages"][0] == {"role": "system", "content": "SYSTEM"}
        assert request["temperature"] == 0.3
        assert response.content == "元気よ"

    def test_content_filter_gives_empty_reply(self):
        """Test filtered replies come back empty."""
        response = self.make_client(finish_reason="content_filter", content="partial").chat(HISTORY)
        assert response.content == ""


class TestGeminiClient:
    """Test Gemini request shaping and response text extraction."""

    def test_chat_maps_roles(self):
        """Test the system prompt is separate and assistant turns become model turns."""
        client = GeminiClient(api_key=None)
        client.genai = Mock()
        model = client.genai.GenerativeModel.return_value
        model.generate_content.return_value = Mock(text=" 元気よ ", candidates=[])

        response = client.chat(HISTORY, max_tokens=200)

        assert client.genai.GenerativeModel.call_args.kwargs["system_instruction"] == "SYSTEM"
        contents = model.generate_content.call_args.args[0]
        assert [c["role"] for c in contents] == ["model", "model", "user"]
        assert model.generate_content.call_args.kwargs["generation_config"]["max_output_tokens"] == 200
        assert response.content == "元気よ"

    def test_blocked_response_text(self):
        """Test a blocked response falls back to candidate parts or empty text."""
        class Blocked:
            candidates = []

            @property
            def text(self):
                raise ValueError("blocked")

        assert safe_get_response_text(Blocked()) == ""

        part = Mock(text=" 部分 ")
        partial = Mock(text="", candidates=[Mock(content=Mock(parts=[part]))])
        assert safe_get_response_text(partial) == "部分"
