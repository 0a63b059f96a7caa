"""Tests for the concrete provider clients and the router factory."""

from unittest.mock import Mock

import pytest

from config.settings import Settings
from errors import TransientProviderError
from llm.anthropic_client import AnthropicClient
from llm.base_client import Message
from llm.factory import create_llm_client, build_router, LLMProvider
from llm.openai_client import OpenAIClient


class TestAnthropicClient:
    """Test request shaping and response parsing without network calls."""

    def test_missing_key_fails_fast(self, monkeypatch):
        """Test that an unconfigured client raises a transient error."""
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        client = AnthropicClient()
        with pytest.raises(TransientProviderError, match="no API key"):
            client.chat([Message(role="user", content="hi")])

    def test_split_messages_alternates_roles(self):
        """Test that consecutive customer messages are merged."""
        system, turns = AnthropicClient._split_messages([
            Message(role="system", content="Be kind."),
            Message(role="assistant", content="Earlier reply"),
            Message(role="user", content="Hello"),
            Message(role="user", content="Anyone there?"),
            Message(role="assistant", content="Yes!"),
            Message(role="user", content="Great"),
        ])
        assert system == "Be kind."
        assert [t["role"] for t in turns] == ["user", "assistant", "user"]
        assert turns[0]["content"] == "Hello\n\nAnyone there?"

    def test_chat_parses_text_blocks(self):
        """Test response parsing with a mocked SDK client."""
        client = AnthropicClient(api_key="test-key")
        response = Mock()
        response.content = [Mock(type="text", text="Your order ships today.")]
        response.stop_reason = "end_turn"
        response.usage = Mock(input_tokens=10, output_tokens=5)
        client.client = Mock()
        client.client.messages.create.return_value = response

        result = client.chat([Message(role="system", content="sys"), Message(role="user", content="hi")])

        assert result.content == "Your order ships today."
        assert result.usage["total_tokens"] == 15
        kwargs = client.client.messages.create.call_args[1]
        assert kwargs["system"] == "sys"
        assert kwargs["messages"] == [{"role": "user", "content": "hi"}]


class TestOpenAIClient:
    """Test the OpenAI client without network calls."""

    def test_missing_key_fails_fast(self, monkeypatch):
        """Test that an unconfigured client raises a transient error."""
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        with pytest.raises(TransientProviderError):
            OpenAIClient().chat([Message(role="user", content="hi")])

    def test_chat_parses_choice(self):
        """Test response parsing with a mocked SDK client."""
        client = OpenAIClient(api_key="test-key")
        choice = Mock(finish_reason="stop")
        choice.message = Mock(content="We open at nine.", refusal=None)
        client.client = Mock()
        client.client.chat.completions.create.return_value = Mock(choices=[choice], usage=None)

        result = client.chat([Message(role="user", content="When do you open?")])

        assert result.content == "We open at nine."
        assert result.finish_reason == "stop"


def test_factory_creates_clients():
    """Test provider selection in the factory."""
    assert isinstance(create_llm_client(LLMProvider.OPENAI, api_key="k"), OpenAIClient)
    assert isinstance(create_llm_client(LLMProvider.ANTHROPIC, api_key="k"), AnthropicClient)


def test_build_router_follows_priority():
    """Test that the router is wired in the configured provider order."""
    settings = Settings(provider_priority=["anthropic", "openai"], openai_api_key="k1", anthropic_api_key="k2")
    router = build_router(settings)
    try:
        assert router.priority == ["anthropic", "openai"]
        assert isinstance(router.clients["anthropic"], AnthropicClient)
        assert router.fallback_text == settings.fallback_reply
    finally:
        router.shutdown()
