"""Anthropic Claude LLM client implementation."""

import os
import logging
from typing import Optional, List, Dict, Tuple

import anthropic

from errors import TransientProviderError
from .base_client import BaseLLMClient, Message, LLMResponse

logger = logging.getLogger(__name__)


class AnthropicClient(BaseLLMClient):
    """Anthropic Claude client implementation."""

    DEFAULT_MODEL = "claude-sonnet-4-20250514"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: float = 30.0
    ):
        """
        Initialize Anthropic client.

        Args:
            api_key: Anthropic API key (falls back to ANTHROPIC_API_KEY env var)
            model: Model to use (default: claude-sonnet-4-20250514)
            timeout: Transport timeout in seconds
        """
        self.api_key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        self.model = model or self.DEFAULT_MODEL
        self.client = None

        if self.api_key:
            # Failover happens in the router, so the SDK must not retry on its own
            self.client = anthropic.Anthropic(api_key=self.api_key, timeout=timeout, max_retries=0)
            logger.info(f"Anthropic client initialized with model: {self.model}")
        else:
            logger.warning("No Anthropic API key provided")

    def chat(
        self,
        messages: List[Message],
        temperature: float = 0.7,
        max_tokens: int = 500
    ) -> LLMResponse:
        """
        Send a Messages API request.

        Raises:
            TransientProviderError: On missing key, timeout, rate limit or API error
        """
        if not self.client:
            raise TransientProviderError("anthropic", "no API key configured")

        system, turns = self._split_messages(messages)
        kwargs = {
            "model": self.model,
            "max_tokens": max_tokens,
            "temperature": min(temperature, 1.0),
            "messages": turns,
        }
        if system:
            kwargs["system"] = system

        try:
            response = self.client.messages.create(**kwargs)
        except anthropic.APITimeoutError as e:
            raise TransientProviderError("anthropic", "request timed out") from e
        except anthropic.RateLimitError as e:
            raise TransientProviderError("anthropic", "rate limited") from e
        except anthropic.APIStatusError as e:
            raise TransientProviderError("anthropic", f"status {e.status_code}") from e
        except anthropic.APIConnectionError as e:
            raise TransientProviderError("anthropic", f"connection error: {e}") from e

        content = "".join(block.text for block in response.content if block.type == "text")
        if response.stop_reason == "max_tokens":
            logger.warning(f"Anthropic reply truncated at {max_tokens} tokens")

        usage = None
        if response.usage:
            usage = {
                "prompt_tokens": response.usage.input_tokens,
                "completion_tokens": response.usage.output_tokens,
                "total_tokens": response.usage.input_tokens + response.usage.output_tokens,
            }

        return LLMResponse(content=content, usage=usage, finish_reason=response.stop_reason)

    @staticmethod
    def _split_messages(messages: List[Message]) -> Tuple[str, List[Dict[str, str]]]:
        """
        Pull system text out and make the rest alternate user/assistant.

        The Messages API rejects two consecutive turns from the same role and
        a conversation that opens with the assistant, both of which happen
        when a customer sends several messages in a row.
        """
        system_parts = []
        turns: List[Dict[str, str]] = []
        for msg in messages:
            if msg.role == "system":
                system_parts.append(msg.content)
                continue
            role = "assistant" if msg.role == "assistant" else "user"
            if not turns and role == "assistant":
                continue
            if turns and turns[-1]["role"] == role:
                turns[-1]["content"] += "\n\n" + msg.content
            else:
                turns.append({"role": role, "content": msg.content})
        return "\n\n".join(system_parts), turns

    def get_provider_name(self) -> str:
        """Get the provider name."""
        return "anthropic"

    def get_model_name(self) -> str:
        """Get the model name."""
        return self.model
