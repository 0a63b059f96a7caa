"""OpenAI LLM client implementation."""

import os
import logging
from typing import Optional, List

import openai
from openai import OpenAI

from errors import TransientProviderError
from .base_client import BaseLLMClient, Message, LLMResponse

logger = logging.getLogger(__name__)


class OpenAIClient(BaseLLMClient):
    """OpenAI GPT client implementation."""

    DEFAULT_MODEL = "gpt-4o-mini"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: float = 30.0
    ):
        """
        Initialize OpenAI client.

        Args:
            api_key: OpenAI API key (falls back to OPENAI_API_KEY env var)
            model: Model to use (default: gpt-4o-mini)
            timeout: Transport timeout in seconds
        """
        self.api_key = api_key or os.environ.get("OPENAI_API_KEY")
        self.model = model or self.DEFAULT_MODEL
        self.client = None

        if self.api_key:
            self.client = OpenAI(api_key=self.api_key, timeout=timeout, max_retries=0)
            logger.info(f"OpenAI client initialized with model: {self.model}")
        else:
            logger.warning("No OpenAI API key provided")

    def chat(
        self,
        messages: List[Message],
        temperature: float = 0.7,
        max_tokens: int = 500
    ) -> LLMResponse:
        """
        Send a chat completion request.

        Raises:
            TransientProviderError: On missing key, timeout, rate limit or API error
        """
        if not self.client:
            raise TransientProviderError("openai", "no API key configured")

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": msg.role, "content": msg.content} for msg in messages],
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except openai.APITimeoutError as e:
            raise TransientProviderError("openai", "request timed out") from e
        except openai.RateLimitError as e:
            raise TransientProviderError("openai", "rate limited") from e
        except openai.APIStatusError as e:
            raise TransientProviderError("openai", f"status {e.status_code}") from e
        except openai.APIConnectionError as e:
            raise TransientProviderError("openai", f"connection error: {e}") from e

        if not response.choices:
            raise TransientProviderError("openai", "no choices returned")
        choice = response.choices[0]
        if getattr(choice.message, "refusal", None):
            logger.warning(f"OpenAI refused to answer: {choice.message.refusal}")
        if choice.finish_reason == "length":
            logger.warning(f"OpenAI reply truncated at {max_tokens} tokens")

        usage = None
        if response.usage:
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }

        return LLMResponse(
            content=choice.message.content or "",
            usage=usage,
            finish_reason=choice.finish_reason
        )

    def get_provider_name(self) -> str:
        """Get the provider name."""
        return "openai"

    def get_model_name(self) -> str:
        """Get the model name."""
        return self.model
