"""In-process provider clients for tests."""

import time
import threading
from typing import List, Optional, Callable

from llm.base_client import BaseLLMClient, Message, LLMResponse


class FakeLLMClient(BaseLLMClient):
    """Returns a fixed reply (or one computed from the messages) and records calls."""

    def __init__(self, name: str = "fake", reply: str = "Your order is on its way.",
                 reply_fn: Optional[Callable[[List[Message]], str]] = None):
        self.name = name
        self.reply = reply
        self.reply_fn = reply_fn
        self.calls: List[List[Message]] = []
        self._lock = threading.Lock()

    def chat(self, messages: List[Message], temperature: float = 0.7, max_tokens: int = 500) -> LLMResponse:
        with self._lock:
            self.calls.append(list(messages))
        content = self.reply_fn(messages) if self.reply_fn else self.reply
        return LLMResponse(content=content, finish_reason="stop")

    def get_provider_name(self) -> str:
        return self.name

    def get_model_name(self) -> str:
        return f"{self.name}-model"


class FailingClient(FakeLLMClient):
    """Always raises, like a provider returning 5xx."""

    def __init__(self, name: str = "failing", error: Exception = None):
        super().__init__(name=name)
        self.error = error or ConnectionError("503 Service Unavailable")

    def chat(self, messages: List[Message], temperature: float = 0.7, max_tokens: int = 500) -> LLMResponse:
        with self._lock:
            self.calls.append(list(messages))
        raise self.error


class SlowClient(FakeLLMClient):
    """Sleeps before replying, to trip the router's timeout."""

    def __init__(self, name: str = "slow", delay_s: float = 1.0, reply: str = "Too late."):
        super().__init__(name=name, reply=reply)
        self.delay_s = delay_s

    def chat(self, messages: List[Message], temperature: float = 0.7, max_tokens: int = 500) -> LLMResponse:
        time.sleep(self.delay_s)
        return super().chat(messages, temperature, max_tokens)


def last_user_message(messages: List[Message]) -> str:
    """Content of the final user message in a prompt."""
    return [m.content for m in messages if m.role == "user"][-1]
