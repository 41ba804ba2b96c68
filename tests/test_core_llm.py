"""Tests for distill.core.llm: completion usage and retry behavior."""

from types import SimpleNamespace

import pytest

from distill.config import LLMConfig
from distill.core.errors import LLMError
from distill.core.llm import Completion, LLMClient


class FakeMessages:
    """Stands in for AsyncAnthropic().messages; fails the first `failures` calls."""

    def __init__(self, failures: int = 0):
        self.failures = failures
        self.calls: list[dict] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if len(self.calls) <= self.failures:
            raise RuntimeError("overloaded")
        return SimpleNamespace(
            content=[SimpleNamespace(text="Bonjour")],
            usage=SimpleNamespace(input_tokens=12, output_tokens=3),
        )


def _client(messages: FakeMessages, max_retries: int = 3):
    pytest.importorskip("anthropic")
    from distill.core.llm import AnthropicClient

    client = AnthropicClient(
        LLMConfig(max_retries=max_retries, backoff_seconds=0.0),
        api_key="test-key",
        default_model="claude-haiku-4-5-20251001",
    )
    client._client = SimpleNamespace(messages=messages)
    return client


class TestCompletion:
    def test_total_tokens(self):
        assert Completion(text="x", input_tokens=7, output_tokens=5).total_tokens == 12


class TestAnthropicClient:
    def test_implements_protocol(self):
        assert isinstance(_client(FakeMessages()), LLMClient)

    @pytest.mark.asyncio
    async def test_complete_with_usage(self):
        messages = FakeMessages()
        completion = await _client(messages).complete_with_usage("sys", "Say hello in French")
        assert completion.text == "Bonjour"
        assert completion.input_tokens == 12
        assert completion.output_tokens == 3
        assert completion.model == "claude-haiku-4-5-20251001"
        assert messages.calls[0]["system"] == "sys"
        assert messages.calls[0]["messages"] == [{"role": "user", "content": "Say hello in French"}]

    @pytest.mark.asyncio
    async def test_model_override(self):
        messages = FakeMessages()
        await _client(messages).complete("s", "u", model="claude-opus-4-20250514", max_tokens=64)
        assert messages.calls[0]["model"] == "claude-opus-4-20250514"
        assert messages.calls[0]["max_tokens"] == 64

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self):
        messages = FakeMessages(failures=2)
        text = await _client(messages, max_retries=3).complete("s", "u")
        assert text == "Bonjour"
        assert len(messages.calls) == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self):
        messages = FakeMessages(failures=5)
        with pytest.raises(LLMError, match="after 2 retries"):
            await _client(messages, max_retries=2).complete("s", "u")
        assert len(messages.calls) == 2
