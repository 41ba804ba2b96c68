"""LLM client protocol and vendor implementations.

All LLM-calling modules depend on the LLMClient protocol via dependency
injection. No module directly instantiates any vendor SDK.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable

from distill.config import LLMConfig
from distill.core.errors import LLMError


@dataclass(frozen=True)
class Completion:
    """Text plus token usage of a single model call."""

    text: str
    input_tokens: int = 0
    output_tokens: int = 0
    model: str = ""

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@runtime_checkable
class LLMClient(Protocol):
    """Protocol for LLM API calls.

    All modules depend on this, not on anthropic directly.
    Enables testing with MockLLMClient.
    """

    async def complete(
        self,
        system: str,
        user: str,
        model: Optional[str] = None,
        temperature: float = 0.0,
        max_tokens: int = 4096,
    ) -> str:
        """Return the text content of the LLM response."""
        ...

    async def complete_with_usage(
        self,
        system: str,
        user: str,
        model: Optional[str] = None,
        temperature: float = 0.0,
        max_tokens: int = 4096,
    ) -> Completion:
        """Return the response text together with token counts."""
        ...


class AnthropicClient:
    """LLMClient implementation using the Anthropic API.

    Owns its own auth and model defaults. LLMConfig provides
    vendor-neutral call parameters (retries, temperature, max_tokens).
    """

    def __init__(
        self,
        config: LLMConfig = LLMConfig(),
        api_key: str = "",
        default_model: str = "claude-sonnet-4-5-20250929",
    ) -> None:
        self.config = config
        self.default_model = default_model
        # Lazy import: anthropic is an optional dependency
        try:
            import anthropic
        except ImportError as e:
            raise LLMError(
                "anthropic package not installed. "
                "Install with: pip install distill[llm]"
            ) from e
        self._client = anthropic.AsyncAnthropic(api_key=api_key or None)

    async def complete(
        self,
        system: str,
        user: str,
        model: Optional[str] = None,
        temperature: float = 0.0,
        max_tokens: int = 4096,
    ) -> str:
        completion = await self.complete_with_usage(
            system, user, model=model, temperature=temperature, max_tokens=max_tokens
        )
        return completion.text

    async def complete_with_usage(
        self,
        system: str,
        user: str,
        model: Optional[str] = None,
        temperature: float = 0.0,
        max_tokens: int = 4096,
    ) -> Completion:
        model_name = model or self.default_model
        last_error: Optional[Exception] = None
        for attempt in range(self.config.max_retries):
            try:
                response = await self._client.messages.create(
                    model=model_name,
                    max_tokens=max_tokens,
                    temperature=temperature,
                    system=system,
                    messages=[{"role": "user", "content": user}],
                )
                usage = getattr(response, "usage", None)
                return Completion(
                    text=response.content[0].text,
                    input_tokens=getattr(usage, "input_tokens", 0) or 0,
                    output_tokens=getattr(usage, "output_tokens", 0) or 0,
                    model=model_name,
                )
            except Exception as e:
                last_error = e
                if attempt < self.config.max_retries - 1:
                    await asyncio.sleep(self.config.backoff_seconds * 2**attempt)
        raise LLMError(f"LLM call failed after {self.config.max_retries} retries: {last_error}")


class GeminiClient:
    """LLMClient implementation using the Google Gemini API.

    Uses the google-genai SDK. Free tier available for testing.
    """

    def __init__(
        self,
        config: LLMConfig = LLMConfig(),
        api_key: str = "",
        default_model: str = "gemini-2.0-flash",
    ) -> None:
        self.config = config
        self.default_model = default_model
        try:
            from google import genai
        except ImportError as e:
            raise LLMError(
                "google-genai package not installed. "
                "Install with: pip install distill[gemini]"
            ) from e
        self._client = genai.Client(api_key=api_key or None)

    async def complete(
        self,
        system: str,
        user: str,
        model: Optional[str] = None,
        temperature: float = 0.0,
        max_tokens: int = 4096,
    ) -> str:
        completion = await self.complete_with_usage(
            system, user, model=model, temperature=temperature, max_tokens=max_tokens
        )
        return completion.text

    async def complete_with_usage(
        self,
        system: str,
        user: str,
        model: Optional[str] = None,
        temperature: float = 0.0,
        max_tokens: int = 4096,
    ) -> Completion:
        from google.genai import types

        model_name = model or self.default_model
        last_error: Optional[Exception] = None
        for attempt in range(self.config.max_retries):
            try:
                response = await self._client.aio.models.generate_content(
                    model=model_name,
                    contents=user,
                    config=types.GenerateContentConfig(
                        system_instruction=system,
                        temperature=temperature,
                        max_output_tokens=max_tokens,
                    ),
                )
                usage = getattr(response, "usage_metadata", None)
                return Completion(
                    text=response.text or "",
                    input_tokens=getattr(usage, "prompt_token_count", 0) or 0,
                    output_tokens=getattr(usage, "candidates_token_count", 0) or 0,
                    model=model_name,
                )
            except Exception as e:
                last_error = e
                if attempt < self.config.max_retries - 1:
                    await asyncio.sleep(self.config.backoff_seconds * 2**attempt)
        raise LLMError(f"Gemini call failed after {self.config.max_retries} retries: {last_error}")
