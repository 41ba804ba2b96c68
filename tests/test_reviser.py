"""Tests for distill.reviser: prompt construction and LLM revision."""

import pytest

from distill.config import ReviserConfig
from distill.core.errors import RevisionError
from distill.models import AbstractFailure, LengthDirection, VerbatimFailure
from distill.prompts.instruction_revision import ABSTRACT_RULES, VERBATIM_RULES
from distill.reviser import LLMReviser, Reviser, build_revision_prompt


# =============================================================================
# Fixtures
# =============================================================================


class MockLLMClient:
    """Mock LLM client supporting a list of responses."""

    def __init__(self, responses: list[str] | str, error=None):
        if isinstance(responses, str):
            responses = [responses]
        self.responses = list(responses)
        self.error = error
        self.calls: list[dict] = []
        self._call_index = 0

    async def complete(self, system, user, **kwargs):
        self.calls.append({"system": system, "user": user, **kwargs})
        if self.error is not None:
            raise self.error
        response = self.responses[min(self._call_index, len(self.responses) - 1)]
        self._call_index += 1
        return response

    async def complete_with_usage(self, system, user, **kwargs):
        raise NotImplementedError


@pytest.fixture
def abstract_failure():
    return AbstractFailure(
        index=1,
        question_type="simple",
        expected_length=20,
        actual_length=400,
        length_direction=LengthDirection.LONGER,
        issues=["adds unrequested detail"],
    )


@pytest.fixture
def verbatim_failure():
    return VerbatimFailure(
        index=1,
        case_id="c1",
        input="What is the refund window?",
        expected_output="30 days.",
        actual_output="It depends on many factors...",
        score=0.2,
        feedback="Did not state the window",
    )


# =============================================================================
# build_revision_prompt
# =============================================================================


class TestBuildRevisionPrompt:
    def test_abstract(self, abstract_failure):
        prompt = build_revision_prompt("You are helpful.", [abstract_failure], "gpt-4o-mini")
        assert "CURRENT SYSTEM PROMPT:\nYou are helpful." in prompt
        assert "TARGET MODEL: gpt-4o-mini" in prompt
        assert "FAILURE PATTERNS OBSERVED (1):" in prompt
        assert "Pattern 1 - simple question:" in prompt
        assert ABSTRACT_RULES in prompt
        assert VERBATIM_RULES not in prompt

    def test_verbatim(self, verbatim_failure):
        prompt = build_revision_prompt("You are helpful.", [verbatim_failure], "gpt-4o-mini")
        assert "FAILED EVALUATIONS (1):" in prompt
        assert "Expected: 30 days." in prompt
        assert VERBATIM_RULES in prompt
        assert ABSTRACT_RULES not in prompt

    def test_no_failures(self):
        prompt = build_revision_prompt("You are helpful.", [], "gpt-4o-mini")
        assert "(0):\n(none)" in prompt
        assert ABSTRACT_RULES in prompt


# =============================================================================
# LLMReviser
# =============================================================================


class TestLLMReviser:
    def test_implements_protocol(self):
        assert isinstance(LLMReviser(MockLLMClient(""), "m"), Reviser)

    @pytest.mark.asyncio
    async def test_returns_revised_text(self, abstract_failure):
        client = MockLLMClient("You are helpful. Keep answers short.")
        reviser = LLMReviser(client, "gpt-4o-mini")
        revised = await reviser.revise("You are helpful.", [abstract_failure])
        assert revised == "You are helpful. Keep answers short."
        assert "FAILURE PATTERNS OBSERVED" in client.calls[0]["user"]

    @pytest.mark.asyncio
    async def test_strips_wrapping_fence(self, abstract_failure):
        client = MockLLMClient("```\nBe concise.\n```")
        revised = await LLMReviser(client, "m").revise("x", [abstract_failure])
        assert revised == "Be concise."

    @pytest.mark.asyncio
    async def test_uses_config(self, abstract_failure):
        client = MockLLMClient("new")
        config = ReviserConfig(model="reviser-model", temperature=0.3, max_tokens=2048)
        await LLMReviser(client, "m", config).revise("x", [abstract_failure])
        call = client.calls[0]
        assert call["model"] == "reviser-model"
        assert call["temperature"] == 0.3
        assert call["max_tokens"] == 2048

    @pytest.mark.asyncio
    async def test_empty_response_raises(self, abstract_failure):
        client = MockLLMClient("   ")
        with pytest.raises(RevisionError, match="empty"):
            await LLMReviser(client, "m").revise("x", [abstract_failure])

    @pytest.mark.asyncio
    async def test_client_error_wrapped(self, abstract_failure):
        client = MockLLMClient("", error=RuntimeError("quota exceeded"))
        with pytest.raises(RevisionError, match="quota exceeded"):
            await LLMReviser(client, "m").revise("x", [abstract_failure])
