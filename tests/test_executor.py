"""Tests for distill.executor and distill.pricing: candidate execution and cost."""

import asyncio

import pytest

from distill.config import ExecutionConfig
from distill.core.errors import ExecutionError
from distill.core.llm import Completion
from distill.executor import AgentExecutor, LLMAgentExecutor, run_candidate
from distill.models import AgentDescriptor, CandidateOutput, ReferenceCase
from distill.pricing import DEFAULT_PRICING, MODEL_PRICING, compute_cost


# =============================================================================
# Fixtures
# =============================================================================


class FakeExecutor:
    """Echoes the input after an optional delay; records peak concurrency."""

    def __init__(self, delay: float = 0.0, fail_on: tuple[str, ...] = (), hang_on: tuple[str, ...] = ()):
        self.delay = delay
        self.fail_on = fail_on
        self.hang_on = hang_on
        self.in_flight = 0
        self.peak = 0
        self.calls: list[tuple[str, str]] = []

    async def execute(self, instructions: str, case_input: str) -> CandidateOutput:
        self.calls.append((instructions, case_input))
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            if case_input in self.hang_on:
                await asyncio.sleep(10)
            await asyncio.sleep(self.delay)
            if case_input in self.fail_on:
                raise RuntimeError(f"cannot answer {case_input}")
            return CandidateOutput(text=f"answer to {case_input}", input_tokens=10, output_tokens=5)
        finally:
            self.in_flight -= 1


class MockLLMClient:
    """Mock LLM client returning a fixed completion with usage."""

    def __init__(self, text: str = "ok", input_tokens: int = 0, output_tokens: int = 0, error=None):
        self.text = text
        self.input_tokens = input_tokens
        self.output_tokens = output_tokens
        self.error = error
        self.calls: list[dict] = []

    async def complete(self, system, user, **kwargs):
        completion = await self.complete_with_usage(system, user, **kwargs)
        return completion.text

    async def complete_with_usage(self, system, user, **kwargs):
        self.calls.append({"system": system, "user": user, **kwargs})
        if self.error is not None:
            raise self.error
        return Completion(
            text=self.text,
            input_tokens=self.input_tokens,
            output_tokens=self.output_tokens,
            model=kwargs.get("model") or "",
        )


def _cases(n: int) -> list[ReferenceCase]:
    return [ReferenceCase(id=f"c{i}", input=f"q{i}", reference_output=f"a{i}") for i in range(n)]


@pytest.fixture
def target():
    return AgentDescriptor(
        name="support-bot",
        model="gpt-4o-mini",
        instructions="Answer briefly.",
        temperature=0.2,
        max_tokens=512,
    )


# =============================================================================
# run_candidate
# =============================================================================


class TestRunCandidate:
    @pytest.mark.asyncio
    async def test_every_case_has_an_entry(self):
        executor = FakeExecutor()
        results = await run_candidate(executor, "be brief", _cases(5))
        assert set(results) == {f"c{i}" for i in range(5)}
        assert all(r.succeeded for r in results.values())
        assert results["c3"].output.text == "answer to q3"
        assert all(instr == "be brief" for instr, _ in executor.calls)

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self):
        executor = FakeExecutor(delay=0.01)
        await run_candidate(executor, "x", _cases(10), ExecutionConfig(concurrency=3))
        assert executor.peak <= 3
        assert len(executor.calls) == 10

    @pytest.mark.asyncio
    async def test_cases_run_concurrently(self):
        executor = FakeExecutor(delay=0.01)
        await run_candidate(executor, "x", _cases(6), ExecutionConfig(concurrency=6))
        assert executor.peak > 1

    @pytest.mark.asyncio
    async def test_error_becomes_data(self):
        executor = FakeExecutor(fail_on=("q1",))
        results = await run_candidate(executor, "x", _cases(3))
        assert not results["c1"].succeeded
        assert "cannot answer q1" in results["c1"].error
        assert not results["c1"].timed_out
        assert results["c0"].succeeded
        assert results["c2"].succeeded

    @pytest.mark.asyncio
    async def test_timeout_becomes_data(self):
        executor = FakeExecutor(hang_on=("q0",))
        results = await run_candidate(
            executor, "x", _cases(2), ExecutionConfig(case_timeout_seconds=0.05)
        )
        assert results["c0"].timed_out
        assert "timed out" in results["c0"].error
        assert results["c1"].succeeded

    @pytest.mark.asyncio
    async def test_duplicate_ids_rejected(self):
        cases = [
            ReferenceCase(id="dup", input="a", reference_output="1"),
            ReferenceCase(id="dup", input="b", reference_output="2"),
        ]
        with pytest.raises(ExecutionError, match="Duplicate"):
            await run_candidate(FakeExecutor(), "x", cases)

    @pytest.mark.asyncio
    async def test_empty_cases(self):
        assert await run_candidate(FakeExecutor(), "x", []) == {}


# =============================================================================
# LLMAgentExecutor
# =============================================================================


class TestLLMAgentExecutor:
    def test_implements_protocol(self, target):
        assert isinstance(LLMAgentExecutor(MockLLMClient(), target), AgentExecutor)

    @pytest.mark.asyncio
    async def test_uses_target_settings(self, target):
        client = MockLLMClient(text="Paris")
        executor = LLMAgentExecutor(client, target)
        output = await executor.execute("Answer in one word.", "Capital of France?")
        assert output.text == "Paris"
        call = client.calls[0]
        assert call["system"] == "Answer in one word."
        assert call["user"] == "Capital of France?"
        assert call["model"] == "gpt-4o-mini"
        assert call["temperature"] == 0.2
        assert call["max_tokens"] == 512

    @pytest.mark.asyncio
    async def test_cost_and_tokens(self, target):
        client = MockLLMClient(text="x", input_tokens=1_000_000, output_tokens=1_000_000)
        output = await LLMAgentExecutor(client, target).execute("s", "u")
        assert output.total_tokens == 2_000_000
        assert output.cost == pytest.approx(0.15 + 0.6)
        assert output.latency_ms >= 0

    @pytest.mark.asyncio
    async def test_wraps_errors(self, target):
        client = MockLLMClient(error=RuntimeError("rate limited"))
        with pytest.raises(ExecutionError, match="rate limited"):
            await LLMAgentExecutor(client, target).execute("s", "u")


# =============================================================================
# Pricing
# =============================================================================


class TestComputeCost:
    def test_known_model(self):
        cost = compute_cost("claude-sonnet-4-5-20250929", 2_000_000, 1_000_000)
        assert cost == pytest.approx(2 * 3.0 + 15.0)

    def test_unknown_model_uses_default(self):
        cost = compute_cost("some-local-model", 1_000_000, 1_000_000)
        assert cost == pytest.approx(DEFAULT_PRICING["input"] + DEFAULT_PRICING["output"])

    def test_zero_tokens(self):
        assert compute_cost("gpt-4o", 0, 0) == 0.0

    def test_table_entries_have_both_rates(self):
        for model, pricing in MODEL_PRICING.items():
            assert set(pricing) == {"input", "output"}, model
